"""
Root Typer application for the zeebe-testbed CLI.

Usage::

    zeebe-testbed deploy tests/testdata/service_task.bpmn
    zeebe-testbed deploy order.bpmn review.dmn --image camunda/zeebe:8.3.4 --json
    zeebe-testbed cleanup
    zeebe-testbed version
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from zeebe_testbed import __version__
from zeebe_testbed.core.errors import ConfigError
from zeebe_testbed.core.logging import configure_logging

if TYPE_CHECKING:
    from zeebe_testbed.core.settings import TestbedSettings
    from zeebe_testbed.deploy.results import ScenarioResult

app = typer.Typer(
    name="zeebe-testbed",
    help="zeebe-testbed: ephemeral broker provisioning and deploy checks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()
err_console = Console(stderr=True)


def _load_settings() -> TestbedSettings:
    from zeebe_testbed.core.settings import get_settings

    try:
        return get_settings()
    except ConfigError as exc:
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): {exc.message}")
        raise typer.Exit(code=2) from exc


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """zeebe-testbed CLI: start a broker, deploy resources, check artifacts."""
    settings = _load_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_json,
    )


# ── Deploy ───────────────────────────────────────────────────────────────


@app.command()
def deploy(
    resources: list[Path] = typer.Argument(..., help="Resource file(s) to deploy."),
    image: str | None = typer.Option(None, "--image", "-i", help="Broker image override."),
    max_wait: float | None = typer.Option(
        None, "--max-wait", "-w", help="Seconds to wait for the broker to become ready."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Deadline in seconds for the deploy command."
    ),
    keep: bool = typer.Option(False, "--keep", help="Keep the container and bind directory."),
    json_out: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Deploy resources to an ephemeral broker and verify it persisted them.

    Exits with status 1 unless the scenario PASSED.
    """
    from zeebe_testbed.client.context import CommandContext
    from zeebe_testbed.deploy.results import OverallStatus
    from zeebe_testbed.deploy.testbed import run_deploy_scenario

    settings = _load_settings()
    overrides: dict[str, object] = {"keep_containers": keep or settings.keep_containers}
    if image:
        overrides["image"] = image
    if max_wait is not None:
        overrides["max_wait_seconds"] = max_wait
    settings = settings.model_copy(update=overrides)

    ctx = CommandContext.with_timeout(timeout) if timeout is not None else None

    if not json_out:
        console.print(f"[bold]zeebe-testbed deploy[/]  image: {settings.image}")
        console.print(f"  resources: {', '.join(str(r) for r in resources)}")

    result = run_deploy_scenario(resources, settings, ctx)

    if json_out:
        typer.echo(result.model_dump_json(indent=2))
    else:
        _print_scenario_result(result)

    if result.status is not OverallStatus.PASSED:
        raise typer.Exit(code=1)


# ── Cleanup ──────────────────────────────────────────────────────────────


@app.command()
def cleanup() -> None:
    """Remove leftover testbed containers from killed runs."""
    from zeebe_testbed.core.errors import StartError
    from zeebe_testbed.deploy.container import cleanup_orphans

    try:
        removed = cleanup_orphans()
    except StartError as exc:
        err_console.print(f"[red]✗ {exc.message}[/]")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]✓ Removed {removed} container(s)[/]")


# ── Version ──────────────────────────────────────────────────────────────


@app.command()
def version() -> None:
    """Show the zeebe-testbed version."""
    typer.echo(f"zeebe-testbed {__version__}")


# ── Output helpers ───────────────────────────────────────────────────────


def _print_scenario_result(r: ScenarioResult) -> None:
    """Pretty-print a ScenarioResult."""
    from zeebe_testbed.deploy.results import OverallStatus

    style = {
        OverallStatus.PASSED: "green",
        OverallStatus.FAILED: "red",
        OverallStatus.ERROR: "red bold",
        OverallStatus.CANCELLED: "yellow",
    }.get(r.status, "white")

    table = Table(title="Deploy Scenario")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Run", r.run_id)
    table.add_row("Container", r.container or "—")
    table.add_row("Gateway", r.gateway_address or "—")
    table.add_row("Deploy key", str(r.deploy_key) if r.deploy_key is not None else "—")
    table.add_row("Processes", ", ".join(r.processes) or "—")
    table.add_row("Artifacts", str(len(r.artifacts)))
    table.add_row("Time", f"{r.duration_seconds:.1f}s")
    console.print(table)

    console.print(f"\n[{style}]{r.status.value}[/]: {r.summary}")


if __name__ == "__main__":
    app()
