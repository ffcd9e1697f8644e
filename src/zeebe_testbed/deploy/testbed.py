"""Testbed orchestration: wires broker, readiness wait and gateway together.

``broker_testbed()`` acquires the three scoped resources of a run in order
and releases them in reverse on every exit path::

    bind_directory()  ──▶  ContainerHandle.start()  ──▶  GatewayClient.connect()
          ▲                        ▲                            │
          └──── rmtree ◀── stop() ◀──────── close() ◀───────────┘

``run_deploy_scenario()`` is the end-to-end check on top of it: deploy the
given resources, then verify the broker persisted something into the bind
directory. It never raises for testbed failures; everything ends up in the
returned :class:`ScenarioResult`.

Example::

    result = run_deploy_scenario(["tests/testdata/service_task.bpmn"])
    assert result.status == OverallStatus.PASSED, result.summary

Related Modules:
    - :mod:`zeebe_testbed.deploy.container` - broker lifecycle
    - :mod:`zeebe_testbed.client.gateway` - gateway session
    - :mod:`zeebe_testbed.deploy.results` - ScenarioResult

Tags:
    testbed, orchestration, scenario, cleanup
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterator, Sequence
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path

from zeebe_testbed.client.commands import read_resource
from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.client.gateway import GatewayClient
from zeebe_testbed.core.errors import TestbedError
from zeebe_testbed.core.logging import LogContext, get_logger
from zeebe_testbed.core.result import Err, Ok
from zeebe_testbed.core.settings import TestbedSettings, get_settings
from zeebe_testbed.deploy.artifacts import bind_directory, list_artifacts
from zeebe_testbed.deploy.broker import ZEEBE, BrokerSpec
from zeebe_testbed.deploy.config import WaitCondition
from zeebe_testbed.deploy.container import ContainerHandle, DockerCli
from zeebe_testbed.deploy.results import ScenarioResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class Testbed:
    """Resources of a running testbed."""

    __test__ = False

    data_dir: Path
    container: ContainerHandle
    client: GatewayClient


def broker_spec(settings: TestbedSettings) -> BrokerSpec:
    """The default broker spec with the settings' overrides applied."""
    return dataclasses.replace(
        ZEEBE,
        image=settings.image,
        gateway_port=settings.gateway_port,
        ready_marker=settings.ready_marker,
    )


@contextmanager
def broker_testbed(
    settings: TestbedSettings | None = None,
    *,
    run_id: str | None = None,
    docker: DockerCli | None = None,
) -> Iterator[Testbed]:
    """Start a broker on a fresh bind directory and connect to its gateway.

    With ``settings.keep_containers`` neither the container nor the bind
    directory is removed.

    Raises:
        StartError: Broker failed to launch or become ready
        ConnectError: Gateway not reachable
        CleanupError: Teardown failed while nothing else was propagating
    """
    settings = settings or get_settings()
    spec = broker_spec(settings)
    wait = WaitCondition(
        target_marker=settings.ready_marker,
        poll_interval=settings.poll_interval_seconds,
        max_wait=settings.max_wait_seconds,
    )

    with ExitStack() as stack:
        data_dir = stack.enter_context(bind_directory(keep=settings.keep_containers))
        handle = ContainerHandle(
            spec.descriptor(data_dir, wait=wait),
            docker=docker,
            host=settings.host,
            run_id=run_id,
        )
        if settings.keep_containers:
            logger.warning("testbed.keep_containers", data_dir=str(data_dir))
        else:
            stack.enter_context(handle)
        handle.start()

        client = stack.enter_context(
            GatewayClient.connect(
                handle.gateway_address(spec.gateway_port),
                connect_timeout=settings.connect_timeout_seconds,
                send_timeout=settings.send_timeout_seconds,
            )
        )
        yield Testbed(data_dir=data_dir, container=handle, client=client)


def run_deploy_scenario(
    resources: Sequence[str | Path],
    settings: TestbedSettings | None = None,
    ctx: CommandContext | None = None,
    *,
    docker: DockerCli | None = None,
) -> ScenarioResult:
    """Deploy ``resources`` to an ephemeral broker and check its bind directory.

    Parameters
    ----------
    resources
        Resource files; each is deployed under its file name.
    settings
        Testbed settings (``get_settings()`` by default).
    ctx
        Context for the deploy send. A cancelled context still starts the
        broker; the send itself then ends as CANCELLED.

    Returns
    -------
    ScenarioResult
        PASSED only if the deploy succeeded and at least one artifact was
        persisted.
    """
    settings = settings or get_settings()
    run_id = uuid.uuid4().hex[:12]
    result = ScenarioResult(
        run_id=run_id,
        image=settings.image,
        resources=[Path(r).name for r in resources],
    )

    with LogContext(run_id=run_id):
        logger.info("scenario.started", resources=result.resources, image=settings.image)
        try:
            loaded = [read_resource(r) for r in resources]

            with broker_testbed(settings, run_id=run_id, docker=docker) as bed:
                result.container = bed.container.name
                result.gateway_address = str(bed.client.address)

                command = bed.client.new_deploy_command()
                for resource in loaded:
                    command.add_resource(resource.content, resource.name)

                match command.send(ctx):
                    case Ok(deployed):
                        result.deploy_key = deployed.key
                        result.processes = [p.bpmn_process_id for p in deployed.processes]
                        logger.info("scenario.deployed", key=deployed.key)
                    case Err(error):
                        result.record_error(error)

                result.artifacts = [
                    str(path.relative_to(bed.data_dir)) for path in list_artifacts(bed.data_dir)
                ]

        except TestbedError as exc:
            result.record_error(exc)
            logger.error("scenario.failed", error=exc)
        except Exception as exc:
            result.record_error(exc)
            logger.exception("scenario.failed", error=str(exc))
        finally:
            result.mark_complete()

        logger.info(
            "scenario.complete",
            status=result.status.value,
            duration=round(result.duration_seconds, 3),
            summary=result.summary,
        )
    return result


__all__ = ["Testbed", "broker_spec", "broker_testbed", "run_deploy_scenario"]
