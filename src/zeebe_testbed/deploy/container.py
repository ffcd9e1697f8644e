"""Container lifecycle management for zeebe-testbed.

Runs one ephemeral broker container per handle through the ``docker`` CLI
(subprocess). ``ContainerHandle.start()`` blocks the calling thread until
the readiness wait strategy reports Ready; on a failed wait the container is
torn down before ``StartError`` reaches the caller.

Key Concepts:
    DockerCli: Thin subprocess wrapper around the ``docker`` binary.
    ContainerHandle: Owns exactly one container. Exposes ``host()``,
        ``mapped_port()``, ``gateway_address()``, ``logs()``, ``read_logs()``
        and ``stop()``. Doubles as the wait strategy's target.
    start_container(): Build a handle and start it in one call.
    cleanup_orphans(): Remove every container carrying the testbed label.

Architecture Decisions:
    - subprocess, not docker-py: Works with any runtime exposing a
      ``docker`` CLI (Docker Desktop, Podman, Colima, CI runners).
    - Label-based tracking: Every container gets ``zeebe.testbed.*`` labels
      so ``cleanup_orphans()`` can find leftovers from killed runs.
    - Random host ports: Exposed ports are published with ``--publish PORT``
      and resolved afterwards with ``docker port``.
    - Single cleanup path: ``stop()`` is idempotent and safe before or
      during ``start()``; the handle's ``__exit__`` always calls it.

Example::

    with ContainerHandle(ZEEBE.descriptor(data_dir)) as handle:
        handle.start()
        address = handle.gateway_address(26500)
        ...

Related Modules:
    - :mod:`zeebe_testbed.deploy.wait` - readiness gating
    - :mod:`zeebe_testbed.deploy.config` - ContainerDescriptor, GatewayAddress
    - :mod:`zeebe_testbed.deploy.testbed` - orchestration glue

Tags:
    container, docker, lifecycle, subprocess, readiness, cleanup
"""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
import threading
import uuid
from datetime import datetime
from typing import Any, Callable
from urllib.parse import urlparse

from zeebe_testbed.core.errors import (
    CleanupError,
    DockerNotFoundError,
    NotFoundError,
    StartError,
    StartFailure,
    WaitTimedOut,
)
from zeebe_testbed.core.logging import get_logger
from zeebe_testbed.deploy.config import ContainerDescriptor, GatewayAddress, WaitCondition
from zeebe_testbed.deploy.wait import LogChunk, LogMarkerWaitStrategy, WaitStrategy

logger = get_logger(__name__)

LABEL_PREFIX = "zeebe.testbed"
LOG_TAIL_LINES = 20

# RFC 3339 with nanoseconds, as printed by `docker logs --timestamps`
_TIMESTAMP = re.compile(r"(\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d)(?:\.(\d+))?(Z|[+-]\d\d:\d\d)")


def is_docker_available() -> bool:
    """Check if Docker is installed and the daemon is running."""
    docker = shutil.which("docker")
    if docker is None:
        return False
    try:
        result = subprocess.run(
            [docker, "info"],
            capture_output=True,
            timeout=10,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


def default_host() -> str:
    """Host on which published ports are reachable.

    ``localhost`` unless ``DOCKER_HOST`` points at a remote TCP daemon.
    """
    docker_host = os.environ.get("DOCKER_HOST", "")
    if docker_host.startswith("tcp://"):
        return urlparse(docker_host).hostname or "localhost"
    return "localhost"


def _parse_timestamp(value: str) -> datetime | None:
    match = _TIMESTAMP.fullmatch(value)
    if match is None:
        return None
    base, fraction, zone = match.groups()
    # datetime keeps microseconds only
    fraction = (fraction or "")[:6].ljust(6, "0")
    zone = "+00:00" if zone == "Z" else zone
    return datetime.fromisoformat(f"{base}.{fraction}{zone}")


class DockerCli:
    """Runs ``docker`` sub-commands and raises ``StartError`` on failure."""

    def __init__(self, docker_cmd: str | None = None) -> None:
        self._docker_cmd = docker_cmd or self._find_docker()

    @staticmethod
    def _find_docker() -> str:
        docker = shutil.which("docker")
        if docker is None:
            raise DockerNotFoundError(
                "Docker CLI not found on PATH. Install Docker or add it to PATH.",
                reason=StartFailure.LAUNCH_FAILED,
            )
        return docker

    def run(
        self,
        args: list[str],
        check: bool = True,
        timeout: int = 60,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker CLI command."""
        cmd = [self._docker_cmd, *args]
        logger.debug("docker.exec", cmd=" ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise StartError(
                f"Docker command timed out after {timeout}s: {' '.join(args)}",
                cause=exc,
            ) from exc
        if check and result.returncode != 0:
            raise StartError(
                f"Docker command failed (exit {result.returncode}): "
                f"{' '.join(args)}\n{result.stderr}"
            )
        return result


class ContainerHandle:
    """Owns the lifetime of one container.

    Parameters
    ----------
    descriptor
        What to run and how to decide it is ready.
    docker
        CLI wrapper (a fresh ``DockerCli`` by default).
    host
        Host for published ports (``default_host()`` by default).
    strategy_factory
        Builds a fresh wait strategy per start.
    run_id
        Identifier used in the container label (random by default).
    """

    def __init__(
        self,
        descriptor: ContainerDescriptor,
        *,
        docker: DockerCli | None = None,
        host: str | None = None,
        strategy_factory: Callable[[WaitCondition], WaitStrategy] = LogMarkerWaitStrategy,
        run_id: str | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._docker = docker or DockerCli()
        self._host = host or default_host()
        self._strategy_factory = strategy_factory
        self._lock = threading.Lock()
        self._name: str | None = None
        self._container_id: str | None = None
        self._creating = False
        self._started = False
        self._released = False
        self._ports: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def container_id(self) -> str | None:
        return self._container_id

    @property
    def running(self) -> bool:
        return self._started and not self._released

    def start(self) -> ContainerHandle:
        """Create the container, start it and block until it is ready.

        Returns
        -------
        ContainerHandle
            ``self``, for chaining.

        Raises
        ------
        StartError
            ``INVALID_DESCRIPTOR`` if a bind mount is unusable,
            ``LAUNCH_FAILED`` if the runtime refuses the container,
            ``TIMED_OUT`` if the readiness signal never appears,
            ``STOPPED`` if ``stop()`` ran before the container was ready.
            In every case but the first the container has been removed
            before this returns.
        """
        self.descriptor.check_bind_mounts()

        with self._lock:
            if self._released:
                raise StartError("container handle was already stopped")
            if self._name is not None:
                raise StartError(f"container {self._name} was already started")
            name = self._name = f"{self.descriptor.name_prefix}-{self.run_id[:8]}"
            self._creating = True

        try:
            try:
                result = self._docker.run(self._create_args())
            finally:
                with self._lock:
                    self._creating = False
                    stopped = self._released
                if stopped:
                    # stop() ran while create was in flight and left removal to us
                    self._remove_deferred(name)
            if stopped:
                raise self._stopped_during_start()
            self._container_id = result.stdout.strip()[:12]
            logger.info(
                "container.created",
                container=self._name,
                image=self.descriptor.image,
            )
            if not self.descriptor.started:
                return self

            self._docker.run(["start", self._name])
            with self._lock:
                self._started = True
            logger.info("container.started", container=self._name)

            outcome = self._strategy_factory(self.descriptor.wait).wait(self)
        except StartError as exc:
            stopped = self._released
            exc.with_context(container=self._name, image=self.descriptor.image)
            self._abort(exc)
            if stopped and exc.reason is not StartFailure.STOPPED:
                raise self._stopped_during_start(exc) from exc
            raise
        except BaseException as exc:
            self._abort(exc)
            raise

        if self._released:
            raise self._stopped_during_start()
        if outcome.is_err():
            cause = outcome.unwrap_err()
            elapsed = cause.elapsed if isinstance(cause, WaitTimedOut) else None
            error = StartError(
                f"Container {self._name} did not become ready within "
                f"{self.descriptor.wait.max_wait}s.\n"
                f"Last logs:\n{self._tail_logs()}",
                reason=StartFailure.TIMED_OUT,
                cause=cause,
            ).with_context(
                container=self._name,
                image=self.descriptor.image,
                elapsed=elapsed,
            )
            self._abort(error)
            raise error

        return self

    def stop(self, timeout: int = 10) -> None:
        """Stop and remove the container.

        Idempotent, and safe to call before or while ``start()`` runs.
        Only the first call releases anything. If ``docker create`` is still
        in flight, removal is left to ``start()`` once it returns. The
        descriptor's ``pre_stop`` commands run inside a started container
        before it is stopped; their failures are only logged.

        Raises
        ------
        CleanupError
            If the runtime fails to remove the container.
        """
        with self._lock:
            if self._released:
                return
            self._released = True
            name = self._name
            creating = self._creating
            started = self._started

        if name is None:
            logger.debug("container.stop_skipped", reason="never created")
            return
        if creating:
            logger.debug("container.stop_deferred", container=name, reason="create in flight")
            return

        if started:
            self._run_pre_stop(name)
        self._remove(name, timeout)

    def _run_pre_stop(self, name: str) -> None:
        for cmd in self.descriptor.pre_stop:
            try:
                result = self._docker.run(["exec", name, *cmd], check=False)
            except StartError as exc:
                logger.warning("container.pre_stop_failed", container=name, error=exc)
                continue
            if result.returncode != 0:
                logger.warning(
                    "container.pre_stop_failed",
                    container=name,
                    cmd=" ".join(cmd),
                    error=result.stderr.strip(),
                )

    def _remove_deferred(self, name: str) -> None:
        """Remove a container whose ``stop()`` arrived while create was in flight."""
        try:
            self._remove(name, 0)
        except CleanupError as cleanup:
            logger.error("container.cleanup_failed", container=name, error=cleanup)

    def _stopped_during_start(self, cause: Exception | None = None) -> StartError:
        return StartError(
            f"container {self._name} was stopped during start",
            reason=StartFailure.STOPPED,
            cause=cause,
        ).with_context(container=self._name, image=self.descriptor.image)

    def _remove(self, name: str, timeout: int) -> None:
        try:
            self._docker.run(["stop", "--time", str(timeout), name], check=False)
            result = self._docker.run(["rm", "--force", "--volumes", name], check=False)
        except StartError as exc:
            raise CleanupError(f"failed to remove container {name}", cause=exc).with_context(
                container=name
            ) from exc

        if result.returncode != 0 and "No such container" not in result.stderr:
            raise CleanupError(
                f"failed to remove container {name} (exit {result.returncode}): {result.stderr}"
            ).with_context(container=name)
        logger.info("container.stopped", container=name)

    def _abort(self, original: BaseException) -> None:
        """Tear down after a failed start without masking ``original``."""
        try:
            self.stop()
        except CleanupError as cleanup:
            logger.error(
                "container.cleanup_failed",
                container=self._name,
                error=cleanup,
                original=str(original),
            )

    def __enter__(self) -> ContainerHandle:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            self.stop()
        except CleanupError as cleanup:
            if exc_type is None:
                raise
            logger.error(
                "container.cleanup_failed",
                container=self._name,
                error=cleanup,
                original=str(exc),
            )

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def host(self) -> str:
        return self._host

    def mapped_port(self, exposed_port: int) -> int:
        """Host port published for ``exposed_port``.

        Raises
        ------
        NotFoundError
            If the port is not exposed or the runtime reports no mapping.
        """
        if exposed_port not in self.descriptor.exposed_ports:
            raise NotFoundError(f"port {exposed_port} is not exposed").with_context(
                container=self._name
            )
        if not self.running or self._name is None:
            raise NotFoundError(
                f"port {exposed_port} has no mapping: container is not running"
            ).with_context(container=self._name)

        if exposed_port in self._ports:
            return self._ports[exposed_port]

        result = self._docker.run(["port", self._name, f"{exposed_port}/tcp"], check=False)
        for line in result.stdout.strip().splitlines():
            # "0.0.0.0:49153" or "[::]:49153"
            port_str = line.strip().rsplit(":", 1)[-1]
            if port_str.isdigit():
                self._ports[exposed_port] = int(port_str)
                return self._ports[exposed_port]
        raise NotFoundError(f"port {exposed_port} has no host mapping").with_context(
            container=self._name
        )

    def gateway_address(self, exposed_port: int) -> GatewayAddress:
        return GatewayAddress(host=self.host(), port=self.mapped_port(exposed_port))

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def logs(self) -> str:
        """Combined stdout/stderr of the container so far.

        Raises
        ------
        StartError
            If the runtime no longer knows the container.
        """
        if self._name is None:
            return ""
        result = self._docker.run(["logs", self._name], check=False)
        if result.returncode != 0:
            raise StartError(
                f"cannot read logs of {self._name}: {result.stderr.strip()}"
            ).with_context(container=self._name)
        return result.stdout + result.stderr

    def status(self) -> str:
        """Runtime state (created, running, exited, ...) or ``not_found``."""
        if self._name is None:
            return "not_found"
        result = self._docker.run(
            ["inspect", "--format", "{{.State.Status}}", self._name],
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else "not_found"

    def read_logs(self, cursor: str | None = None) -> LogChunk:
        """Log lines written at or after ``cursor``.

        Lines are read with ``docker logs --timestamps`` so the cursor comes
        from the daemon's clock. Pass the returned chunk's cursor to the next
        call to read only what is new; ``None`` reads everything.

        Raises
        ------
        StartError
            If the runtime no longer knows the container.
        """
        if self._name is None:
            return LogChunk(text="", cursor=cursor)
        args = ["logs", "--timestamps"]
        if cursor is not None:
            args += ["--since", cursor]
        result = self._docker.run([*args, self._name], check=False)
        if result.returncode != 0:
            raise StartError(
                f"cannot read logs of {self._name}: {result.stderr.strip()}"
            ).with_context(container=self._name)

        latest = cursor
        latest_at = _parse_timestamp(cursor) if cursor else None
        lines = []
        for raw in (result.stdout + result.stderr).splitlines():
            stamp, _, line = raw.partition(" ")
            at = _parse_timestamp(stamp)
            if at is None:
                lines.append(raw)
                continue
            lines.append(line)
            if latest_at is None or at > latest_at:
                latest, latest_at = stamp, at
        return LogChunk(text="\n".join(lines), cursor=latest)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _create_args(self) -> list[str]:
        d = self.descriptor
        args = [
            "create",
            "--name", self._name or "",
            "--label", f"{LABEL_PREFIX}.run_id={self.run_id}",
            "--label", f"{LABEL_PREFIX}.type=broker",
        ]
        for key, value in d.labels.items():
            args.extend(["--label", f"{key}={value}"])
        for port in sorted(d.exposed_ports):
            args.extend(["--publish", str(port)])
        for host_path, container_path in d.bind_mounts.items():
            args.extend(["--volume", f"{host_path.resolve()}:{container_path}"])
        for key, value in d.env.items():
            args.extend(["--env", f"{key}={value}"])
        args.append(d.image)
        return args

    def _tail_logs(self) -> str:
        try:
            lines = self.logs().splitlines()
        except StartError as exc:
            return f"<logs unavailable: {exc.message}>"
        return "\n".join(lines[-LOG_TAIL_LINES:])

    def __repr__(self) -> str:
        return f"ContainerHandle(name={self._name!r}, image={self.descriptor.image!r})"


def start_container(descriptor: ContainerDescriptor, **kwargs: Any) -> ContainerHandle:
    """Create a :class:`ContainerHandle` and start it.

    On failure nothing is left running; see :meth:`ContainerHandle.start`.
    """
    return ContainerHandle(descriptor, **kwargs).start()


def list_containers(docker: DockerCli | None = None, run_id: str | None = None) -> list[dict[str, Any]]:
    """List testbed containers, optionally filtered by run_id."""
    docker = docker or DockerCli()
    cmd = [
        "ps", "--all",
        "--filter", f"label={LABEL_PREFIX}.type",
        "--format", "{{json .}}",
    ]
    if run_id:
        cmd.extend(["--filter", f"label={LABEL_PREFIX}.run_id={run_id}"])

    result = docker.run(cmd, check=False)
    containers = []
    for line in result.stdout.strip().splitlines():
        if not line.strip():
            continue
        try:
            containers.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning("container.list_unparseable", line=line)
    return containers


def cleanup_orphans(docker: DockerCli | None = None) -> int:
    """Remove all testbed containers. Returns the number removed."""
    docker = docker or DockerCli()
    removed = 0
    for container in list_containers(docker):
        name = container.get("Names", "")
        if name:
            docker.run(["rm", "--force", "--volumes", name], check=False)
            removed += 1
    if removed:
        logger.info("cleanup.complete", containers_removed=removed)
    return removed


__all__ = [
    "LABEL_PREFIX",
    "ContainerHandle",
    "DockerCli",
    "cleanup_orphans",
    "default_host",
    "is_docker_available",
    "list_containers",
    "start_container",
]
