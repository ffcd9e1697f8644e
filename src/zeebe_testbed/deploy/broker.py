"""Broker specifications for zeebe-testbed.

Frozen dataclass describing how to run the workflow broker in a container:
image, socket ports, data directory and the log line that marks it ready.

The broker binds four sockets. The gateway port is fixed; the command,
internal and monitoring ports shift by ``port_offset * 10`` so several
brokers can share a host network::

    gateway     26500
    command     26501 + offset * 10
    internal    26502 + offset * 10
    monitoring   9600 + offset * 10

Related Modules:
    - :mod:`zeebe_testbed.deploy.config` - descriptor built by ``descriptor()``
    - :mod:`zeebe_testbed.deploy.container` - consumes the descriptor

Tags:
    broker, ports, image, registry
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zeebe_testbed.deploy.config import ContainerDescriptor, WaitCondition

DEFAULT_GATEWAY_PORT = 26500
DEFAULT_COMMAND_API_PORT = 26501
DEFAULT_INTERNAL_API_PORT = 26502
DEFAULT_MONITORING_API_PORT = 9600
PORT_OFFSET_STEP = 10

BROKER_DATA_DIR = "/usr/local/zeebe/data"


@dataclass(frozen=True)
class BrokerSpec:
    """Specification for a broker container."""

    name: str
    """Short name used in container names and labels."""

    image: str
    """Docker image with pinned tag."""

    ready_marker: str
    """Log line substring emitted once the broker accepts RPCs."""

    gateway_port: int = DEFAULT_GATEWAY_PORT
    """Embedded gateway port (client RPC endpoint)."""

    port_offset: int = 0
    """Shifts command/internal/monitoring ports by ``offset * 10``."""

    data_dir: str = BROKER_DATA_DIR
    """Container path where the broker persists its log and snapshots."""

    startup_timeout: int = 30
    """Default seconds to wait for the ready marker."""

    env: tuple[tuple[str, str], ...] = ()
    """Environment variables for the container."""

    @property
    def command_api_port(self) -> int:
        return DEFAULT_COMMAND_API_PORT + self.port_offset * PORT_OFFSET_STEP

    @property
    def internal_api_port(self) -> int:
        return DEFAULT_INTERNAL_API_PORT + self.port_offset * PORT_OFFSET_STEP

    @property
    def monitoring_api_port(self) -> int:
        return DEFAULT_MONITORING_API_PORT + self.port_offset * PORT_OFFSET_STEP

    def container_env(self) -> dict[str, str]:
        env = dict(self.env)
        if self.port_offset:
            env.setdefault("ZEEBE_BROKER_NETWORK_PORTOFFSET", str(self.port_offset))
        return env

    def descriptor(
        self,
        data_dir: Path | None = None,
        *,
        wait: WaitCondition | None = None,
        image: str | None = None,
        started: bool = True,
    ) -> ContainerDescriptor:
        """Build the provisioning request for this broker.

        ``data_dir`` is bind-mounted onto :attr:`data_dir` inside the
        container and opened up with ``chmod`` before the container stops.
        Without ``wait`` the marker and startup timeout of this spec are
        used with a one second poll interval.
        """
        from zeebe_testbed.deploy.config import ContainerDescriptor, WaitCondition

        if wait is None:
            wait = WaitCondition(
                target_marker=self.ready_marker,
                poll_interval=1.0,
                max_wait=float(self.startup_timeout),
            )
        bind_mounts = {data_dir: self.data_dir} if data_dir is not None else {}
        # the broker writes as its own uid; let the host user remove the files
        pre_stop = [["chmod", "-R", "a+rwX", self.data_dir]] if data_dir is not None else []
        return ContainerDescriptor(
            image=image or self.image,
            exposed_ports=frozenset({self.gateway_port}),
            bind_mounts=bind_mounts,
            wait=wait,
            started=started,
            env=self.container_env(),
            name_prefix=f"zeebe-testbed-{self.name}",
            pre_stop=pre_stop,
        )


ZEEBE = BrokerSpec(
    name="zeebe",
    image="camunda/zeebe:8.2.12",
    ready_marker="Bootstrap Broker-0 succeeded",
    startup_timeout=30,
)


__all__ = [
    "BROKER_DATA_DIR",
    "DEFAULT_GATEWAY_PORT",
    "DEFAULT_COMMAND_API_PORT",
    "DEFAULT_INTERNAL_API_PORT",
    "DEFAULT_MONITORING_API_PORT",
    "BrokerSpec",
    "ZEEBE",
]
