"""Value objects for container provisioning.

- ``WaitCondition``: marker, poll interval and max wait for the readiness
  strategy. Invariant ``max_wait >= poll_interval > 0`` is checked at
  construction and violations raise :class:`ConfigError`.
- ``ContainerDescriptor``: the provisioning request (image, exposed ports,
  bind mounts, wait condition, started flag).
- ``GatewayAddress``: ``host:port`` of a running container's gateway.

Related Modules:
    - :mod:`zeebe_testbed.deploy.broker` - builds descriptors for the broker
    - :mod:`zeebe_testbed.deploy.wait` - consumes ``WaitCondition``
    - :mod:`zeebe_testbed.deploy.container` - consumes ``ContainerDescriptor``

Tags:
    config, pydantic, descriptor, wait-condition
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from zeebe_testbed.core.errors import ConfigError, StartError, StartFailure


class WaitCondition(BaseModel):
    """Readiness wait parameters (durations in seconds).

    Example::

        wait = WaitCondition(
            target_marker="Bootstrap Broker-0 succeeded",
            poll_interval=0.5,
            max_wait=30,
        )
    """

    model_config = ConfigDict(frozen=True)

    target_marker: str = Field(description="Substring to look for in the log stream")
    poll_interval: float = Field(default=1.0, description="Seconds between polls")
    max_wait: float = Field(default=30.0, description="Seconds before giving up")

    @model_validator(mode="after")
    def _check_invariants(self) -> WaitCondition:
        if not self.target_marker:
            raise ConfigError("target_marker must not be empty")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.max_wait < self.poll_interval:
            raise ConfigError(
                f"max_wait ({self.max_wait}) must be >= poll_interval ({self.poll_interval})"
            )
        return self


class ContainerDescriptor(BaseModel):
    """Provisioning request for a single container.

    ``bind_mounts`` maps host path -> container path. Every host path must
    exist and be writable before the container starts; see
    :meth:`check_bind_mounts`.
    """

    image: str = Field(min_length=1, description="Image reference")
    exposed_ports: frozenset[int] = Field(
        default_factory=frozenset,
        description="Container ports published to random host ports",
    )
    bind_mounts: dict[Path, str] = Field(
        default_factory=dict,
        description="Host path -> container path",
    )
    wait: WaitCondition
    started: bool = Field(default=True, description="Start after create")
    env: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    name_prefix: str = Field(default="zeebe-testbed")
    pre_stop: list[list[str]] = Field(
        default_factory=list,
        description="Commands exec'd in the container before it is stopped",
    )

    def check_bind_mounts(self) -> None:
        """Verify every host path exists, is a directory and is writable.

        Raises
        ------
        StartError
            With ``reason=INVALID_DESCRIPTOR`` for the first bad path.
        """
        for host_path in self.bind_mounts:
            if not host_path.is_dir():
                raise StartError(
                    f"bind mount host path does not exist: {host_path}",
                    reason=StartFailure.INVALID_DESCRIPTOR,
                ).with_context(image=self.image, resource=str(host_path))
            if not os.access(host_path, os.W_OK):
                raise StartError(
                    f"bind mount host path is not writable: {host_path}",
                    reason=StartFailure.INVALID_DESCRIPTOR,
                ).with_context(image=self.image, resource=str(host_path))


@dataclass(frozen=True)
class GatewayAddress:
    """Gateway endpoint of a running container."""

    host: str
    port: int

    @classmethod
    def parse(cls, value: str) -> GatewayAddress:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigError(f"expected host:port, got {value!r}")
        return cls(host=host, port=int(port))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


__all__ = ["WaitCondition", "ContainerDescriptor", "GatewayAddress"]
