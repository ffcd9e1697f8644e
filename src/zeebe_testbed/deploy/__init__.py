"""Broker provisioning: container lifecycle, readiness gating, bind directory.

Key Concepts:
    BrokerSpec: Frozen dataclass with the broker's image, ports and marker.
    WaitCondition / ContainerDescriptor: Provisioning request value objects.
    LogMarkerWaitStrategy: Polls container logs for the ready marker.
    ContainerHandle: Owns one container; ``start()`` blocks until ready.
    bind_directory / list_artifacts: Host directory mounted into the broker.
    ScenarioResult: Outcome of a deploy scenario.

Orchestration (``broker_testbed``, ``run_deploy_scenario``) lives in
:mod:`zeebe_testbed.deploy.testbed` and is imported from there.

Architecture::

    ┌─────────────────────────────────────────────────────┐
    │  testbed.py   broker_testbed / run_deploy_scenario  │
    ├───────────────┬──────────────────┬──────────────────┤
    │  container.py │  wait.py         │  artifacts.py    │
    │  (docker CLI) │  (log marker)    │  (bind dir)      │
    ├───────────────┴──────────────────┴──────────────────┤
    │  config.py  broker.py  results.py                   │
    └─────────────────────────────────────────────────────┘
"""

from zeebe_testbed.deploy.artifacts import bind_directory, has_artifacts, list_artifacts
from zeebe_testbed.deploy.broker import ZEEBE, BrokerSpec
from zeebe_testbed.deploy.config import ContainerDescriptor, GatewayAddress, WaitCondition
from zeebe_testbed.deploy.container import (
    ContainerHandle,
    DockerCli,
    cleanup_orphans,
    is_docker_available,
    start_container,
)
from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult
from zeebe_testbed.deploy.wait import LogMarkerWaitStrategy, ReadinessState, Ready, WaitStrategy

__all__ = [
    "ZEEBE",
    "BrokerSpec",
    "ContainerDescriptor",
    "ContainerHandle",
    "DockerCli",
    "GatewayAddress",
    "LogMarkerWaitStrategy",
    "OverallStatus",
    "ReadinessState",
    "Ready",
    "ScenarioResult",
    "WaitCondition",
    "WaitStrategy",
    "bind_directory",
    "cleanup_orphans",
    "has_artifacts",
    "is_docker_available",
    "list_artifacts",
    "start_container",
]
