"""Gateway client and command builders."""

from zeebe_testbed.client.commands import (
    CommandState,
    DeployedDecision,
    DeployedProcess,
    DeployResourceCommand,
    DeployResult,
    Resource,
)
from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.client.gateway import GatewayClient, Topology

__all__ = [
    "CommandContext",
    "CommandState",
    "DeployResourceCommand",
    "DeployResult",
    "DeployedDecision",
    "DeployedProcess",
    "GatewayClient",
    "Resource",
    "Topology",
]
