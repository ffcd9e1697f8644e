"""Command builders for the gateway.

A command accumulates request data and then issues one RPC. It is
single-use and its lifecycle is tracked by an explicit state tag::

    BUILDING ──send()──▶ SENDING ──▶ SUCCEEDED
        │  ▲                     └──▶ FAILED
        └──┘ add_resource*()

``add_resource*`` is only accepted while BUILDING and returns the same
builder for chaining. ``send()`` moves BUILDING to SENDING under a lock, so
two racing sends cannot both issue an RPC. Any mutation or send outside
BUILDING raises :class:`CommandStateError`.

Example::

    result = (
        client.new_deploy_command()
        .add_resource_file("testdata/service_task.bpmn")
        .send(CommandContext.with_timeout(30))
    )
    match result:
        case Ok(deployed):
            print(deployed.key, [p.bpmn_process_id for p in deployed.processes])
        case Err(error):
            print(error.kind, error.message)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from zeebe_grpc import gateway_pb2

from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.client.dispatch import dispatch
from zeebe_testbed.core.errors import (
    CommandError,
    CommandErrorKind,
    CommandStateError,
    ResourceReadError,
)
from zeebe_testbed.core.logging import get_logger
from zeebe_testbed.core.result import Err, Result

logger = get_logger(__name__)


class CommandState(str, Enum):
    """Lifecycle of a command."""

    BUILDING = "BUILDING"
    SENDING = "SENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Resource:
    """A named blob to deploy."""

    name: str
    content: bytes


def read_resource(path: str | Path, name: str | None = None) -> Resource:
    """Load a resource from disk, named after the file unless ``name`` is given.

    Raises
    ------
    ResourceReadError
        If the file cannot be read.
    """
    path = Path(path)
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise ResourceReadError(
            f"cannot read resource {path}: {exc.strerror or exc}", cause=exc
        ).with_context(resource=str(path)) from exc
    return Resource(name=name or path.name, content=content)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class DeployedProcess(BaseModel):
    """A process definition registered by a deployment."""

    bpmn_process_id: str
    version: int
    process_definition_key: int
    resource_name: str


class DeployedDecision(BaseModel):
    """A decision registered by a deployment."""

    decision_id: str
    decision_name: str
    version: int
    decision_key: int


class DeployResult(BaseModel):
    """Broker-assigned identifiers of a successful deployment."""

    key: int
    processes: list[DeployedProcess] = Field(default_factory=list)
    decisions: list[DeployedDecision] = Field(default_factory=list)

    @classmethod
    def from_response(cls, response: Any) -> DeployResult:
        processes = []
        decisions = []
        for deployment in response.deployments:
            if deployment.HasField("process"):
                p = deployment.process
                processes.append(
                    DeployedProcess(
                        bpmn_process_id=p.bpmnProcessId,
                        version=p.version,
                        process_definition_key=p.processDefinitionKey,
                        resource_name=p.resourceName,
                    )
                )
            elif deployment.HasField("decision"):
                d = deployment.decision
                decisions.append(
                    DeployedDecision(
                        decision_id=d.dmnDecisionId,
                        decision_name=d.dmnDecisionName,
                        version=d.version,
                        decision_key=d.decisionKey,
                    )
                )
        return cls(key=response.key, processes=processes, decisions=decisions)


# ---------------------------------------------------------------------------
# Deploy command
# ---------------------------------------------------------------------------


class DeployResourceCommand:
    """Deploys one or more resources (BPMN, DMN, ...) in a single RPC.

    Parameters
    ----------
    stub
        Gateway stub exposing ``DeployResource``.
    default_timeout
        Deadline applied when the send context carries none.
    """

    operation = "deploy_resource"

    def __init__(self, stub: Any, *, default_timeout: float | None = None) -> None:
        self._stub = stub
        self._default_timeout = default_timeout
        self._resources: list[Resource] = []
        self._state = CommandState.BUILDING
        self._lock = threading.Lock()

    @property
    def state(self) -> CommandState:
        return self._state

    @property
    def resources(self) -> tuple[Resource, ...]:
        return tuple(self._resources)

    def _ensure_building(self, action: str) -> None:
        if self._state is not CommandState.BUILDING:
            raise CommandStateError(
                f"cannot {action}: command is {self._state.value}, commands are single-use"
            ).with_context(operation=self.operation)

    def add_resource(self, content: bytes, name: str) -> DeployResourceCommand:
        """Add an in-memory resource."""
        with self._lock:
            self._ensure_building("add a resource")
            self._resources.append(Resource(name=name, content=bytes(content)))
        return self

    def add_resource_string(
        self, text: str, name: str, encoding: str = "utf-8"
    ) -> DeployResourceCommand:
        return self.add_resource(text.encode(encoding), name)

    def add_resource_file(self, path: str | Path, name: str | None = None) -> DeployResourceCommand:
        """Read a resource from disk; its file name is the resource name.

        Raises
        ------
        ResourceReadError
            If the file cannot be read. The command stays BUILDING.
        """
        self._ensure_building("add a resource")
        resource = read_resource(path, name)
        return self.add_resource(resource.content, resource.name)

    def send(self, ctx: CommandContext | None = None) -> Result[DeployResult]:
        """Issue the deploy RPC once.

        Returns
        -------
        Result[DeployResult]
            ``Ok(DeployResult)`` or ``Err(CommandError)``.

        Raises
        ------
        CommandStateError
            If the command was already sent.
        """
        ctx = ctx or CommandContext.background()
        with self._lock:
            self._ensure_building("send")
            self._state = CommandState.SENDING

        try:
            result = self._send(ctx)
        except BaseException:
            self._state = CommandState.FAILED
            raise

        self._state = CommandState.SUCCEEDED if result.is_ok() else CommandState.FAILED
        return result

    def _send(self, ctx: CommandContext) -> Result[DeployResult]:
        if not self._resources:
            return Err(
                CommandError(
                    "deploy requires at least one resource",
                    kind=CommandErrorKind.VALIDATION,
                ).with_context(operation=self.operation)
            )

        request = gateway_pb2.DeployResourceRequest(
            resources=[
                gateway_pb2.Resource(name=r.name, content=r.content) for r in self._resources
            ]
        )
        logger.debug(
            "deploy.request",
            resources=[r.name for r in self._resources],
            size=sum(len(r.content) for r in self._resources),
        )
        result = dispatch(
            self._stub.DeployResource,
            request,
            ctx,
            operation=self.operation,
            timeout=self._default_timeout,
        )
        return result.map(DeployResult.from_response)

    def __repr__(self) -> str:
        names = ", ".join(r.name for r in self._resources)
        return f"DeployResourceCommand(state={self._state.value}, resources=[{names}])"


__all__ = [
    "CommandState",
    "Resource",
    "read_resource",
    "DeployedProcess",
    "DeployedDecision",
    "DeployResult",
    "DeployResourceCommand",
]
