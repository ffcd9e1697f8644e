"""Result models for a testbed deploy scenario.

Pydantic v2 models capturing the structured outcome of one scenario run:
start a broker, deploy resources, inspect the bind directory. CI reads
``status``; humans read the CLI table; ``model_dump_json()`` gives an
artifact for later inspection.

Key Concepts:
    OverallStatus: PASSED, FAILED, ERROR, CANCELLED plus the transient
        PENDING/RUNNING.
    ScenarioResult: ``mark_complete()`` finalises timestamps, duration and
        derives the status from what was recorded.

Status derivation (``mark_complete()`` without an explicit status):
    - an error of kind ``CANCELLED``  -> CANCELLED
    - any other recorded error        -> ERROR
    - deploy succeeded, artifacts > 0 -> PASSED
    - otherwise                       -> FAILED

Tags:
    results, models, pydantic, scenario, status
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from zeebe_testbed.core.errors import TestbedError


class OverallStatus(str, Enum):
    """Overall status of a scenario run."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    RUNNING = "RUNNING"
    PENDING = "PENDING"


class ScenarioResult(BaseModel):
    """Outcome of a single deploy scenario."""

    run_id: str
    image: str | None = None
    container: str | None = None
    gateway_address: str | None = None
    resources: list[str] = Field(default_factory=list)
    deploy_key: int | None = None
    processes: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    status: OverallStatus = OverallStatus.PENDING
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    error: dict[str, Any] | None = None
    summary: str = ""

    @property
    def deployed(self) -> bool:
        return self.deploy_key is not None

    def record_error(self, error: BaseException) -> None:
        """Attach ``error`` in its serialized form."""
        if isinstance(error, TestbedError):
            self.error = error.to_dict()
        else:
            self.error = {"error_type": type(error).__name__, "message": str(error)}

    def mark_complete(self, status: OverallStatus | None = None) -> None:
        """Finalize: compute duration, status and summary."""
        self.completed_at = datetime.now(UTC).isoformat()
        if self.started_at and self.completed_at:
            start = datetime.fromisoformat(self.started_at)
            end = datetime.fromisoformat(self.completed_at)
            self.duration_seconds = (end - start).total_seconds()

        if status:
            self.status = status
        elif self.error is not None:
            if self.error.get("kind") == "CANCELLED":
                self.status = OverallStatus.CANCELLED
            else:
                self.status = OverallStatus.ERROR
        elif self.deployed and self.artifacts:
            self.status = OverallStatus.PASSED
        else:
            self.status = OverallStatus.FAILED

        if self.status is OverallStatus.PASSED:
            self.summary = (
                f"deployed {len(self.resources)} resource(s) as key {self.deploy_key}, "
                f"{len(self.artifacts)} artifact(s) persisted"
            )
        elif self.error is not None:
            self.summary = f"{self.error.get('error_type', 'error')}: {self.error.get('message', '')}"
        elif self.deployed:
            self.summary = "deploy succeeded but the broker persisted no artifacts"
        else:
            self.summary = "deploy did not complete"


__all__ = ["OverallStatus", "ScenarioResult"]
