"""
Structured error types for zeebe-testbed.

Every failure the testbed surfaces is a ``TestbedError`` carrying a category,
a retry flag, structured context and an optional chained cause. None of the
errors here are retried internally: each one is a terminal result handed to
the caller, who decides whether to abort the run.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        TestbedError                           │
        │          (category, retryable, context, cause)                │
        ├──────────────────────────────────────────────────────────────┤
        │  StartError          ConnectError        CommandError         │
        │  (CONTAINER)         (NETWORK)           (COMMAND, kind)      │
        │       │                                                       │
        │  DockerNotFoundError                                          │
        │                                                               │
        │  NotFoundError       ResourceReadError   CommandStateError    │
        │  (CONTAINER)         (RESOURCE)          (STATE)              │
        │                                                               │
        │  CleanupError        ConfigError         WaitStrategyStateError│
        │  (CLEANUP)           (CONFIG)            (STATE)              │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = StartError("broker never became ready", reason=StartFailure.TIMED_OUT)
    >>> error.reason
    <StartFailure.TIMED_OUT: 'TIMED_OUT'>
    >>> error.with_context(container="zeebe-abc123").context.container
    'zeebe-abc123'

    >>> CommandError.cancelled().kind
    <CommandErrorKind.CANCELLED: 'CANCELLED'>

Guardrails:
    ❌ DON'T: Raise bare Exception from testbed code
    ✅ DO: Pick the TestbedError subclass that names the failing step

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= so the traceback keeps the root cause

Tags:
    error-handling, exception-hierarchy, error-context, testbed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    CONTAINER = "CONTAINER"  # Runtime launch, readiness, port mapping
    NETWORK = "NETWORK"  # Gateway transport / handshake
    COMMAND = "COMMAND"  # RPC-level failures
    RESOURCE = "RESOURCE"  # Local input files
    STATE = "STATE"  # Lifecycle misuse (re-send, reuse)
    CLEANUP = "CLEANUP"  # Teardown, directory removal
    CONFIG = "CONFIG"  # Invalid settings / value objects
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are serialized by ``to_dict()``; anything that does
    not fit a named field goes into ``metadata``.

    Attributes:
        run_id: Testbed run identifier
        container: Container name
        image: Image reference
        address: Gateway address (``host:port``)
        resource: Resource name or path
        metadata: Additional key-value pairs
    """

    run_id: str | None = None
    container: str | None = None
    image: str | None = None
    address: str | None = None
    resource: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["run_id", "container", "image", "address", "resource"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TestbedError(Exception):
    """
    Base exception for all zeebe-testbed errors.

    Subclasses set ``default_category`` to classify themselves. Every
    instance carries:

    - **category:** ErrorCategory for classification
    - **retryable:** always False unless a caller overrides it explicitly
    - **context:** ErrorContext with structured metadata
    - **cause:** the underlying exception, also chained as ``__cause__``

    Examples:
        >>> error = TestbedError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    __test__ = False

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TestbedError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StartError("launch failed").with_context(
                container="zeebe-abc123",
                image="camunda/zeebe:8.2.12",
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONTAINER ERRORS
# =============================================================================


class StartFailure(str, Enum):
    """Why a container failed to start."""

    TIMED_OUT = "TIMED_OUT"  # Readiness marker not seen within max wait
    LAUNCH_FAILED = "LAUNCH_FAILED"  # Runtime refused to create/start
    INVALID_DESCRIPTOR = "INVALID_DESCRIPTOR"  # Bind mount missing / not writable
    STOPPED = "STOPPED"  # stop() called before start() finished


class StartError(TestbedError):
    """Container failed to launch or to reach Ready before the timeout."""

    default_category = ErrorCategory.CONTAINER

    def __init__(
        self,
        message: str,
        *,
        reason: StartFailure = StartFailure.LAUNCH_FAILED,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason.value
        return result


class DockerNotFoundError(StartError):
    """Raised when the docker CLI is not available."""


class NotFoundError(TestbedError):
    """An exposed port has no host mapping, or the container is not running."""

    default_category = ErrorCategory.CONTAINER


class CleanupError(TestbedError):
    """Container teardown or bind directory removal failed."""

    default_category = ErrorCategory.CLEANUP


# =============================================================================
# GATEWAY / COMMAND ERRORS
# =============================================================================


class ConnectError(TestbedError):
    """Transport or handshake failure while connecting to the gateway."""

    default_category = ErrorCategory.NETWORK


class ResourceReadError(TestbedError):
    """A local resource could not be read."""

    default_category = ErrorCategory.RESOURCE


class CommandErrorKind(str, Enum):
    """Classification of an RPC-level failure."""

    CONNECTION = "CONNECTION"
    VALIDATION = "VALIDATION"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class CommandError(TestbedError):
    """
    A single command RPC failed.

    ``kind`` says how it failed; ``status`` keeps the gRPC status code name
    when the failure came from the transport.
    """

    default_category = ErrorCategory.COMMAND

    def __init__(
        self,
        message: str,
        *,
        kind: CommandErrorKind = CommandErrorKind.UNKNOWN,
        status: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.kind = kind
        self.status = status

    @classmethod
    def cancelled(cls, message: str = "command cancelled before completion") -> CommandError:
        return cls(message, kind=CommandErrorKind.CANCELLED)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        if self.status is not None:
            result["status"] = self.status
        return result

    def __repr__(self) -> str:
        return f"CommandError({self.message!r}, kind={self.kind.value})"


# =============================================================================
# LIFECYCLE / CONFIG ERRORS
# =============================================================================


class CommandStateError(TestbedError):
    """A command was mutated or sent outside the BUILDING state."""

    default_category = ErrorCategory.STATE


class WaitStrategyStateError(TestbedError):
    """A wait strategy was invoked again after reaching a terminal result."""

    default_category = ErrorCategory.STATE


class WaitTimedOut(TestbedError):
    """The readiness marker did not appear within the configured max wait."""

    default_category = ErrorCategory.CONTAINER

    def __init__(self, message: str, *, elapsed: float, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.elapsed = elapsed


class ConfigError(TestbedError):
    """Invalid configuration or value object."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TestbedError",
    # Container
    "StartFailure",
    "StartError",
    "DockerNotFoundError",
    "NotFoundError",
    "CleanupError",
    # Gateway / command
    "ConnectError",
    "ResourceReadError",
    "CommandErrorKind",
    "CommandError",
    # Lifecycle / config
    "CommandStateError",
    "WaitStrategyStateError",
    "WaitTimedOut",
    "ConfigError",
]
