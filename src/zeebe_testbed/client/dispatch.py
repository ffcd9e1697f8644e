"""Single-attempt RPC dispatch bound to a :class:`CommandContext`.

Every gateway call goes through :func:`dispatch`:

1. An already-cancelled or already-expired context fails without touching
   the network.
2. The call is started as a gRPC future with the context's remaining time
   as deadline.
3. ``ctx.cancel()`` aborts the in-flight call through ``future.cancel()``,
   as does any exception other than an RPC error raised while waiting;
   the callback is unregistered once the call settles so the context holds
   no reference to finished RPCs.
4. The outcome is ``Ok(response)`` or ``Err(CommandError)``.

There is no retry. Retrying a deploy blindly can register the same
artifact twice, so retry policy belongs to the caller.
"""

from __future__ import annotations

from typing import Any

import grpc

from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.core.errors import CommandError, CommandErrorKind
from zeebe_testbed.core.logging import get_logger
from zeebe_testbed.core.result import Err, Ok, Result

logger = get_logger(__name__)

_STATUS_KINDS: dict[grpc.StatusCode, CommandErrorKind] = {
    grpc.StatusCode.UNAVAILABLE: CommandErrorKind.CONNECTION,
    grpc.StatusCode.INVALID_ARGUMENT: CommandErrorKind.VALIDATION,
    grpc.StatusCode.FAILED_PRECONDITION: CommandErrorKind.VALIDATION,
    grpc.StatusCode.NOT_FOUND: CommandErrorKind.VALIDATION,
    grpc.StatusCode.ALREADY_EXISTS: CommandErrorKind.VALIDATION,
    grpc.StatusCode.OUT_OF_RANGE: CommandErrorKind.VALIDATION,
    grpc.StatusCode.DEADLINE_EXCEEDED: CommandErrorKind.TIMEOUT,
    grpc.StatusCode.CANCELLED: CommandErrorKind.CANCELLED,
}


def command_error_from_rpc(exc: grpc.RpcError, operation: str) -> CommandError:
    """Translate a gRPC failure into a :class:`CommandError`."""
    code_fn = getattr(exc, "code", None)
    details_fn = getattr(exc, "details", None)
    code = code_fn() if callable(code_fn) else None
    details = details_fn() if callable(details_fn) else None
    kind = _STATUS_KINDS.get(code, CommandErrorKind.UNKNOWN) if code is not None else CommandErrorKind.UNKNOWN
    status = code.name if code is not None else None
    return CommandError(
        f"{operation} failed: {details or status or exc}",
        kind=kind,
        status=status,
        cause=exc,
    ).with_context(operation=operation)


def dispatch(
    rpc: Any,
    request: Any,
    ctx: CommandContext,
    *,
    operation: str,
    timeout: float | None = None,
) -> Result[Any]:
    """Issue exactly one unary RPC and wait for it on the calling thread.

    Args:
        rpc: A unary-unary multi-callable (``stub.DeployResource``)
        request: The protobuf request message
        ctx: Cancellation/deadline context
        operation: Name used in logs and error messages
        timeout: Deadline used when ``ctx`` carries none
    """
    if ctx.cancelled:
        logger.info("command.cancelled", operation=operation, stage="before_send")
        return Err(CommandError.cancelled(f"{operation} cancelled before send").with_context(
            operation=operation
        ))

    remaining = ctx.remaining()
    if remaining is not None and remaining <= 0:
        return Err(
            CommandError(
                f"{operation} deadline expired before send",
                kind=CommandErrorKind.TIMEOUT,
            ).with_context(operation=operation)
        )
    deadline = remaining if remaining is not None else timeout

    logger.debug("command.sending", operation=operation, timeout=deadline)
    future = rpc.future(request, timeout=deadline)
    unregister = ctx.on_cancel(future.cancel)
    try:
        response = future.result()
    except grpc.FutureCancelledError:
        logger.info("command.cancelled", operation=operation, stage="in_flight")
        return Err(CommandError.cancelled(f"{operation} cancelled in flight").with_context(
            operation=operation
        ))
    except grpc.RpcError as exc:
        error = command_error_from_rpc(exc, operation)
        logger.warning("command.failed", operation=operation, kind=error.kind.value, status=error.status)
        return Err(error)
    except BaseException:
        # e.g. KeyboardInterrupt while blocked; the call must not outlive us
        future.cancel()
        raise
    finally:
        unregister()

    logger.info("command.sent", operation=operation)
    return Ok(response)


__all__ = ["dispatch", "command_error_from_rpc"]
