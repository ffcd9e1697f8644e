"""Cancellation and deadline context for command sends.

A ``CommandContext`` is passed to every blocking send. It carries an
optional absolute deadline (monotonic clock) and a cancellation flag.
Cancelling runs the registered callbacks exactly once; the gateway uses that
hook to abort the in-flight RPC.

Example::

    ctx = CommandContext.with_timeout(30)
    result = client.new_deploy_command().add_resource_file(path).send(ctx)

    # from another thread
    ctx.cancel()

Child contexts inherit the parent's deadline (or a tighter one) and are
cancelled together with the parent.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from zeebe_testbed.core.logging import get_logger

logger = get_logger(__name__)


class CommandContext:
    """Deadline plus cancellation token for a blocking call."""

    def __init__(
        self,
        deadline: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._deadline = deadline
        self._clock = clock
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], object]] = {}
        self._next_id = 0

    @classmethod
    def background(cls) -> CommandContext:
        """A context that is never cancelled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(
        cls, seconds: float, *, clock: Callable[[], float] = time.monotonic
    ) -> CommandContext:
        return cls(deadline=clock() + seconds, clock=clock)

    def child(self, timeout: float | None = None) -> CommandContext:
        """Derive a context that is cancelled together with this one."""
        deadline = self._deadline
        if timeout is not None:
            own = self._clock() + timeout
            deadline = own if deadline is None else min(deadline, own)
        child = CommandContext(deadline=deadline, clock=self._clock)
        unregister = self.on_cancel(child.cancel)
        child.on_cancel(unregister)
        return child

    # ------------------------------------------------------------------
    # Deadline
    # ------------------------------------------------------------------

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline (``None`` without deadline)."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Cancel the context and run callbacks. Later calls are no-ops."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.warning("context.cancel_callback_failed", error=str(exc))

    def on_cancel(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns an unregister function.

        Runs immediately when the context is already cancelled.
        """
        with self._lock:
            if not self._cancelled.is_set():
                key = self._next_id
                self._next_id += 1
                self._callbacks[key] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return unregister
        callback()
        return lambda: None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout``; True if cancelled."""
        return self._cancelled.wait(timeout)

    def __repr__(self) -> str:
        return f"CommandContext(cancelled={self.cancelled}, remaining={self.remaining()})"


__all__ = ["CommandContext"]
