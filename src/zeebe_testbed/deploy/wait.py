"""Readiness wait strategies for zeebe-testbed.

A wait strategy gates control on an externally observable signal instead of
a fixed sleep. It polls a target at the configured interval and ends in
exactly one terminal result: ``Ok(Ready)`` as soon as the signal is seen, or
``Err(WaitTimedOut)`` once ``max_wait`` has elapsed.

Why polling instead of sleeping:
    Broker startup latency varies with cold image pulls and disk contention.
    A fixed delay is either too short (flaky) or too long (slow). Polling
    the broker's own readiness marker costs at most one poll interval of
    extra latency.

Key Concepts:
    WaitTarget: Anything that can return its log output since a cursor.
    LogChunk: One such read: the new text plus the cursor for the next read.
    ReadinessState: READY / NOT_YET / TIMED_OUT, the result of one poll.
    WaitStrategy: Base class. ``poll()`` classifies one observation,
        ``wait()`` loops on the calling thread until a terminal state.
    LogMarkerWaitStrategy: Ready once the marker substring appears in the
        target's logs.

Timing guarantee:
    The sleep between polls is clamped to the time left before ``max_wait``,
    so a strategy whose marker never appears returns ``TimedOut`` no later
    than ``max_wait`` plus the duration of the final poll.

Lifecycle:
    A strategy instance is single-use. Calling ``wait()`` a second time
    raises :class:`WaitStrategyStateError`. Build a new strategy per
    container start.

Example::

    strategy = LogMarkerWaitStrategy(
        WaitCondition(target_marker="Bootstrap Broker-0 succeeded", max_wait=30)
    )
    result = strategy.wait(handle)
    if result.is_err():
        raise StartError(...)

Tags:
    readiness, wait-strategy, polling, logs, container
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from zeebe_testbed.core.errors import WaitStrategyStateError, WaitTimedOut
from zeebe_testbed.core.logging import get_logger
from zeebe_testbed.core.result import Err, Ok, Result
from zeebe_testbed.deploy.config import WaitCondition

logger = get_logger(__name__)


@dataclass(frozen=True)
class LogChunk:
    """Log text read since a cursor, and the cursor to resume from."""

    text: str
    cursor: str | None


class WaitTarget(Protocol):
    """A process whose output can be inspected while it starts."""

    def read_logs(self, cursor: str | None = None) -> LogChunk: ...


class ReadinessState(str, Enum):
    """Outcome of a single poll."""

    READY = "READY"
    NOT_YET = "NOT_YET"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class Ready:
    """Terminal success of a wait."""

    elapsed: float
    polls: int


class WaitStrategy(ABC):
    """Base class for readiness wait strategies.

    Subclasses implement :meth:`check`; the base class owns elapsed-time
    tracking, the timeout decision and the single-use guard.

    Parameters
    ----------
    condition
        Poll interval, max wait and marker.
    clock
        Monotonic clock, injectable for tests.
    sleep
        Blocking sleep, injectable for tests.
    """

    def __init__(
        self,
        condition: WaitCondition,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.condition = condition
        self._clock = clock
        self._sleep = sleep
        self._started_at: float | None = None
        self._terminal: ReadinessState | None = None
        self._used = False
        self._lock = threading.Lock()

    @abstractmethod
    def check(self, target: WaitTarget) -> bool:
        """Return True once the target shows the readiness signal."""

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def poll(self, target: WaitTarget) -> ReadinessState:
        """Classify the target's current state without sleeping.

        READY and TIMED_OUT are terminal: once either is returned, every
        later poll returns it again without looking at the target.
        """
        if self._terminal is not None:
            return self._terminal
        if self._started_at is None:
            self._started_at = self._clock()
        if self.check(target):
            self._terminal = ReadinessState.READY
        elif self.elapsed >= self.condition.max_wait:
            self._terminal = ReadinessState.TIMED_OUT
        else:
            return ReadinessState.NOT_YET
        return self._terminal

    def wait(self, target: WaitTarget) -> Result[Ready]:
        """Block until the target is ready or ``max_wait`` elapses.

        Returns
        -------
        Result[Ready]
            ``Ok(Ready)`` or ``Err(WaitTimedOut)``.

        Raises
        ------
        WaitStrategyStateError
            If this strategy already ran.
        """
        with self._lock:
            if self._used:
                raise WaitStrategyStateError(
                    f"{type(self).__name__} already reached a terminal result; create a new one"
                )
            self._used = True

        self._started_at = self._clock()
        polls = 0
        logger.debug(
            "wait.started",
            strategy=type(self).__name__,
            poll_interval=self.condition.poll_interval,
            max_wait=self.condition.max_wait,
        )

        while True:
            polls += 1
            state = self.poll(target)

            if state is ReadinessState.READY:
                ready = Ready(elapsed=self.elapsed, polls=polls)
                logger.info("wait.ready", elapsed=round(ready.elapsed, 3), polls=polls)
                return Ok(ready)

            if state is ReadinessState.TIMED_OUT:
                elapsed = self.elapsed
                logger.warning("wait.timed_out", elapsed=round(elapsed, 3), polls=polls)
                return Err(
                    WaitTimedOut(
                        f"readiness signal not observed within {self.condition.max_wait}s",
                        elapsed=elapsed,
                    ).with_context(marker=self.condition.target_marker, polls=polls)
                )

            remaining = self.condition.max_wait - self.elapsed
            self._sleep(max(0.0, min(self.condition.poll_interval, remaining)))


class LogMarkerWaitStrategy(WaitStrategy):
    """Ready once ``condition.target_marker`` appears in the target's logs.

    Each check reads only the lines written since the previous one.
    """

    def __init__(self, condition: WaitCondition, **kwargs: Any) -> None:
        super().__init__(condition, **kwargs)
        self._cursor: str | None = None

    def check(self, target: WaitTarget) -> bool:
        chunk = target.read_logs(self._cursor)
        self._cursor = chunk.cursor
        return self.condition.target_marker in chunk.text


__all__ = [
    "LogChunk",
    "WaitTarget",
    "ReadinessState",
    "Ready",
    "WaitStrategy",
    "LogMarkerWaitStrategy",
]
