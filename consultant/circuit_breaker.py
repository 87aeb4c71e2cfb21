"""Circuit breaker guarding calls to an unreliable upstream.

The breaker tracks the outcome of every call in a rolling time window:

- CLOSED: calls pass through. When the failure percentage over the window
  exceeds the threshold (and at least ``volume_threshold`` calls were
  seen), the breaker opens.
- OPEN: calls are rejected with CircuitOpenError without running the
  action. Once ``reset_timeout`` seconds have passed the breaker becomes
  HALF_OPEN.
- HALF_OPEN: exactly one probe call is let through. Success closes the
  breaker, failure opens it again.

Each call is also bounded by ``timeout`` seconds. A call that overruns is
counted as a failure and reported with CallTimeoutError; the underlying
work is left to finish on its own and its outcome is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from .errors import CallTimeoutError, CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


# Events delivered to listeners.
EVENT_OPEN = "open"
EVENT_HALF_OPEN = "half_open"
EVENT_CLOSE = "close"
EVENT_SUCCESS = "success"
EVENT_FAILURE = "failure"
EVENT_TIMEOUT = "timeout"
EVENT_REJECT = "reject"

Listener = Callable[[str, "CircuitBreaker"], None]


def _discard_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


class CircuitBreaker:
    """Three-state breaker shared by every caller of one upstream client."""

    def __init__(
        self,
        action: Callable[..., Awaitable[Any]],
        *,
        timeout: float = 30.0,
        error_threshold: float = 0.5,
        reset_timeout: float = 30.0,
        rolling_window: float = 10.0,
        volume_threshold: int = 0,
        name: str = "upstream",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._action = action
        self.timeout = timeout
        self.error_threshold = error_threshold
        self.reset_timeout = reset_timeout
        self.rolling_window = rolling_window
        self.volume_threshold = volume_threshold
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._outcomes: Deque[Tuple[float, bool]] = deque()
        self._listeners: List[Listener] = []
        self._counters: Dict[str, int] = {
            "fires": 0,
            "successes": 0,
            "failures": 0,
            "timeouts": 0,
            "rejects": 0,
        }

    # -- observers ---------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception:
                logger.exception(
                    "circuit breaker listener failed",
                    extra={"breaker": self.name, "event": event},
                )

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        self._state = new_state
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
            self._emit(EVENT_OPEN)
        elif new_state is CircuitState.HALF_OPEN:
            self._probe_in_flight = False
            self._emit(EVENT_HALF_OPEN)
        else:
            self._opened_at = None
            self._outcomes.clear()
            self._emit(EVENT_CLOSE)

    def open(self) -> None:
        """Force the breaker open."""
        self._probe_in_flight = False
        if self._state is CircuitState.OPEN:
            self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)

    def close(self) -> None:
        """Force the breaker closed and forget recorded outcomes."""
        self._probe_in_flight = False
        self._transition(CircuitState.CLOSED)
        self._outcomes.clear()

    def _trim(self, now: float) -> None:
        horizon = now - self.rolling_window
        while self._outcomes and self._outcomes[0][0] <= horizon:
            self._outcomes.popleft()

    def error_percentage(self) -> float:
        """Failure percentage (0-100) over the rolling window."""
        self._trim(self._clock())
        if not self._outcomes:
            return 0.0
        failures = sum(1 for _, ok in self._outcomes if not ok)
        return failures / len(self._outcomes) * 100

    def stats(self) -> Dict[str, Any]:
        return {
            **self._counters,
            "state": self.state.value,
            "error_percentage": round(self.error_percentage(), 2),
            "window_size": len(self._outcomes),
        }

    # -- calls -------------------------------------------------------------

    def _admit(self) -> bool:
        """Decide whether a call may run; returns True if it is the probe."""
        state = self.state
        if state is CircuitState.CLOSED:
            return False
        if state is CircuitState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True

        self._counters["rejects"] += 1
        self._emit(EVENT_REJECT)
        retry_after = None
        if self._opened_at is not None:
            retry_after = max(0.0, self.reset_timeout - (self._clock() - self._opened_at))
        raise CircuitOpenError(
            f"Circuit breaker '{self.name}' is open; upstream calls are failing fast.",
            retry_after=retry_after,
        )

    def _record(self, success: bool, probe: bool) -> None:
        now = self._clock()
        self._outcomes.append((now, success))
        self._trim(now)
        self._counters["successes" if success else "failures"] += 1
        self._emit(EVENT_SUCCESS if success else EVENT_FAILURE)

        if probe:
            self._probe_in_flight = False
            self._transition(CircuitState.CLOSED if success else CircuitState.OPEN)
            return
        if success or self._state is not CircuitState.CLOSED:
            return
        if len(self._outcomes) < self.volume_threshold:
            return
        if self.error_percentage() > self.error_threshold * 100:
            logger.debug(
                "circuit breaker threshold crossed",
                extra={"breaker": self.name, "window_size": len(self._outcomes)},
            )
            self._transition(CircuitState.OPEN)

    async def fire(self, *args: Any, **kwargs: Any) -> Any:
        """Run the wrapped action through the breaker."""
        probe = self._admit()
        self._counters["fires"] += 1

        task = asyncio.ensure_future(self._action(*args, **kwargs))
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_outcome)
            self._counters["timeouts"] += 1
            self._emit(EVENT_TIMEOUT)
            self._record(False, probe)
            raise CallTimeoutError(
                f"Call timed out after {self.timeout:g} seconds",
                timeout_seconds=self.timeout,
            ) from None
        except asyncio.CancelledError:
            task.add_done_callback(_discard_outcome)
            if probe:
                self._probe_in_flight = False
            raise
        except Exception:
            self._record(False, probe)
            raise
        self._record(True, probe)
        return result
