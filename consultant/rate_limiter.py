"""Fixed-window request limiting per identifier."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .constants import RequestLimits
from .errors import RateLimitError
from .utils import KeyedLocks

logger = logging.getLogger(__name__)

WINDOW_SECONDS = RequestLimits().rate_limit_window


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


class RateLimiter:
    """
    Count requests per identifier in fixed windows.

    A window starts on the first request for an identifier and lasts
    ``window_seconds``. Check-and-increment is serialized per identifier.
    """

    def __init__(
        self,
        requests_per_minute: int = 20,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._locks = KeyedLocks()

    def check(self, identifier: str = "global") -> None:
        """Record one request for ``identifier`` or raise RateLimitError."""
        with self._locks(identifier):
            now = self._clock()
            window = self._windows.get(identifier)

            if window is None or now >= window.reset_at:
                self._windows[identifier] = RateLimitWindow(count=1, reset_at=now + self.window_seconds)
                return

            if window.count >= self.requests_per_minute:
                wait_seconds = math.ceil(window.reset_at - now)
                logger.warning(
                    "rate limit exceeded",
                    extra={"identifier": identifier, "wait_seconds": wait_seconds},
                )
                raise RateLimitError(
                    f"Rate limit exceeded. Please wait {wait_seconds} seconds "
                    "before making another request.",
                    wait_seconds,
                )

            window.count += 1

    def reset(self, identifier: str) -> None:
        with self._locks(identifier):
            self._windows.pop(identifier, None)

    def reset_all(self) -> None:
        self._windows.clear()

    def get_count(self, identifier: str) -> int:
        """Requests counted in the identifier's live window (0 if none)."""
        window = self._windows.get(identifier)
        if window is None or self._clock() >= window.reset_at:
            return 0
        return window.count

    def get_remaining(self, identifier: str) -> int:
        return max(0, self.requests_per_minute - self.get_count(identifier))
