"""In-memory response cache with TTL expiry."""

import logging
import math
import time
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .constants import ModelDefaults

V = TypeVar("V")

logger = logging.getLogger(__name__)

CACHE_PROMPT_PREFIX = ModelDefaults().cache_prompt_prefix


def generate_cache_key(prompt: str, model: str) -> str:
    """
    Build the cache key for a consultation.

    Only the first 100 characters of the prompt are used, so long prompts
    sharing a prefix map to the same entry. This keeps keys small at the
    price of occasional false hits.
    """
    return f"{model}:{prompt[:CACHE_PROMPT_PREFIX]}"


class ResponseCache(Generic[V]):
    """
    Key/value store whose entries expire ``ttl`` seconds after being set.

    Values are stored by reference; callers must not mutate them. Expired
    entries are dropped when read and by a sweep that runs at most once per
    ``check_period`` seconds. Each entry is an immutable (value, expiry)
    pair replaced in a single dict assignment, so readers never observe a
    half-written slot.
    """

    def __init__(
        self,
        ttl: float,
        check_period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.check_period = check_period
        self._clock = clock
        self._entries: Dict[str, Tuple[V, float]] = {}
        self._last_sweep = clock()
        self._hits = 0
        self._misses = 0

    def _live(self, key: str, now: float) -> Optional[Tuple[V, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry[1]:
            self._entries.pop(key, None)
            return None
        return entry

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.check_period:
            return
        self._last_sweep = now
        expired = [key for key, (_, expires_at) in list(self._entries.items()) if now >= expires_at]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug("cache sweep removed expired entries", extra={"removed": len(expired)})

    def get(self, key: str) -> Optional[V]:
        now = self._clock()
        self._maybe_sweep(now)
        entry = self._live(key, now)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry[0]

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        self._maybe_sweep(now)
        # A ttl of 0 keeps entries until deleted.
        expires_at = now + self.ttl if self.ttl > 0 else math.inf
        self._entries[key] = (value, expires_at)

    def has(self, key: str) -> bool:
        return self._live(key, self._clock()) is not None

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        now = self._clock()
        return [key for key, (_, expires_at) in list(self._entries.items()) if now < expires_at]

    def stats(self) -> Dict[str, int]:
        return {"hits": self._hits, "misses": self._misses, "keys": len(self.keys())}
