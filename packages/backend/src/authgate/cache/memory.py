"""In-process cache store (AUTHGATE_USE_MEMORY_STORES and tests).

Only safe with a single process; the counters are not shared. Expired
counters and states are swept on every write, so the dicts stay bounded
by the number of live windows.
"""

import time
from typing import Callable, Optional


class MemoryCache:
    """CacheStore backed by dicts with monotonic-clock expiry."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._now = clock or time.monotonic
        self._counters: dict[str, tuple[int, float]] = {}
        self._states: dict[str, tuple[str, float]] = {}

    @property
    def size(self) -> int:
        """Counters plus OAuth states currently held."""
        return len(self._counters) + len(self._states)

    def _sweep(self, now: float) -> None:
        for table in (self._counters, self._states):
            for key in [k for k, (_, expires_at) in table.items() if expires_at <= now]:
                del table[key]

    async def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        now = self._now()
        self._sweep(now)
        count, expires_at = self._counters.get(key, (0, now + window_seconds))
        count += 1
        self._counters[key] = (count, expires_at)
        return count, max(1, int(round(expires_at - now)))

    async def put_oauth_state(self, state: str, provider: str, ttl_seconds: int) -> None:
        now = self._now()
        self._sweep(now)
        self._states[state] = (provider, now + ttl_seconds)

    async def pop_oauth_state(self, state: str) -> Optional[str]:
        entry = self._states.pop(state, None)
        if entry is None:
            return None
        provider, expires_at = entry
        if expires_at <= self._now():
            return None
        return provider

    async def ping(self) -> None:
        return None
