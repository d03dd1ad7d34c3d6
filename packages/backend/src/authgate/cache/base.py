"""Cache store protocol."""

from typing import Optional, Protocol


class CacheError(Exception):
    """The cache is unreachable or returned something unusable."""


class CacheStore(Protocol):
    async def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Bump a fixed-window counter.

        Returns (count in the current window, seconds until the window resets).
        The first increment of a window starts its TTL; the key vanishes when
        the window ends, which is what resets it.
        """
        ...

    async def put_oauth_state(self, state: str, provider: str, ttl_seconds: int) -> None: ...

    async def pop_oauth_state(self, state: str) -> Optional[str]:
        """Atomically consume a state value, returning the provider it was issued for."""
        ...

    async def ping(self) -> None: ...
