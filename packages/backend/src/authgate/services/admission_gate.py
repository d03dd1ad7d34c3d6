"""Admission gate — fixed-window rate limiting for credential endpoints.

Learn: register and login are the endpoints an attacker hammers
(password guessing, email enumeration). The gate counts attempts per
client per window in the shared cache and rejects anything over the
threshold *before* any password hashing or store lookup runs, so an
abusive client costs us one Redis round-trip per request and nothing more.

The counter lives in the cache, not in process memory, so every instance
behind the load balancer enforces the same quota.
"""

import structlog

from authgate.auth.errors import InfraError, RateLimited
from authgate.cache.base import CacheError, CacheStore

logger = structlog.get_logger()

# Endpoint class shared by register + login
AUTH_BUCKET = "auth"


class AdmissionGate:
    def __init__(
        self,
        cache: CacheStore,
        window_seconds: int = 60,
        max_attempts: int = 10,
        fail_open: bool = False,
    ):
        self.cache = cache
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.fail_open = fail_open

    async def admit(self, client_id: str, bucket: str = AUTH_BUCKET) -> int:
        """Count one attempt. Returns attempts remaining in this window.

        Raises RateLimited when over quota, InfraError when the counter
        store is down (unless fail_open).
        """
        key = f"{bucket}:{client_id}"
        try:
            count, ttl = await self.cache.increment(key, self.window_seconds)
        except CacheError as e:
            if self.fail_open:
                logger.warning("authgate.rate_limit_unavailable", error=str(e))
                return self.max_attempts
            logger.error("authgate.rate_limit_unavailable", error=str(e))
            raise InfraError(f"rate counter unavailable: {e}") from e

        if count > self.max_attempts:
            logger.warning(
                "authgate.rate_limited",
                client=client_id,
                bucket=bucket,
                count=count,
            )
            raise RateLimited(retry_after=max(1, ttl))
        return self.max_attempts - count
