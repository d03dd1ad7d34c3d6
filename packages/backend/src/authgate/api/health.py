"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and its dependencies (credential store, cache) are reachable.
"""

from fastapi import APIRouter, Request

from authgate import __version__
from authgate.cache.base import CacheError
from authgate.db.store import StoreError

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await request.app.state.credential_store.ping()
        checks["store"] = "ok"
    except StoreError:
        checks["store"] = "error"

    try:
        await request.app.state.cache.ping()
        checks["cache"] = "ok"
    except CacheError:
        checks["cache"] = "error"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks}
