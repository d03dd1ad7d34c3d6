"""API route aggregation.

All routers registered here get mounted in main.py.
"""

from fastapi import APIRouter

from authgate.api.auth import router as auth_router
from authgate.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
