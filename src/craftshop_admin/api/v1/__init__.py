"""Routers of the craftshop admin API."""

from fastapi import APIRouter

from .account import router as account_router
from .health import router as health_router
from .oauth2 import router as oauth2_router

# Paths are served from the application root.
router = APIRouter()

router.include_router(health_router, tags=["health"])
router.include_router(oauth2_router)
router.include_router(account_router)


__all__ = ["router"]
