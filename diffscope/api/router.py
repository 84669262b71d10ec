"""Composition of API routers."""

from __future__ import annotations

from fastapi import APIRouter

from diffscope.api.diff import router as diff_router
from diffscope.api.events import router as events_router
from diffscope.api.health import router as health_router

api_router = APIRouter(prefix="/api")
api_router.include_router(diff_router)
api_router.include_router(events_router)
api_router.include_router(health_router)
