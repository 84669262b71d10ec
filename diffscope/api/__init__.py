"""API package for diff review and watch notification endpoints."""

from __future__ import annotations

from diffscope.api.router import api_router

__all__ = ["api_router"]
