"""Pydantic response models for API endpoints that have no domain model."""

from __future__ import annotations

from diffscope.models import WatchMode, WireModel


class HealthResponse(WireModel):
    """Response body for the health check."""

    ok: bool
    version: str
    mode: WatchMode
    watching: bool


class LineCountResponse(WireModel):
    """Number of lines in a file at a revision."""

    path: str
    ref: str
    line_count: int
