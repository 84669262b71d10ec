"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from diffscope import __version__
from diffscope.api.schemas import HealthResponse
from diffscope.api.state import ReviewState, get_review

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(review: ReviewState = Depends(get_review)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        ok=True,
        version=__version__,
        mode=review.watcher.mode,
        watching=review.watcher.watching,
    )
