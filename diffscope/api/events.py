"""SSE watch notification endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from diffscope.api.state import ReviewState, get_review
from diffscope.sse import stream_response

router = APIRouter(tags=["events"])


@router.get("/watch")
async def watch(review: ReviewState = Depends(get_review)):
    """SSE stream of reload notifications for the browser UI."""
    return stream_response(review.watcher)
