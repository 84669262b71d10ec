"""Helpers for producing server-sent event (SSE) responses."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

from starlette.responses import StreamingResponse

from diffscope.broadcast import ClientSession
from diffscope.watch.watcher import ChangeWatcher

SSE_KEEPALIVE_SECONDS = 15.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_event(data: dict) -> str:
    """Serialize an event payload into SSE wire format."""
    payload = json.dumps(data, separators=(",", ":"))
    return f"data: {payload}\n\n"


async def sse_stream(
    watcher: ChangeWatcher,
    session: ClientSession,
    *,
    keepalive_seconds: float = SSE_KEEPALIVE_SECONDS,
) -> AsyncIterator[bytes]:
    """Stream watch notifications for one session as UTF-8 bytes."""
    watcher.add_client(session)
    try:
        while True:
            try:
                event = await asyncio.wait_for(session.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield b": keepalive\n\n"
                continue
            if event is None:
                break
            yield sse_event(event.to_wire()).encode("utf-8")
    finally:
        watcher.remove_client(session)
        session.close()


def stream_response(watcher: ChangeWatcher) -> StreamingResponse:
    """Build a StreamingResponse for the watch notification feed."""
    return StreamingResponse(
        sse_stream(watcher, ClientSession()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
