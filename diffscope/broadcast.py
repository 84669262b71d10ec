"""Fan-out of watch notifications to connected UI sessions."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import suppress

import structlog

from diffscope.errors import SessionClosedError
from diffscope.models import WatchEvent

logger = structlog.get_logger(__name__)

SESSION_QUEUE_SIZE = 64


class ClientSession:
    """One open notification channel, usually a browser tab's SSE stream.

    Events are buffered in a bounded queue; a session that stops reading
    fills it and is treated as failed by the broadcaster.
    """

    def __init__(self, max_pending: int = SESSION_QUEUE_SIZE) -> None:
        self.id = f"client_{uuid.uuid4().hex[:12]}"
        self._queue: asyncio.Queue[WatchEvent | None] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def send(self, event: WatchEvent) -> None:
        """Queue an event for delivery.

        Raises:
            SessionClosedError: the session was closed.
            asyncio.QueueFull: the reader has fallen too far behind.
        """
        if self.closed:
            raise SessionClosedError(f"Session {self.id} is closed")
        self._queue.put_nowait(event)

    async def get(self) -> WatchEvent | None:
        """Wait for the next event; None once the session is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    async def events(self) -> AsyncIterator[WatchEvent]:
        """Yield queued events until the session is closed."""
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake a reader blocked in get(); a full queue is drained first anyway.
        with suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)


class Broadcaster:
    """Unordered set of sessions receiving the same events."""

    def __init__(self) -> None:
        self._sessions: set[ClientSession] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        return session in self._sessions

    def add(self, session: ClientSession) -> None:
        self._sessions.add(session)
        logger.debug("Client connected", client_id=session.id, total_clients=len(self._sessions))

    def remove(self, session: ClientSession) -> None:
        self._sessions.discard(session)

    def send(self, session: ClientSession, event: WatchEvent) -> bool:
        """Deliver to one session, dropping it if the write fails."""
        try:
            session.send(event)
        except (SessionClosedError, asyncio.QueueFull) as exc:
            logger.warning(
                "Failed to send event to client; removing it",
                client_id=session.id,
                error=type(exc).__name__,
            )
            self.remove(session)
            session.close()
            return False
        return True

    def broadcast(self, event: WatchEvent) -> int:
        """Deliver to every session and return how many accepted the event."""
        delivered = 0
        for session in list(self._sessions):
            if self.send(session, event):
                delivered += 1
        logger.debug(
            "Broadcast event",
            event_type=event.type.value,
            delivered=delivered,
            total_clients=len(self._sessions),
        )
        return delivered

    def clear(self) -> None:
        """Close and forget every session."""
        sessions = list(self._sessions)
        self._sessions.clear()
        for session in sessions:
            session.close()
