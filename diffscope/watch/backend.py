"""Filesystem notification sources.

The watcher only needs "call me with changed paths" and "stop". The default
backend uses watchdog observers, whose callbacks run on observer threads;
paths are handed to the asyncio loop with ``call_soon_threadsafe`` so all
watcher state is only touched from the loop thread.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from contextlib import suppress
from typing import Protocol

import structlog
from watchdog.events import EVENT_TYPE_MODIFIED, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = structlog.get_logger(__name__)

EventCallback = Callable[[list[str]], None]

OBSERVER_JOIN_TIMEOUT_SECONDS = 5.0

# Access notifications that never change content.
_IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class WatchSubscription(Protocol):
    """Handle for one active watch root."""

    def unsubscribe(self) -> None: ...


class WatchBackend(Protocol):
    """Source of filesystem change notifications."""

    def subscribe(self, path: str, callback: EventCallback) -> WatchSubscription: ...


class _LoopForwardingHandler(FileSystemEventHandler):
    """Hands changed paths from an observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: EventCallback) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        # Parents report "modified" for every change to an entry inside them.
        if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
            return
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        # The loop may already be closed during interpreter shutdown.
        with suppress(RuntimeError):
            self._loop.call_soon_threadsafe(self._callback, paths)


class ObserverSubscription:
    """A running watchdog observer for one root."""

    def __init__(self, observer: Observer, path: str) -> None:
        self._observer = observer
        self.path = path

    def unsubscribe(self) -> None:
        self._observer.stop()
        self._observer.join(timeout=OBSERVER_JOIN_TIMEOUT_SECONDS)


class WatchdogBackend:
    """Recursive watchdog observer per watch root."""

    def subscribe(self, path: str, callback: EventCallback) -> WatchSubscription:
        if not os.path.isdir(path):
            raise FileNotFoundError(f"Watch root does not exist: {path}")
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_LoopForwardingHandler(loop, callback), path, recursive=True)
        observer.daemon = True
        observer.start()
        logger.debug("Watching path", path=path)
        return ObserverSubscription(observer, path)
