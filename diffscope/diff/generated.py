"""Detection of tool-generated files and a small TTL cache for the results."""

from __future__ import annotations

import posixpath
import re
import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

GENERATED_BASENAMES = frozenset(
    {
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "Cargo.lock",
        "Gemfile.lock",
        "poetry.lock",
        "composer.lock",
        "Pipfile.lock",
        "go.sum",
        "go.mod",
        "pubspec.lock",
        "flake.lock",
    }
)

GENERATED_SUFFIXES = (".lock", ".min.js", ".min.css", ".map")

# Markers only count near the top of a file.
CONTENT_SCAN_BYTES = 8 * 1024

_CONTENT_MARKERS = (
    re.compile(rb"@generated\b"),
    re.compile(rb"<auto-generated"),
    re.compile(rb"Code generated .* DO NOT EDIT"),
)


def is_generated_path(path: str) -> bool:
    """Return True when the path alone marks the file as generated."""
    basename = posixpath.basename(path.replace("\\", "/"))
    if basename in GENERATED_BASENAMES:
        return True
    return basename.lower().endswith(GENERATED_SUFFIXES)


def has_generated_marker(content: bytes) -> bool:
    """Return True when the head of the content carries a generator marker."""
    head = content[:CONTENT_SCAN_BYTES]
    return any(marker.search(head) for marker in _CONTENT_MARKERS)


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Mapping whose entries expire a fixed number of seconds after insertion.

    Expired entries are evicted lazily on lookup. There is no ordering or
    size bound; ``clear`` drops everything.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def put(self, key: K, value: V) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
