"""Per-server review state shared across API modules."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Request

from diffscope.diff import DiffParser
from diffscope.models import DiffResponse
from diffscope.revisions import default_base
from diffscope.watch import ChangeWatcher

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReviewOptions:
    """What the server was started to review."""

    repo_path: str
    target: str = "HEAD"
    base: str | None = None
    ignore_whitespace: bool = False
    stdin_diff: str | None = None
    watch: bool = True

    @property
    def resolved_base(self) -> str:
        return self.base or default_base(self.target)


class ReviewState:
    """Parser, watcher and the server-side diff cache for one repository."""

    def __init__(
        self,
        options: ReviewOptions,
        *,
        parser: DiffParser | None = None,
        watcher: ChangeWatcher | None = None,
    ) -> None:
        self.options = options
        self.parser = parser or DiffParser(options.repo_path)
        self.watcher = watcher or ChangeWatcher()
        self._diffs: dict[tuple[str, str, bool], DiffResponse] = {}

    async def get_diff(
        self,
        target: str | None = None,
        base: str | None = None,
        ignore_whitespace: bool | None = None,
    ) -> DiffResponse:
        """Return the diff for the requested revisions, parsing on a cache miss."""
        if self.options.stdin_diff is not None:
            key = ("stdin", "", False)
            if key not in self._diffs:
                self._diffs[key] = self.parser.parse_patch(self.options.stdin_diff)
            return self._diffs[key]

        target = target or self.options.target
        if not base:
            if target == self.options.target:
                base = self.options.resolved_base
            else:
                base = default_base(target)
        if ignore_whitespace is None:
            ignore_whitespace = self.options.ignore_whitespace

        key = (target, base, ignore_whitespace)
        cached = self._diffs.get(key)
        if cached is not None:
            return cached
        diff = await self.parser.parse_diff(target, base, ignore_whitespace)
        self._diffs[key] = diff
        return diff

    def invalidate(self) -> None:
        """Forget parsed diffs and generated-status lookups."""
        if self.options.stdin_diff is not None:
            return
        dropped = len(self._diffs)
        self._diffs.clear()
        self.parser.clear_caches()
        logger.debug("Caches invalidated", diffs=dropped)


def get_review(request: Request) -> ReviewState:
    """FastAPI dependency returning the app's review state."""
    return request.app.state.review
