"""Repository change detection feeding cache invalidation and UI reloads."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from diffscope.broadcast import Broadcaster, ClientSession
from diffscope.errors import GitError
from diffscope.git import GitRunner, normalize_directory_path
from diffscope.models import ChangeType, WatchEvent, WatchEventType, WatchMode
from diffscope.settings import settings
from diffscope.watch.backend import WatchBackend, WatchdogBackend, WatchSubscription
from diffscope.watch.debounce import Debouncer
from diffscope.watch.globs import GlobMatcher, compile_globs, matches_any

logger = structlog.get_logger(__name__)

# Paths passed to one `git check-ignore` call, to stay well under ARG_MAX.
CHECK_IGNORE_BATCH = 256


@dataclass(frozen=True)
class ModeWatchConfig:
    """Which roots a mode watches and which paths it never cares about."""

    work_tree: bool
    git_dir: bool
    ignore: tuple[str, ...]
    git_files: frozenset[str]
    change_type: ChangeType


_BASE_IGNORE = (".git/objects/**", ".git/refs/**")

MODE_WATCH_CONFIGS: dict[WatchMode, ModeWatchConfig] = {
    WatchMode.DEFAULT: ModeWatchConfig(
        work_tree=False,
        git_dir=True,
        ignore=(*_BASE_IGNORE, "node_modules/**"),
        git_files=frozenset({"HEAD"}),
        change_type=ChangeType.COMMIT,
    ),
    WatchMode.WORKING: ModeWatchConfig(
        work_tree=True,
        git_dir=True,
        ignore=(*_BASE_IGNORE, "node_modules/**"),
        git_files=frozenset({"HEAD", "index"}),
        change_type=ChangeType.FILE,
    ),
    WatchMode.STAGED: ModeWatchConfig(
        work_tree=False,
        git_dir=True,
        ignore=_BASE_IGNORE,
        git_files=frozenset({"HEAD", "index"}),
        change_type=ChangeType.STAGING,
    ),
    WatchMode.DOT: ModeWatchConfig(
        work_tree=True,
        git_dir=True,
        ignore=(
            *_BASE_IGNORE,
            ".git/FETCH_HEAD",
            ".git/ORIG_HEAD",
            ".git/logs/**",
            "node_modules/**",
        ),
        git_files=frozenset({"HEAD"}),
        change_type=ChangeType.COMMIT,
    ),
}


async def resolve_git_dir(root: str, git: GitRunner) -> str:
    """Locate the metadata directory for ``root``.

    Linked worktrees keep their metadata outside the worktree, so
    ``git rev-parse --git-dir`` is asked first; relative answers are resolved
    against ``root``. Falls back to ``<root>/.git``.
    """
    try:
        output = (await git.run_text(["rev-parse", "--git-dir"])).strip()
    except GitError as exc:
        logger.debug("Could not resolve git dir; using default", root=root, error=str(exc))
        output = ""
    if not output:
        return os.path.join(root, ".git")
    return os.path.normpath(os.path.join(root, output))


def _is_within(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ChangeWatcher:
    """Watches a repository and turns bursts of changes into one reload.

    Lifecycle is ``start`` -> ``stop``; starting again first tears down the
    previous watch. All state is touched from the event loop thread only.
    """

    def __init__(
        self,
        *,
        backend: WatchBackend | None = None,
        git_factory: Callable[[str], GitRunner] = GitRunner,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self._backend = backend or WatchdogBackend()
        self._git_factory = git_factory
        self.broadcaster = broadcaster or Broadcaster()
        self._mode = WatchMode.DEFAULT
        self._root: str | None = None
        self._git_dir: str | None = None
        self._git: GitRunner | None = None
        self._config: ModeWatchConfig | None = None
        self._ignore: tuple[GlobMatcher, ...] = ()
        self._debouncer: Debouncer | None = None
        self._on_invalidate: Callable[[], None] | None = None
        self._subscriptions: list[WatchSubscription] = []
        self._pending: list[str] = []
        self._drain_task: asyncio.Task | None = None

    @property
    def mode(self) -> WatchMode:
        return self._mode

    @property
    def git_dir(self) -> str | None:
        return self._git_dir

    @property
    def watching(self) -> bool:
        return bool(self._subscriptions)

    async def start(
        self,
        mode: WatchMode,
        root_path: str,
        debounce_ms: int | None = None,
        on_invalidate: Callable[[], None] | None = None,
    ) -> None:
        """Begin watching ``root_path`` for changes relevant to ``mode``."""
        await self.stop()

        self._mode = mode
        self._root = normalize_directory_path(root_path)
        self._on_invalidate = on_invalidate
        config = MODE_WATCH_CONFIGS.get(mode)
        if config is None:
            logger.info("File watching disabled", mode=mode.value)
            return

        delay_ms = settings.debounce_ms() if debounce_ms is None else debounce_ms
        self._config = config
        self._ignore = compile_globs(config.ignore)
        self._git = self._git_factory(self._root)
        self._git_dir = await resolve_git_dir(self._root, self._git)
        self._debouncer = Debouncer(delay_ms / 1000, self._on_quiet)

        roots = []
        if config.work_tree:
            roots.append(self._root)
        if config.git_dir:
            roots.append(self._git_dir)
        for watch_root in roots:
            try:
                self._subscriptions.append(self._backend.subscribe(watch_root, self._on_events))
            except Exception:
                logger.warning("Could not watch path", path=watch_root, exc_info=True)

        logger.info(
            "File watching started",
            mode=mode.value,
            roots=roots,
            active=len(self._subscriptions),
            debounce_ms=delay_ms,
        )

    async def stop(self) -> None:
        """Cancel any pending reload, unsubscribe and drop every session.

        Safe to call repeatedly and at any point, including mid-debounce.
        """
        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None

        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        self._pending.clear()

        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await asyncio.to_thread(subscription.unsubscribe)
            except Exception:
                logger.warning("Error unsubscribing from file watcher", exc_info=True)

        self.broadcaster.clear()
        self._config = None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _event(
        self, event_type: WatchEventType, change_type: ChangeType, message: str
    ) -> WatchEvent:
        return WatchEvent(
            type=event_type,
            mode=self._mode,
            change_type=change_type,
            timestamp=_now(),
            message=message,
        )

    def add_client(self, session: ClientSession) -> None:
        """Register a session and greet it with the current mode."""
        self.broadcaster.add(session)
        self.broadcaster.send(
            session,
            self._event(
                WatchEventType.CONNECTED,
                ChangeType.FILE,
                f"Connected to file watcher ({self._mode.value} mode)",
            ),
        )

    def remove_client(self, session: ClientSession) -> None:
        self.broadcaster.remove(session)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _on_events(self, paths: list[str]) -> None:
        self._pending.extend(paths)
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain_pending())

    async def _drain_pending(self) -> None:
        """Filter queued paths batch by batch.

        Paths arriving while a batch is being checked wait for the next one,
        so a checkout touching thousands of files runs a handful of
        ``git check-ignore`` calls one after another.
        """
        while self._pending:
            paths, self._pending = self._pending, []
            try:
                await self.handle_events(paths)
            except Exception:
                logger.exception("Failed to filter change events", paths=len(paths))

    async def handle_events(self, paths: list[str]) -> bool:
        """Filter a batch of changed paths; arm the debouncer if any matter."""
        config = self._config
        if config is None:
            return False

        unchecked: dict[str, None] = {}
        relevant = False
        for path in paths:
            path = os.path.normpath(path)
            relative = self._relative_to_root(path)
            if matches_any(self._ignore, relative if relative is not None else path):
                continue
            if self._git_dir is not None and _is_within(path, self._git_dir):
                if os.path.basename(path) in config.git_files:
                    relevant = True
                    break
                continue
            # The root itself is never a change to review.
            if relative is not None and relative != os.curdir:
                unchecked.setdefault(relative)

        if not relevant and unchecked:
            relevant = await self._any_not_ignored(list(unchecked))
        if relevant and self._debouncer is not None:
            self._debouncer.arm()
        return relevant

    def _relative_to_root(self, path: str) -> str | None:
        if self._root is None or not _is_within(path, self._root):
            return None
        return os.path.relpath(path, self._root)

    async def _any_not_ignored(self, relative_paths: list[str]) -> bool:
        for start in range(0, len(relative_paths), CHECK_IGNORE_BATCH):
            chunk = relative_paths[start : start + CHECK_IGNORE_BATCH]
            ignored = await self._gitignored(chunk)
            if any(path not in ignored for path in chunk):
                return True
        return False

    async def _gitignored(self, relative_paths: list[str]) -> set[str]:
        """Return the subset of ``relative_paths`` matched by .gitignore rules."""
        if self._git is None:
            return set()
        try:
            output = await self._git.run(["check-ignore", "-z", "--", *relative_paths])
        except GitError:
            # Exit status 1 means nothing matched; any other failure is
            # treated the same way.
            return set()
        return {os.fsdecode(entry) for entry in output.split(b"\0") if entry}

    def _on_quiet(self) -> None:
        config = self._config
        if config is None:
            return
        if self._on_invalidate is not None:
            try:
                self._on_invalidate()
            except Exception:
                logger.exception("Cache invalidation failed")
        delivered = self.broadcaster.broadcast(
            self._event(
                WatchEventType.RELOAD,
                config.change_type,
                f"Changes detected in {self._mode.value} mode",
            )
        )
        logger.info("Repository changed", mode=self._mode.value, notified=delivered)
