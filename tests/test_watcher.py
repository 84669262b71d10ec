"""Tests for the change watcher pipeline."""

import asyncio
import math
import os
import shutil

import pytest

from diffscope.broadcast import ClientSession
from diffscope.errors import GitCommandError
from diffscope.git import GitRunner, normalize_directory_path
from diffscope.models import ChangeType, WatchEventType, WatchMode
from diffscope.watch import ChangeWatcher, resolve_git_dir
from diffscope.watch.backend import WatchdogBackend
from diffscope.watch.watcher import CHECK_IGNORE_BATCH

DEBOUNCE_MS = 30
SETTLE_SECONDS = 0.15


@pytest.fixture
def root(tmp_path) -> str:
    return normalize_directory_path(str(tmp_path))


@pytest.fixture
def watcher(fake_backend, fake_git) -> ChangeWatcher:
    fake_git.respond(["rev-parse", "--git-dir"], ".git\n")
    return ChangeWatcher(backend=fake_backend, git_factory=lambda root: fake_git)


async def _drain(session: ClientSession) -> list:
    events = []
    while True:
        try:
            event = await asyncio.wait_for(session.get(), 0.01)
        except asyncio.TimeoutError:
            return events
        if event is None:
            return events
        events.append(event)


class TestResolveGitDir:
    @pytest.mark.anyio
    async def test_relative_answer_resolved_against_root(self, fake_git) -> None:
        fake_git.respond(["rev-parse", "--git-dir"], ".git\n")
        assert await resolve_git_dir("/work/repo", fake_git) == "/work/repo/.git"

    @pytest.mark.anyio
    async def test_absolute_worktree_answer_used(self, fake_git) -> None:
        fake_git.respond(["rev-parse", "--git-dir"], "/main/repo/.git/worktrees/wt\n")
        assert await resolve_git_dir("/work/wt", fake_git) == "/main/repo/.git/worktrees/wt"

    @pytest.mark.anyio
    async def test_failure_falls_back(self, fake_git) -> None:
        assert await resolve_git_dir("/work/repo", fake_git) == "/work/repo/.git"


class TestStart:
    @pytest.mark.anyio
    async def test_working_mode_watches_tree_and_git_dir(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)

        assert fake_backend.roots == [root, os.path.join(root, ".git")]
        assert watcher.watching is True
        assert watcher.git_dir == os.path.join(root, ".git")

    @pytest.mark.anyio
    async def test_default_mode_watches_git_dir_only(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.DEFAULT, root, debounce_ms=DEBOUNCE_MS)
        assert fake_backend.roots == [os.path.join(root, ".git")]

    @pytest.mark.anyio
    async def test_specific_mode_watches_nothing(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.SPECIFIC, root)
        assert fake_backend.roots == []
        assert watcher.watching is False
        assert await watcher.handle_events([os.path.join(root, "a.py")]) is False

    @pytest.mark.anyio
    async def test_failed_root_does_not_block_others(self, watcher, fake_backend, root) -> None:
        fake_backend.failing.add(root)

        await watcher.start(WatchMode.DOT, root, debounce_ms=DEBOUNCE_MS)

        assert fake_backend.roots == [os.path.join(root, ".git")]

    @pytest.mark.anyio
    async def test_restart_unsubscribes_previous(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        first = list(fake_backend.subscriptions)

        await watcher.start(WatchMode.STAGED, root, debounce_ms=DEBOUNCE_MS)

        assert all(not s.active for s in first)
        assert fake_backend.roots == [os.path.join(root, ".git")]
        assert watcher.mode is WatchMode.STAGED


class TestFiltering:
    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "mode", [WatchMode.DEFAULT, WatchMode.WORKING, WatchMode.STAGED, WatchMode.DOT]
    )
    async def test_git_objects_never_relevant(self, watcher, root, mode) -> None:
        await watcher.start(mode, root, debounce_ms=DEBOUNCE_MS)
        path = os.path.join(root, ".git", "objects", "ab", "cdef")
        assert await watcher.handle_events([path]) is False

    @pytest.mark.anyio
    async def test_head_relevant_in_default_mode(self, watcher, root) -> None:
        await watcher.start(WatchMode.DEFAULT, root, debounce_ms=DEBOUNCE_MS)
        assert await watcher.handle_events([os.path.join(root, ".git", "HEAD")]) is True
        assert await watcher.handle_events([os.path.join(root, ".git", "index")]) is False

    @pytest.mark.anyio
    async def test_index_relevant_in_staged_mode(self, watcher, root) -> None:
        await watcher.start(WatchMode.STAGED, root, debounce_ms=DEBOUNCE_MS)
        assert await watcher.handle_events([os.path.join(root, ".git", "index")]) is True

    @pytest.mark.anyio
    async def test_dot_mode_ignores_fetch_head(self, watcher, root) -> None:
        await watcher.start(WatchMode.DOT, root, debounce_ms=DEBOUNCE_MS)
        assert await watcher.handle_events([os.path.join(root, ".git", "FETCH_HEAD")]) is False
        assert await watcher.handle_events([os.path.join(root, ".git", "logs", "HEAD")]) is False

    @pytest.mark.anyio
    async def test_node_modules_ignored(self, watcher, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        path = os.path.join(root, "node_modules", "pkg", "index.js")
        assert await watcher.handle_events([path]) is False

    @pytest.mark.anyio
    async def test_gitignored_file_dropped(self, watcher, fake_git, root) -> None:
        fake_git.respond(["check-ignore", "-z", "--", "build/out.o"], b"build/out.o\0")
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)

        assert await watcher.handle_events([os.path.join(root, "build", "out.o")]) is False
        assert await watcher.handle_events([os.path.join(root, "src", "app.py")]) is True

    @pytest.mark.anyio
    async def test_check_ignore_failure_means_not_ignored(self, watcher, fake_git, root) -> None:
        fake_git.respond(
            ["check-ignore", "-z", "--", "x.py"], GitCommandError(["check-ignore"], 128, "fatal")
        )
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        assert await watcher.handle_events([os.path.join(root, "x.py")]) is True

    @pytest.mark.anyio
    async def test_worktree_git_dir_outside_root(self, fake_backend, fake_git, root) -> None:
        git_dir = "/main/repo/.git/worktrees/wt"
        fake_git.respond(["rev-parse", "--git-dir"], git_dir + "\n")
        watcher = ChangeWatcher(backend=fake_backend, git_factory=lambda r: fake_git)
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)

        assert fake_backend.roots == [root, git_dir]
        assert await watcher.handle_events([os.path.join(git_dir, "index")]) is True
        assert await watcher.handle_events([os.path.join(git_dir, "ORIG_HEAD")]) is False

    @pytest.mark.anyio
    async def test_any_relevant_path_in_batch_counts(self, watcher, root) -> None:
        await watcher.start(WatchMode.DEFAULT, root, debounce_ms=DEBOUNCE_MS)
        paths = [os.path.join(root, ".git", "objects", "x"), os.path.join(root, ".git", "HEAD")]
        assert await watcher.handle_events(paths) is True

    @pytest.mark.anyio
    async def test_root_directory_event_not_relevant(self, watcher, fake_git, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)

        assert await watcher.handle_events([root]) is False
        assert not any(call[0] == "check-ignore" for call in fake_git.calls)

    @pytest.mark.anyio
    async def test_relevant_git_file_skips_ignore_check(self, watcher, fake_git, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        paths = [os.path.join(root, "a.py"), os.path.join(root, ".git", "index")]

        assert await watcher.handle_events(paths) is True
        assert not any(call[0] == "check-ignore" for call in fake_git.calls)


def _all_ignored(args: list[str]) -> bytes:
    paths = args[args.index("--") + 1 :]
    return "".join(f"{path}\0" for path in paths).encode()


class TestIgnoreCheckBatching:
    @pytest.mark.anyio
    async def test_batch_checked_with_one_call(self, watcher, fake_git, root) -> None:
        fake_git.respond(["check-ignore", "-z", "--", "a.log", "b.log"], b"a.log\0b.log\0")
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        paths = [os.path.join(root, name) for name in ("a.log", "b.log", "a.log")]

        assert await watcher.handle_events(paths) is False
        checks = [call for call in fake_git.calls if call[0] == "check-ignore"]
        assert checks == [["check-ignore", "-z", "--", "a.log", "b.log"]]

    @pytest.mark.anyio
    async def test_partly_ignored_batch_is_relevant(self, watcher, fake_git, root) -> None:
        fake_git.respond(["check-ignore", "-z", "--", "a.log", "src/a.py"], b"a.log\0")
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        paths = [os.path.join(root, "a.log"), os.path.join(root, "src", "a.py")]

        assert await watcher.handle_events(paths) is True

    @pytest.mark.anyio
    async def test_large_burst_runs_checks_one_at_a_time(
        self, watcher, fake_git, fake_backend, root
    ) -> None:
        fake_git.respond_with("check-ignore", _all_ignored)
        fake_git.delay = 0.001
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        session = ClientSession()
        watcher.add_client(session)
        callback = fake_backend.subscriptions[0].callback

        burst = 1000
        for index in range(burst):
            callback([os.path.join(root, "build", f"obj{index}.o")])
        await asyncio.sleep(SETTLE_SECONDS)

        checks = [call for call in fake_git.calls if call[0] == "check-ignore"]
        assert fake_git.max_in_flight == 1
        assert len(checks) == math.ceil(burst / CHECK_IGNORE_BATCH)
        assert [e.type for e in await _drain(session)] == [WatchEventType.CONNECTED]

    @pytest.mark.anyio
    async def test_stop_drops_queued_paths(self, watcher, fake_git, fake_backend, root) -> None:
        fake_git.respond_with("check-ignore", _all_ignored)
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        fake_backend.subscriptions[0].callback([os.path.join(root, "a.log")])

        await watcher.stop()
        await asyncio.sleep(SETTLE_SECONDS)

        assert not any(call[0] == "check-ignore" for call in fake_git.calls)


class TestDebouncedBroadcast:
    @pytest.mark.anyio
    async def test_burst_produces_one_reload(self, watcher, root) -> None:
        invalidations = []
        await watcher.start(
            WatchMode.WORKING,
            root,
            debounce_ms=DEBOUNCE_MS,
            on_invalidate=lambda: invalidations.append(1),
        )
        session = ClientSession()
        watcher.add_client(session)

        for name in ("a.py", "b.py", "c.py"):
            await watcher.handle_events([os.path.join(root, name)])
        await asyncio.sleep(SETTLE_SECONDS)

        events = await _drain(session)
        assert [e.type for e in events] == [WatchEventType.CONNECTED, WatchEventType.RELOAD]
        assert invalidations == [1]
        reload = events[1]
        assert reload.change_type is ChangeType.FILE
        assert reload.message == "Changes detected in working mode"

    @pytest.mark.anyio
    async def test_spaced_bursts_produce_two_reloads(self, watcher, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        session = ClientSession()
        watcher.add_client(session)

        await watcher.handle_events([os.path.join(root, "a.py")])
        await watcher.handle_events([os.path.join(root, "b.py")])
        await asyncio.sleep(SETTLE_SECONDS)
        await watcher.handle_events([os.path.join(root, "c.py")])
        await asyncio.sleep(SETTLE_SECONDS)

        events = await _drain(session)
        assert [e.type for e in events].count(WatchEventType.RELOAD) == 2

    @pytest.mark.anyio
    async def test_change_type_per_mode(self, watcher, root) -> None:
        await watcher.start(WatchMode.STAGED, root, debounce_ms=DEBOUNCE_MS)
        session = ClientSession()
        watcher.add_client(session)

        await watcher.handle_events([os.path.join(root, ".git", "index")])
        await asyncio.sleep(SETTLE_SECONDS)

        events = await _drain(session)
        assert events[-1].change_type is ChangeType.STAGING

    @pytest.mark.anyio
    async def test_invalidation_error_still_broadcasts(self, watcher, root) -> None:
        def fail() -> None:
            raise RuntimeError("cache broke")

        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS, on_invalidate=fail)
        session = ClientSession()
        watcher.add_client(session)

        await watcher.handle_events([os.path.join(root, "a.py")])
        await asyncio.sleep(SETTLE_SECONDS)

        assert (await _drain(session))[-1].type is WatchEventType.RELOAD

    @pytest.mark.anyio
    async def test_backend_callback_schedules_filtering(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        session = ClientSession()
        watcher.add_client(session)

        fake_backend.subscriptions[0].callback([os.path.join(root, "a.py")])
        await asyncio.sleep(SETTLE_SECONDS)

        assert (await _drain(session))[-1].type is WatchEventType.RELOAD


class TestSessionsAndStop:
    @pytest.mark.anyio
    async def test_connected_event_names_mode(self, watcher, root) -> None:
        await watcher.start(WatchMode.DOT, root, debounce_ms=DEBOUNCE_MS)
        session = ClientSession()
        watcher.add_client(session)

        event = await session.get()
        assert event.type is WatchEventType.CONNECTED
        assert event.mode is WatchMode.DOT
        assert event.message == "Connected to file watcher (dot mode)"
        assert event.to_wire()["changeType"] == "file"

    @pytest.mark.anyio
    async def test_remove_client(self, watcher, root) -> None:
        session = ClientSession()
        watcher.add_client(session)
        watcher.remove_client(session)
        assert session not in watcher.broadcaster

    @pytest.mark.anyio
    async def test_stop_mid_debounce_cancels_reload(self, watcher, fake_backend, root) -> None:
        invalidations = []
        await watcher.start(
            WatchMode.WORKING,
            root,
            debounce_ms=DEBOUNCE_MS,
            on_invalidate=lambda: invalidations.append(1),
        )
        session = ClientSession()
        watcher.add_client(session)
        await watcher.handle_events([os.path.join(root, "a.py")])

        await watcher.stop()
        await asyncio.sleep(SETTLE_SECONDS)

        assert invalidations == []
        assert session.closed is True
        assert len(watcher.broadcaster) == 0
        assert all(not s.active for s in fake_backend.subscriptions)

    @pytest.mark.anyio
    async def test_stop_is_idempotent(self, watcher, root) -> None:
        await watcher.stop()
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)
        await watcher.stop()
        await watcher.stop()
        assert watcher.watching is False

    @pytest.mark.anyio
    async def test_unsubscribe_failure_logged_not_raised(self, watcher, fake_backend, root) -> None:
        await watcher.start(WatchMode.WORKING, root, debounce_ms=DEBOUNCE_MS)

        def broken() -> None:
            raise OSError("gone")

        fake_backend.subscriptions[0].unsubscribe = broken
        await watcher.stop()
        assert watcher.watching is False


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestRealRepository:
    """Real git and a real watchdog observer on a scratch repository."""

    @pytest.mark.anyio
    async def test_ignored_write_does_not_reload(self, root) -> None:
        await GitRunner(root).run(["init", "-q"])
        with open(os.path.join(root, ".gitignore"), "w") as handle:
            handle.write("*.log\n")
        os.mkdir(os.path.join(root, "src"))

        watcher = ChangeWatcher(backend=WatchdogBackend())
        await watcher.start(WatchMode.WORKING, root, debounce_ms=200)
        session = ClientSession()
        watcher.add_client(session)
        try:
            await asyncio.sleep(0.2)
            await _drain(session)

            with open(os.path.join(root, "debug.log"), "w") as handle:
                handle.write("noise\n")
            with open(os.path.join(root, "src", "trace.log"), "w") as handle:
                handle.write("noise\n")
            await asyncio.sleep(1.0)
            assert await _drain(session) == []

            with open(os.path.join(root, "src", "app.py"), "w") as handle:
                handle.write("print('hi')\n")
            await asyncio.sleep(1.0)
            types = [e.type for e in await _drain(session)]
            assert types and set(types) == {WatchEventType.RELOAD}
        finally:
            await watcher.stop()
