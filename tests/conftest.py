"""Shared pytest fixtures for diffscope tests."""

import asyncio
import os
from typing import AsyncGenerator

import httpx
import pytest

# Host machine settings must not leak into test results.
for key in list(os.environ):
    if key.startswith("DIFFSCOPE_"):
        os.environ.pop(key, None)

from diffscope.api.state import ReviewOptions, ReviewState
from diffscope.diff import DiffParser
from diffscope.errors import GitCommandError
from diffscope.main import create_app
from diffscope.watch import ChangeWatcher


class FakeGit:
    """Stand-in for GitRunner answering from a table of canned outputs.

    Unknown commands fail the way git does for a bad revision. Handlers
    registered with ``respond_with`` answer every call of one subcommand.
    """

    def __init__(self, responses: dict | None = None, *, max_buffer_bytes: int = 1024 * 1024):
        self.repo_path = "/repo"
        self.max_buffer_bytes = max_buffer_bytes
        self.responses = dict(responses or {})
        self.handlers: dict = {}
        self.calls: list[list[str]] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def respond(self, args: list[str], value) -> None:
        self.responses[tuple(args)] = value

    def respond_with(self, command: str, handler) -> None:
        self.handlers[command] = handler

    async def run(self, args: list[str]) -> bytes:
        self.calls.append(list(args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._answer(args)
        finally:
            self.in_flight -= 1

    def _answer(self, args: list[str]) -> bytes:
        if args and args[0] in self.handlers:
            return self.handlers[args[0]](args)
        key = tuple(args)
        if key not in self.responses:
            raise GitCommandError(args, 128, "fatal: bad revision")
        value = self.responses[key]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def run_text(self, args: list[str]) -> str:
        return (await self.run(args)).decode("utf-8")


class FakeSubscription:
    def __init__(self, path: str, callback) -> None:
        self.path = path
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False


class FakeBackend:
    """Watch backend recording subscriptions instead of touching the disk."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.subscriptions: list[FakeSubscription] = []

    def subscribe(self, path: str, callback) -> FakeSubscription:
        if path in self.failing:
            raise FileNotFoundError(path)
        subscription = FakeSubscription(path, callback)
        self.subscriptions.append(subscription)
        return subscription

    @property
    def roots(self) -> list[str]:
        return [s.path for s in self.subscriptions if s.active]


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def review_options() -> ReviewOptions:
    return ReviewOptions(repo_path="/repo", target="HEAD")


@pytest.fixture
def review_state(review_options, fake_git, fake_backend) -> ReviewState:
    parser = DiffParser("/repo", git=fake_git, strict=False, generated_ttl_seconds=60)
    watcher = ChangeWatcher(backend=fake_backend, git_factory=lambda root: fake_git)
    return ReviewState(review_options, parser=parser, watcher=watcher)


@pytest.fixture
async def api_client(review_state) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client against an app wired to fakes."""
    app = create_app(review_state.options, review=review_state)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force the AnyIO pytest plugin to run tests under asyncio.

    The watcher and broadcaster use asyncio primitives directly (timers,
    queues, tasks), which are incompatible with the trio backend.
    """
    return "asyncio"
