"""Git subprocess execution and repository path helpers."""

from __future__ import annotations

import asyncio
import os
import shutil
from contextlib import suppress
from pathlib import Path

import structlog

from diffscope.errors import GitCommandError, GitError, GitOutputTooLargeError
from diffscope.settings import settings

logger = structlog.get_logger(__name__)

_READ_CHUNK_BYTES = 64 * 1024


def normalize_directory_path(path: str) -> str:
    """Return a normalized absolute path for the provided directory string."""
    candidate = Path(path).expanduser()
    try:
        resolved = candidate.resolve(strict=False)
    except FileNotFoundError:
        resolved = candidate
    return str(resolved)


def has_git_repository(path: str) -> bool:
    """Return True if the directory is the top of a repository or worktree.

    Linked worktrees carry a ``.git`` file pointing at the real metadata
    directory, so both forms count.
    """
    try:
        git_entry = Path(path) / ".git"
        return git_entry.is_dir() or git_entry.is_file()
    except OSError:
        return False


def find_repository_root(path: str) -> str | None:
    """Walk up from ``path`` to the nearest directory holding ``.git``."""
    current = Path(normalize_directory_path(path))
    for candidate in (current, *current.parents):
        if has_git_repository(str(candidate)):
            return str(candidate)
    return None


def _require_git_binary() -> str:
    git = shutil.which("git")
    if not git:
        raise GitError("Git executable not found on PATH")
    return git


class GitRunner:
    """Runs git commands inside one repository.

    Output is collected up to ``max_buffer_bytes``; a command that produces
    more is killed and reported with :class:`GitOutputTooLargeError` instead
    of being buffered without bound.
    """

    def __init__(self, repo_path: str, *, max_buffer_bytes: int | None = None) -> None:
        self.repo_path = repo_path
        self.max_buffer_bytes = (
            max_buffer_bytes if max_buffer_bytes is not None else settings.git_max_buffer_bytes()
        )

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        # Keep read-only commands from rewriting .git/index, which the
        # watcher would otherwise report as a change.
        env["GIT_OPTIONAL_LOCKS"] = "0"
        env.setdefault("LC_ALL", "C")
        return env

    async def run(self, args: list[str]) -> bytes:
        """Run ``git <args>`` and return raw stdout.

        Raises:
            GitCommandError: git exited non-zero.
            GitOutputTooLargeError: stdout exceeded the ceiling.
            GitError: git could not be started.
        """
        git = _require_git_binary()
        try:
            proc = await asyncio.create_subprocess_exec(
                git,
                *args,
                cwd=self.repo_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(),
            )
        except OSError as exc:
            raise GitError(f"Failed to start git: {exc}") from exc

        stderr_task = asyncio.create_task(proc.stderr.read())
        chunks: list[bytes] = []
        total = 0
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > self.max_buffer_bytes:
                    logger.warning(
                        "git output exceeded buffer ceiling",
                        args=args,
                        limit=self.max_buffer_bytes,
                    )
                    raise GitOutputTooLargeError(args, self.max_buffer_bytes)
                chunks.append(chunk)
            returncode = await proc.wait()
            stderr = await stderr_task
        finally:
            if proc.returncode is None:
                with suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if returncode != 0:
            raise GitCommandError(args, returncode, stderr.decode("utf-8", errors="replace"))
        return b"".join(chunks)

    async def run_text(self, args: list[str]) -> str:
        """Run ``git <args>`` and return stdout decoded as UTF-8."""
        output = await self.run(args)
        return output.decode("utf-8", errors="replace")
