"""Turning git revisions or raw patches into DiffResponse trees."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path

import structlog

from diffscope.diff.blocks import parse_unified_diff
from diffscope.diff.generated import TTLCache, has_generated_marker, is_generated_path
from diffscope.diff.summary import parse_numstat
from diffscope.errors import (
    BlobTooLargeError,
    DiffError,
    DiffParseError,
    GitError,
    GitOutputTooLargeError,
)
from diffscope.git import GitRunner
from diffscope.models import (
    BranchInfo,
    CommitInfo,
    DiffResponse,
    GeneratedSource,
    GeneratedStatus,
    RevisionOption,
    RevisionsResponse,
)
from diffscope.revisions import (
    DOT,
    SPECIAL_REVISIONS,
    STAGED,
    WORKING,
    commit_range,
    short_hash,
    validate_diff_arguments,
)
from diffscope.settings import settings

logger = structlog.get_logger(__name__)

STDIN_COMMIT_LABEL = "stdin diff"
RECENT_COMMIT_LIMIT = 20

SPECIAL_REVISION_OPTIONS = (
    RevisionOption(value=DOT, label="All Uncommitted Changes"),
    RevisionOption(value=STAGED, label="Staging Area"),
    RevisionOption(value=WORKING, label="Working Directory"),
)


class DiffParser:
    """Builds diff models for one repository.

    The only state kept between calls is the generated-status cache, keyed
    by ``(ref, path)`` and cleared through :meth:`clear_caches`.
    """

    def __init__(
        self,
        repo_path: str,
        *,
        git: GitRunner | None = None,
        strict: bool | None = None,
        generated_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repo_path = repo_path
        self.git = git or GitRunner(repo_path)
        self.strict = settings.strict_parse() if strict is None else strict
        ttl = (
            settings.generated_status_ttl_seconds()
            if generated_ttl_seconds is None
            else generated_ttl_seconds
        )
        self._generated: TTLCache[tuple[str, str], GeneratedStatus] = TTLCache(ttl, clock=clock)

    # ------------------------------------------------------------------
    # Diff parsing
    # ------------------------------------------------------------------

    async def _revision_arguments(self, target: str, base: str) -> tuple[str, list[str]]:
        """Return the human-readable label and the revision arguments."""
        if target == WORKING:
            return "Working Directory (unstaged changes)", []
        if target == STAGED:
            base_hash = await self.resolve_commitish(base)
            return f"{short_hash(base_hash)} vs Staging Area (staged changes)", ["--cached", base]
        if target == DOT:
            base_hash = await self.resolve_commitish(base)
            return f"{short_hash(base_hash)} vs Working Directory (all uncommitted changes)", [base]

        target_hash = await self.resolve_commitish(target)
        base_hash = await self.resolve_commitish(base)
        label = commit_range(short_hash(base_hash), short_hash(target_hash))
        return label, [commit_range(base_hash, target_hash)]

    async def parse_diff(
        self, target: str, base: str, ignore_whitespace: bool = False
    ) -> DiffResponse:
        """Diff ``base`` against ``target`` and parse the result.

        Raises:
            DiffError: the arguments are invalid or any git call failed. The
                message names both revisions.
        """
        problem = validate_diff_arguments(target, base)
        if problem:
            raise DiffError(target, base, problem)

        started = time.monotonic()
        try:
            label, revisions = await self._revision_arguments(target, base)
            options = ["--no-ext-diff", "--color=never"]
            if ignore_whitespace:
                options.append("-w")
            # Both commands see the same options so entries pair up by index.
            numstat = await self.git.run_text(
                ["diff", "--numstat", "-z", *options, *revisions, "--"]
            )
            raw = await self.git.run_text(["diff", *options, *revisions, "--"])
            files = parse_unified_diff(raw, parse_numstat(numstat), strict=self.strict)
        except (GitError, DiffParseError) as exc:
            raise DiffError(target, base, str(exc)) from exc

        logger.debug(
            "Parsed diff",
            target=target,
            base=base,
            ignore_whitespace=ignore_whitespace,
            files=len(files),
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return DiffResponse(commit=label, files=tuple(files), is_empty=not files)

    def parse_patch(self, diff_text: str) -> DiffResponse:
        """Parse a patch supplied directly (e.g. piped on stdin).

        No git summary exists for such input, so counts and statuses come
        from the patch text alone.
        """
        files = parse_unified_diff(diff_text, (), strict=self.strict)
        return DiffResponse(commit=STDIN_COMMIT_LABEL, files=tuple(files), is_empty=not files)

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    async def resolve_commitish(self, ref: str) -> str:
        """Resolve a commit-ish to its full hash."""
        output = await self.git.run_text(["rev-parse", "--verify", "--end-of-options", ref])
        return output.strip()

    async def validate_commit(self, ref: str) -> bool:
        """Return True if ``ref`` names a commit (or a pseudo revision in a repo)."""
        try:
            if ref in SPECIAL_REVISIONS:
                await self.git.run(["rev-parse", "--is-inside-work-tree"])
            else:
                await self.git.run(
                    ["rev-parse", "--verify", "--quiet", "--end-of-options", f"{ref}^{{commit}}"]
                )
        except GitError:
            return False
        return True

    async def get_revision_options(
        self, base: str | None = None, target: str | None = None
    ) -> RevisionsResponse:
        """List local branches and recent commits for a revision selector."""
        branch_output = await self.git.run_text(
            ["for-each-ref", "--format=%(HEAD)%00%(refname:short)", "refs/heads"]
        )
        branches = []
        for line in branch_output.splitlines():
            marker, _, name = line.partition("\0")
            if name:
                branches.append(BranchInfo(name=name, current=marker == "*"))

        commits = []
        try:
            log_output = await self.git.run_text(
                ["log", f"-n{RECENT_COMMIT_LIMIT}", "--format=%H%x00%s"]
            )
        except GitError:
            # A repository without commits has no log.
            log_output = ""
        for line in log_output.splitlines():
            commit_hash, _, subject = line.partition("\0")
            if commit_hash:
                commits.append(
                    CommitInfo(hash=commit_hash, short_hash=short_hash(commit_hash), message=subject)
                )

        return RevisionsResponse(
            special_options=SPECIAL_REVISION_OPTIONS,
            branches=tuple(branches),
            commits=tuple(commits),
            resolved_base=await self._resolve_quietly(base),
            resolved_target=await self._resolve_quietly(target),
        )

    async def _resolve_quietly(self, ref: str | None) -> str | None:
        if not ref or ref in SPECIAL_REVISIONS:
            return ref
        try:
            return await self.resolve_commitish(ref)
        except GitError:
            return ref

    # ------------------------------------------------------------------
    # File content
    # ------------------------------------------------------------------

    def _working_tree_file(self, path: str) -> Path:
        root = Path(self.repo_path).resolve()
        candidate = (root / path).resolve()
        if candidate != root and root not in candidate.parents:
            raise GitError(f"Path {path} is outside the repository")
        return candidate

    async def _read_working_file(self, path: str) -> bytes:
        file_path = self._working_tree_file(path)
        limit = self.git.max_buffer_bytes
        try:
            size = file_path.stat().st_size
            if size > limit:
                raise BlobTooLargeError(path, limit)
            return await asyncio.to_thread(file_path.read_bytes)
        except OSError as exc:
            raise GitError(f"Failed to get blob content for {path} at working tree: {exc}") from exc

    async def get_blob_content(self, path: str, ref: str) -> bytes:
        """Return the bytes of ``path`` at ``ref``.

        ``working`` and ``.`` read the working tree, ``staged`` reads the
        index, anything else is resolved as a commit-ish.

        Raises:
            BlobTooLargeError: the content exceeds the git output ceiling.
            GitError: the content could not be read.
        """
        if ref in (WORKING, DOT):
            return await self._read_working_file(path)

        try:
            if ref == STAGED:
                return await self.git.run(["show", f":{path}"])
            blob_hash = (await self.git.run_text(["rev-parse", f"{ref}:{path}"])).strip()
            return await self.git.run(["cat-file", "blob", blob_hash])
        except GitOutputTooLargeError as exc:
            raise BlobTooLargeError(path, exc.limit) from exc
        except GitError as exc:
            raise GitError(f"Failed to get blob content for {path} at {ref}: {exc}") from exc

    async def get_line_count(self, path: str, ref: str) -> int:
        """Count lines of ``path`` at ``ref`` (a final line without newline counts)."""
        content = await self.get_blob_content(path, ref)
        if not content:
            return 0
        return content.count(b"\n") + (0 if content.endswith(b"\n") else 1)

    # ------------------------------------------------------------------
    # Generated files
    # ------------------------------------------------------------------

    async def get_generated_status(self, path: str, ref: str) -> GeneratedStatus:
        """Classify ``path`` at ``ref`` as generated or hand-written.

        Path patterns are checked first and never read content. Otherwise the
        blob is scanned for a generator marker; if it cannot be read the file
        is reported as not generated.
        """
        key = (ref, path)
        cached = self._generated.get(key)
        if cached is not None:
            return cached

        if is_generated_path(path):
            status = GeneratedStatus(is_generated=True, source=GeneratedSource.PATH)
        else:
            try:
                content = await self.get_blob_content(path, ref)
            except GitError as exc:
                logger.debug(
                    "Generated check could not read content", path=path, ref=ref, error=str(exc)
                )
                status = GeneratedStatus(is_generated=False, source=GeneratedSource.PATH)
            else:
                status = GeneratedStatus(
                    is_generated=has_generated_marker(content), source=GeneratedSource.CONTENT
                )

        self._generated.put(key, status)
        return status

    def clear_caches(self) -> None:
        """Drop every cached generated-status entry."""
        self._generated.clear()
