"""Exception types raised by the diff and git layers."""

from __future__ import annotations


class DiffscopeError(Exception):
    """Base class for all diffscope errors."""


class DiffError(DiffscopeError):
    """A diff could not be produced for the requested revisions."""

    def __init__(self, target: str, base: str, reason: str) -> None:
        self.target = target
        self.base = base
        self.reason = reason
        super().__init__(f"Failed to parse diff for {target} vs {base}: {reason}")


class DiffParseError(DiffscopeError):
    """Raised in strict mode when a file block cannot be turned into a file."""


class SessionClosedError(DiffscopeError):
    """An event was written to a UI session that has gone away."""


class GitError(DiffscopeError):
    """A git invocation failed."""


class GitCommandError(GitError):
    """git exited non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


class GitOutputTooLargeError(GitError):
    """git produced more output than the configured ceiling."""

    def __init__(self, args: list[str], limit: int) -> None:
        self.args_list = list(args)
        self.limit = limit
        super().__init__(f"git {' '.join(args)} output exceeded {limit} bytes")


class BlobTooLargeError(GitError):
    """A file's content is too large to serve."""

    def __init__(self, path: str, limit: int) -> None:
        self.path = path
        self.limit = limit
        megabytes = limit // (1024 * 1024)
        super().__init__(f"File {path} is too large to display (over {megabytes}MB limit)")
