"""Pydantic models for the diff tree, watch events and API payloads.

Models are immutable and use snake_case in Python. On the wire they serialize
with camelCase aliases (``old_path`` -> ``oldPath``) to match the browser UI.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Frozen base model serialized with camelCase aliases."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Return the JSON-ready dict the browser UI consumes."""
        return self.model_dump(mode="json", by_alias=True)


class FileStatus(str, Enum):
    """How a file changed between the two sides of a diff."""
    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"


class LineType(str, Enum):
    """Kind of a line inside a hunk."""
    ADD = "add"
    DELETE = "delete"
    NORMAL = "normal"


class DiffLine(WireModel):
    """One line of a hunk with its position on each side."""
    type: LineType
    content: str
    old_line_number: int | None = None  # None for added lines
    new_line_number: int | None = None  # None for deleted lines


class DiffChunk(WireModel):
    """A single ``@@`` hunk."""
    header: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: tuple[DiffLine, ...] = ()


class DiffFile(WireModel):
    """All changes to one file."""
    path: str
    old_path: str | None = None  # only for renames whose paths differ
    status: FileStatus
    additions: int = 0
    deletions: int = 0
    chunks: tuple[DiffChunk, ...] = ()
    is_generated: bool = False


class DiffResponse(WireModel):
    """A parsed diff ready for the UI."""
    commit: str
    files: tuple[DiffFile, ...] = ()
    is_empty: bool = True


class GeneratedSource(str, Enum):
    """Which signal decided a generated-file classification."""
    PATH = "path"
    CONTENT = "content"


class GeneratedStatus(WireModel):
    """Result of a generated-file lookup."""
    is_generated: bool
    source: GeneratedSource


class WatchMode(str, Enum):
    """Which part of the repository a review session follows."""
    DEFAULT = "default"  # HEAD^ vs HEAD style ranges; follows new commits
    WORKING = "working"  # unstaged changes
    STAGED = "staged"  # staged changes
    DOT = "dot"  # all uncommitted changes
    SPECIFIC = "specific"  # two fixed commits; nothing to watch


class ChangeType(str, Enum):
    """Coarse classification attached to reload notifications."""
    FILE = "file"
    COMMIT = "commit"
    STAGING = "staging"


class WatchEventType(str, Enum):
    """Notification kinds pushed to UI sessions."""
    CONNECTED = "connected"
    RELOAD = "reload"


class WatchEvent(WireModel):
    """Notification payload written to each connected UI session."""
    type: WatchEventType
    mode: WatchMode
    change_type: ChangeType
    timestamp: str
    message: str


class BranchInfo(WireModel):
    """A local branch."""
    name: str
    current: bool


class CommitInfo(WireModel):
    """A recent commit for the revision selector."""
    hash: str
    short_hash: str
    message: str


class RevisionOption(WireModel):
    """A non-commit revision choice (working tree, staging area)."""
    value: str
    label: str


class RevisionsResponse(WireModel):
    """Branches and recent commits available for comparison."""
    special_options: tuple[RevisionOption, ...] = ()
    branches: tuple[BranchInfo, ...] = ()
    commits: tuple[CommitInfo, ...] = ()
    resolved_base: str | None = None
    resolved_target: str | None = None


class ErrorDetail(BaseModel):
    """Structured error payload for API responses."""
    code: str
    message: str
    details: Any = None


class ErrorResponse(BaseModel):
    """Envelope for API error responses."""
    error: ErrorDetail
