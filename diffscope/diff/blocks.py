"""Splitting unified diff text into per-file blocks and resolving each file."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from diffscope.diff.chunks import count_changes, parse_chunks
from diffscope.diff.generated import is_generated_path
from diffscope.diff.paths import DEV_NULL, decode_git_path, split_header_paths
from diffscope.diff.summary import DiffSummaryEntry
from diffscope.errors import DiffParseError
from diffscope.models import DiffChunk, DiffFile, FileStatus

logger = structlog.get_logger(__name__)

_BLOCK_START_RE = re.compile(r"^diff --git ", re.MULTILINE)


def split_blocks(diff_text: str) -> list[str]:
    """Split diff text into one block per ``diff --git`` section.

    Anything before the first section header (e.g. a patch email preamble)
    is discarded.
    """
    starts = [match.start() for match in _BLOCK_START_RE.finditer(diff_text)]
    return [
        diff_text[start:end].rstrip("\n")
        for start, end in zip(starts, starts[1:] + [len(diff_text)])
    ]


@dataclass(frozen=True)
class BlockPreamble:
    """Metadata lines found between a block header and its first hunk."""

    header: str
    minus_line: str | None = None
    plus_line: str | None = None
    rename_from: str | None = None
    rename_to: str | None = None
    new_file: bool = False
    deleted_file: bool = False
    binary: bool = False


def _after(line: str | None, prefix: str) -> str | None:
    return line[len(prefix) :] if line is not None else None


def read_preamble(lines: Sequence[str]) -> BlockPreamble:
    """Collect the first occurrence of each metadata line before any hunk."""
    found: dict[str, object] = {}
    for line in lines[1:]:
        if line.startswith("@@"):
            break
        if line.startswith("--- "):
            found.setdefault("minus_line", line)
        elif line.startswith("+++ "):
            found.setdefault("plus_line", line)
        elif line.startswith("rename from "):
            found.setdefault("rename_from", _after(line, "rename from "))
        elif line.startswith("rename to "):
            found.setdefault("rename_to", _after(line, "rename to "))
        elif line.startswith("new file mode"):
            found["new_file"] = True
        elif line.startswith("deleted file mode"):
            found["deleted_file"] = True
        elif line.startswith("Binary files ") and line.endswith(" differ"):
            found["binary"] = True
    return BlockPreamble(header=lines[0] if lines else "", **found)


def _is_dev_null(line: str | None, prefix: str) -> bool:
    value = _after(line, prefix)
    return value is not None and value.split("\t", 1)[0].strip('"') == DEV_NULL


def resolve_status(preamble: BlockPreamble, old_path: str, new_path: str) -> FileStatus:
    """Decide the file status.

    Mode lines and ``/dev/null`` sides win over path comparison, so an added
    file is never reported as renamed even if its summary carries a source
    path.
    """
    if preamble.new_file or _is_dev_null(preamble.minus_line, "--- "):
        return FileStatus.ADDED
    if preamble.deleted_file or _is_dev_null(preamble.plus_line, "+++ "):
        return FileStatus.DELETED
    if old_path != new_path:
        return FileStatus.RENAMED
    return FileStatus.MODIFIED


def parse_file_block(block: str, summary: DiffSummaryEntry | None) -> DiffFile | None:
    """Build a DiffFile from one block, or None when no path can be found.

    Path sources in priority order: ``rename from/to`` lines, ``---``/``+++``
    lines, the ``diff --git`` header, then the summary record.
    """
    lines = block.split("\n")
    preamble = read_preamble(lines)
    header_old, header_new = split_header_paths(preamble.header) or (None, None)

    minus_path = decode_git_path(_after(preamble.minus_line, "--- "))
    plus_path = decode_git_path(_after(preamble.plus_line, "+++ "))
    rename_from = decode_git_path(preamble.rename_from)
    rename_to = decode_git_path(preamble.rename_to)
    summary_new = summary.file if summary else None
    summary_old = summary.from_path if summary else None

    new_path = rename_to or plus_path or minus_path or header_new or summary_new
    if not new_path:
        return None
    old_path = rename_from or minus_path or header_old or summary_old or new_path

    status = resolve_status(preamble, old_path, new_path)
    binary = preamble.binary or (summary is not None and summary.binary)

    if binary:
        chunks: tuple[DiffChunk, ...] = ()
        additions = deletions = 0
    else:
        chunks = parse_chunks(lines)
        if summary is None:
            additions, deletions = count_changes(chunks)
        else:
            additions, deletions = summary.insertions, summary.deletions

    return DiffFile(
        path=new_path,
        old_path=old_path if status is FileStatus.RENAMED else None,
        status=status,
        additions=additions,
        deletions=deletions,
        chunks=chunks,
        is_generated=is_generated_path(new_path),
    )


def parse_unified_diff(
    diff_text: str,
    summary: Sequence[DiffSummaryEntry] = (),
    *,
    strict: bool = False,
) -> list[DiffFile]:
    """Parse every file block, pairing block *i* with summary entry *i*.

    A shorter (or empty) summary is allowed; unpaired blocks derive their
    counts from the hunks. Blocks without a resolvable path are dropped, or
    raise :class:`DiffParseError` when ``strict`` is set.
    """
    files: list[DiffFile] = []
    for index, block in enumerate(split_blocks(diff_text)):
        entry = summary[index] if index < len(summary) else None
        parsed = parse_file_block(block, entry)
        if parsed is None:
            header = block.split("\n", 1)[0]
            if strict:
                raise DiffParseError(f"No file path found in diff block {index}: {header!r}")
            logger.warning("Dropping diff block without a path", index=index, header=header)
            continue
        files.append(parsed)
    return files
