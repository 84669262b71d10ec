"""Hunk parsing for a single file block."""

from __future__ import annotations

import re
from collections.abc import Iterable

from diffscope.models import DiffChunk, DiffLine, LineType

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

_LINE_TYPES = {"+": LineType.ADD, "-": LineType.DELETE, " ": LineType.NORMAL}


def parse_chunks(lines: Iterable[str]) -> tuple[DiffChunk, ...]:
    """Fold the lines of one file block into its hunks.

    Lines before the first hunk header (the block preamble) are skipped.
    Old-side numbers advance on every line except additions and new-side
    numbers on every line except deletions. A header that does not parse
    closes the open hunk and its body is skipped; nothing is emitted for it.
    """
    chunks: list[DiffChunk] = []
    header: tuple[str, int, int, int, int] | None = None
    body: list[DiffLine] = []
    old_no = new_no = 0

    def close() -> None:
        if header is not None:
            text, old_start, old_lines, new_start, new_lines = header
            chunks.append(
                DiffChunk(
                    header=text,
                    old_start=old_start,
                    old_lines=old_lines,
                    new_start=new_start,
                    new_lines=new_lines,
                    lines=tuple(body),
                )
            )

    for line in lines:
        if line.startswith("@@"):
            close()
            body = []
            match = HUNK_HEADER_RE.match(line)
            if match is None:
                header = None
                continue
            old_start, new_start = int(match.group(1)), int(match.group(3))
            header = (
                line,
                old_start,
                int(match.group(2) or 1),
                new_start,
                int(match.group(4) or 1),
            )
            old_no, new_no = old_start, new_start
            continue

        if header is None:
            continue
        line_type = _LINE_TYPES.get(line[:1])
        if line_type is None:
            # "\ No newline at end of file" and stray text.
            continue

        body.append(
            DiffLine(
                type=line_type,
                content=line[1:],
                old_line_number=None if line_type is LineType.ADD else old_no,
                new_line_number=None if line_type is LineType.DELETE else new_no,
            )
        )
        if line_type is not LineType.ADD:
            old_no += 1
        if line_type is not LineType.DELETE:
            new_no += 1

    close()
    return tuple(chunks)


def count_changes(chunks: Iterable[DiffChunk]) -> tuple[int, int]:
    """Return ``(additions, deletions)`` counted from hunk lines."""
    additions = deletions = 0
    for chunk in chunks:
        for line in chunk.lines:
            if line.type is LineType.ADD:
                additions += 1
            elif line.type is LineType.DELETE:
                deletions += 1
    return additions, deletions
