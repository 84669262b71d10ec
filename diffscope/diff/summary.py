"""Per-file change summaries from ``git diff --numstat -z``."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DiffSummaryEntry:
    """Counts git reports for one file, in diff order."""

    file: str
    insertions: int = 0
    deletions: int = 0
    binary: bool = False
    from_path: str | None = None  # set for renames and copies


def _count(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_numstat(output: str) -> list[DiffSummaryEntry]:
    """Parse NUL-delimited numstat output.

    Regular entries are ``ins\\tdel\\tpath\\0``. Renames leave the path empty
    and follow with ``old\\0new\\0``. Binary files report ``-`` for both
    counts. Paths are literal with ``-z``, so no unquoting is needed.
    """
    entries: list[DiffSummaryEntry] = []
    tokens = output.split("\0")
    i = 0
    while i < len(tokens):
        record = tokens[i]
        i += 1
        if not record.strip():
            continue

        parts = record.split("\t", 2)
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        binary = added == "-" and deleted == "-"

        from_path: str | None = None
        if not path:
            if i + 1 >= len(tokens):
                break
            from_path, path = tokens[i], tokens[i + 1]
            i += 2

        entries.append(
            DiffSummaryEntry(
                file=path,
                insertions=0 if binary else _count(added),
                deletions=0 if binary else _count(deleted),
                binary=binary,
                from_path=from_path,
            )
        )
    return entries
