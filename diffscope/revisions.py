"""Revision argument handling shared by the parser, server and CLI.

Besides ordinary commit-ish strings, three pseudo revisions are understood
as the *target* of a comparison:

- ``working``: unstaged changes (compared against the staging area)
- ``staged``: the staging area (compared against a base commit)
- ``.``: every uncommitted change (compared against a base commit)
"""

from __future__ import annotations

import re

from diffscope.models import WatchMode

WORKING = "working"
STAGED = "staged"
DOT = "."
SPECIAL_REVISIONS = frozenset({WORKING, STAGED, DOT})

_REVISION_PATTERNS = (
    re.compile(r"^[a-f0-9]{4,40}$", re.IGNORECASE),
    re.compile(r"^[a-f0-9]{4,40}\^+$", re.IGNORECASE),
    re.compile(r"^[a-f0-9]{4,40}~\d+$", re.IGNORECASE),
    re.compile(r"^HEAD(~\d+|\^\d*)*$"),
    re.compile(r"^@(~\d+|\^\d*)*$"),
)

_FORBIDDEN_REF_CHARS = re.compile(r"[~^:?*\[\\\x00-\x20\x7f]")


def _is_valid_branch_name(name: str) -> bool:
    if name.startswith("-") or name.endswith(".") or name.endswith("/"):
        return False
    if name.startswith("/") or ".." in name or "@{" in name or "//" in name:
        return False
    if _FORBIDDEN_REF_CHARS.search(name):
        return False
    for component in name.split("/"):
        if not component or component.startswith(".") or component.endswith(".lock"):
            return False
    return True


def is_valid_commitish(commitish: str | None) -> bool:
    """Check the format of a revision argument without asking git."""
    if not commitish:
        return False
    value = commitish.strip()
    if not value or value == "HEAD~":
        return False
    if value in SPECIAL_REVISIONS:
        return True
    if any(pattern.match(value) for pattern in _REVISION_PATTERNS):
        return True
    return _is_valid_branch_name(value)


def validate_diff_arguments(target: str, base: str | None) -> str | None:
    """Return an error message when the pair cannot be compared, else None."""
    if not is_valid_commitish(target):
        return "Invalid target commit-ish format"
    if base is not None and base != "" and not is_valid_commitish(base):
        return "Invalid base commit-ish format"

    if base in SPECIAL_REVISIONS and not (base == STAGED and target == WORKING):
        return (
            "Special arguments (working, staged, .) are only allowed as target, "
            f"not base. Got base: {base}"
        )
    if target == base:
        return f"Cannot compare {target} with itself"
    if target == WORKING and base and base != STAGED:
        return (
            '"working" shows unstaged changes and cannot be compared with another '
            'commit. Use "." instead to compare all uncommitted changes with a '
            "specific commit."
        )
    return None


def short_hash(commit_hash: str) -> str:
    """Abbreviate a full hash the way the UI displays it."""
    return commit_hash[:7]


def commit_range(base_hash: str, target_hash: str) -> str:
    """Build the ``base...target`` range passed to ``git diff``."""
    return f"{base_hash}...{target_hash}"


def determine_watch_mode(target: str, compare_with: str | None = None) -> WatchMode:
    """Pick which repository changes a review of ``target`` should follow.

    Comparing two fixed commits has nothing to watch unless the target is
    HEAD or the working tree.
    """
    if compare_with and target not in ("HEAD", DOT):
        return WatchMode.SPECIFIC
    if target == WORKING:
        return WatchMode.WORKING
    if target == STAGED:
        return WatchMode.STAGED
    if target == DOT:
        return WatchMode.DOT
    return WatchMode.DEFAULT


def default_base(target: str) -> str:
    """Base revision used when only a target is given."""
    if target == WORKING:
        return STAGED
    if target in (STAGED, DOT):
        return "HEAD"
    return f"{target}^"
