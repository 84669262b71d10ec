"""A small segment-aware glob compiler for watch ignore lists.

Supported syntax: ``**`` spans any number of path segments (including none),
``*`` matches within one segment, and a leading ``!`` inverts the result.
Patterns are unanchored at the start (``node_modules/**`` matches at any
depth) and anchored at the end. This is not a gitignore engine; gitignore
rules are left to ``git check-ignore``.
"""

from __future__ import annotations

from collections.abc import Iterable


def _split(path: str) -> tuple[str, ...]:
    return tuple(part for part in path.replace("\\", "/").split("/") if part)


def _match_segment(pattern: str, segment: str) -> bool:
    if "*" not in pattern:
        return pattern == segment

    pieces = pattern.split("*")
    head, tail = pieces[0], pieces[-1]
    if not segment.startswith(head):
        return False
    if len(segment) - len(head) < len(tail) or not segment.endswith(tail):
        return False

    pos = len(head)
    end = len(segment) - len(tail)
    for piece in pieces[1:-1]:
        if not piece:
            continue
        found = segment.find(piece, pos, end)
        if found < 0:
            return False
        pos = found + len(piece)
    return True


class GlobMatcher:
    """A compiled ignore pattern."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self.negated = pattern.startswith("!")
        body = pattern[1:] if self.negated else pattern
        self._segments = _split(body)

    def __repr__(self) -> str:
        return f"GlobMatcher({self.pattern!r})"

    def _matches_positive(self, path: str) -> bool:
        segments = _split(path)
        pattern = self._segments
        memo: dict[tuple[int, int], bool] = {}

        def match(pi: int, si: int) -> bool:
            key = (pi, si)
            if key in memo:
                return memo[key]
            if pi == len(pattern):
                result = si == len(segments)
            elif pattern[pi] == "**":
                result = any(match(pi + 1, k) for k in range(si, len(segments) + 1))
            elif si == len(segments):
                result = False
            else:
                result = _match_segment(pattern[pi], segments[si]) and match(pi + 1, si + 1)
            memo[key] = result
            return result

        if not pattern:
            return False
        return any(match(0, start) for start in range(len(segments) + 1))

    def matches(self, path: str) -> bool:
        """Return True when ``path`` is selected by this pattern."""
        positive = self._matches_positive(path)
        return not positive if self.negated else positive


def compile_globs(patterns: Iterable[str]) -> tuple[GlobMatcher, ...]:
    """Compile a list of patterns once for repeated matching."""
    return tuple(GlobMatcher(pattern) for pattern in patterns)


def matches_any(matchers: Iterable[GlobMatcher], path: str) -> bool:
    """Return True when any matcher selects ``path``."""
    return any(matcher.matches(path) for matcher in matchers)
