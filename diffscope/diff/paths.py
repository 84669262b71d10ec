"""Decoding of path tokens as git prints them in diff headers.

git quotes paths containing special bytes as C-style strings
(``"a/caf\\303\\251.txt"``), may append a tab after ambiguous paths, and
prefixes each side with a two-letter source marker (``a/``, ``b/`` or the
mnemonic ``c/``, ``i/``, ``w/``).
"""

from __future__ import annotations

DEV_NULL = "/dev/null"

# Both sides of every prefix pair git can emit (default and diff.mnemonicPrefix).
GIT_PATH_PREFIXES = ("a/", "b/", "c/", "i/", "w/")

_ESCAPES = {
    "t": 0x09,
    "n": 0x0A,
    "r": 0x0D,
    "b": 0x08,
    "f": 0x0C,
    "v": 0x0B,
    "a": 0x07,
    "\\": 0x5C,
    '"': 0x22,
    " ": 0x20,
}

_OCTAL_DIGITS = frozenset("01234567")


def _unescape(text: str) -> str:
    out = bytearray()
    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if char != "\\" or i + 1 >= length:
            out.extend(char.encode("utf-8"))
            i += 1
            continue

        nxt = text[i + 1]
        if nxt in _OCTAL_DIGITS:
            end = i + 1
            while end < length and end < i + 4 and text[end] in _OCTAL_DIGITS:
                end += 1
            out.append(int(text[i + 1 : end], 8) & 0xFF)
            i = end
            continue

        mapped = _ESCAPES.get(nxt)
        if mapped is not None:
            out.append(mapped)
        else:
            out.extend(nxt.encode("utf-8"))
        i += 2
    return out.decode("utf-8", errors="replace")


def strip_path_prefix(path: str) -> str:
    """Remove one leading source prefix such as ``a/`` or ``w/``.

    Only position 0 is considered, so ``dir b/file`` keeps its inner ``b/``.
    """
    if path.startswith(GIT_PATH_PREFIXES):
        return path[2:]
    return path


def unquote_git_path(raw: str | None) -> str | None:
    """Decode one raw path token without touching its side prefix.

    Drops trailing tab metadata, surrounding quotes and C-style escapes.
    Returns None for ``/dev/null`` (the missing side of an add or delete)
    and for a missing or empty token.
    """
    if raw is None:
        return None

    token = raw.split("\t", 1)[0]
    if len(token) >= 2 and token.startswith('"') and token.endswith('"'):
        token = token[1:-1]
    if not token or token == DEV_NULL:
        return None
    return _unescape(token)


def decode_git_path(raw: str | None) -> str | None:
    """Turn a path token from a diff line into a repository-relative path.

    Same as :func:`unquote_git_path`, then drops the ``a/``-style prefix.
    """
    path = unquote_git_path(raw)
    if path is None:
        return None
    return strip_path_prefix(path) or None


def split_header_paths(header_line: str) -> tuple[str | None, str | None] | None:
    """Split the two path tokens of a ``diff --git`` line and decode them.

    Quoted tokens may contain spaces; an unquoted space preceded by a
    backslash is part of the path. Returns None unless exactly two tokens are
    found, since unquoted paths with spaces cannot be split reliably.
    """
    prefix = "diff --git "
    if not header_line.startswith(prefix):
        return None

    raw = header_line[len(prefix) :]
    segments: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for char in raw:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == '"':
            in_quotes = not in_quotes
            current.append(char)
        elif char == " " and not in_quotes:
            if current:
                segments.append("".join(current))
                current = []
        else:
            current.append(char)
    if current:
        segments.append("".join(current))

    if len(segments) != 2:
        return None
    old_raw, new_raw = segments
    return decode_git_path(old_raw), decode_git_path(new_raw)
