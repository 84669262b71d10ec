"""Layered .env configuration for diffscope.

diffscope runs inside arbitrary repositories, so a repository's own ``.env``
usually belongs to the project under review. Only ``DIFFSCOPE_`` keys are
taken from env files; everything else in them is left alone.

Precedence (highest wins):
    1. Already-set environment variables
    2. Local ``.env`` file (cwd)
    3. ``~/.config/diffscope/config.env`` (XDG_CONFIG_HOME respected)
    4. Built-in defaults in :mod:`diffscope.settings`
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_PREFIX = "DIFFSCOPE_"


def config_dir() -> Path:
    """Return the diffscope config directory (XDG_CONFIG_HOME/diffscope)."""
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if not base:
        base = os.path.join(Path.home(), ".config")
    return Path(base) / "diffscope"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    # Inline comments only count after whitespace on unquoted values.
    for i, ch in enumerate(value):
        if ch == "#" and (i == 0 or value[i - 1] in " \t"):
            return value[:i].rstrip()
    return value


def parse_env_file(path: str | Path) -> dict[str, str]:
    """Parse a .env file and return the ``DIFFSCOPE_`` key-value pairs.

    Supports ``KEY=value``, quoted values, ``export KEY=value``, blank lines
    and ``#`` comments. Unreadable files yield an empty dict.
    """
    result: dict[str, str] = {}
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return result

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:].strip()

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key.startswith(ENV_PREFIX):
            continue
        result[key] = _unquote(value.strip())

    return result


def load_config(cwd: str | Path | None = None) -> dict[str, str]:
    """Load ``DIFFSCOPE_`` settings from .env files into ``os.environ``.

    Already-set environment variables are never overwritten. Returns the
    keys that were applied.
    """
    merged: dict[str, str] = {}
    merged.update(parse_env_file(config_dir() / "config.env"))
    merged.update(parse_env_file(Path(cwd or Path.cwd()) / ".env"))

    applied: dict[str, str] = {}
    for key, value in merged.items():
        if key not in os.environ:
            os.environ[key] = value
            applied[key] = value
    return applied
