"""Unified diff parsing into file/chunk/line trees."""

from __future__ import annotations

from diffscope.diff.blocks import parse_file_block, parse_unified_diff
from diffscope.diff.parser import DiffParser
from diffscope.diff.paths import decode_git_path, unquote_git_path

__all__ = [
    "DiffParser",
    "decode_git_path",
    "parse_file_block",
    "parse_unified_diff",
    "unquote_git_path",
]
