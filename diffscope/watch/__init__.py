"""Filesystem change detection for the review server."""

from diffscope.watch.watcher import MODE_WATCH_CONFIGS, ChangeWatcher, resolve_git_dir

__all__ = ["MODE_WATCH_CONFIGS", "ChangeWatcher", "resolve_git_dir"]
