"""diffscope: a local, browser-based git diff reviewer."""

__version__ = "0.1.0"
