"""CLI entry point for diffscope.

``diffscope [target] [base]`` reviews ``base..target`` in the browser.
``target`` may also be ``working`` (unstaged changes), ``staged`` or ``.``
(all uncommitted changes). ``--stdin`` reviews a patch piped in instead.

Import ordering matters: ``load_config()`` must run before the server
modules are imported so settings see values from ``.env`` files.
"""

from __future__ import annotations

import argparse
import os
import sys


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diffscope",
        description="Review git diffs in the browser",
    )
    parser.add_argument("target", nargs="?", default="HEAD", help="Revision to review (default: HEAD)")
    parser.add_argument("base", nargs="?", help="Revision to compare against")
    parser.add_argument("--stdin", action="store_true", help="Read a unified diff from stdin")
    parser.add_argument("--repo", default=".", help="Repository directory (default: cwd)")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument(
        "-w",
        "--ignore-whitespace",
        action="store_true",
        help="Ignore whitespace changes",
    )
    parser.add_argument("--no-watch", action="store_true", help="Do not reload on repository changes")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point (``diffscope`` command)."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # CLI flags win over env files, so apply them before loading config.
    if args.host:
        os.environ["DIFFSCOPE_HOST"] = args.host
    if args.port:
        os.environ["DIFFSCOPE_PORT"] = str(args.port)

    from diffscope.config import load_config

    load_config()

    from diffscope.api.state import ReviewOptions
    from diffscope.git import find_repository_root
    from diffscope.revisions import validate_diff_arguments

    stdin_diff = None
    if args.stdin:
        if sys.stdin.isatty():
            parser.error("--stdin requires a diff piped on standard input")
        stdin_diff = sys.stdin.read()
        repo_path = os.path.abspath(args.repo)
    else:
        problem = validate_diff_arguments(args.target, args.base)
        if problem:
            parser.error(problem)
        root = find_repository_root(args.repo)
        if root is None:
            parser.error(f"Not a git repository: {os.path.abspath(args.repo)}")
        repo_path = root

    options = ReviewOptions(
        repo_path=repo_path,
        target=args.target,
        base=args.base,
        ignore_whitespace=args.ignore_whitespace,
        stdin_diff=stdin_diff,
        watch=not args.no_watch,
    )

    from diffscope.main import run

    run(options)


if __name__ == "__main__":
    main()
