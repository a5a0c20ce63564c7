#!/usr/bin/env python3
"""Run the Python examples of every Markdown walkthrough and report failures."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from reflect_app.engine.docs_check import check_directory, check_document


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "target",
        nargs="?",
        default="docs",
        help="Markdown file or directory of Markdown files (default: docs).",
    )
    parser.add_argument(
        "--pattern",
        default="*.md",
        help="Glob used when target is a directory (default: *.md).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print failing blocks.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    target = Path(args.target)
    if not target.exists():
        raise SystemExit(f"Documentation not found: {target}")
    results = check_document(target) if target.is_file() else check_directory(target, args.pattern)
    if not results:
        sys.stdout.write(f"No Python examples found in {target}\n")
        return 0

    failures = [result for result in results if not result.ok]
    for result in results:
        if result.ok and args.quiet:
            continue
        status = "ok" if result.ok else "FAILED"
        sys.stdout.write(f"{result.path}:{result.line}: {status}\n")
        if result.error:
            sys.stdout.write(f"    {result.error}\n")
    sys.stdout.write(f"{len(results) - len(failures)} passed, {len(failures)} failed\n")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
