"""Strip injected path-fixer blocks from built HTML files."""
from __future__ import annotations

import argparse
from pathlib import Path

from lagoon.cli.commands.inject import find_entry_files, read_document, write_document
from lagoon.errors import ConfigError
from lagoon.routing.transform import restore


def register_restore_command(subparsers: argparse._SubParsersAction) -> None:
    """Register the `restore` subcommand and its CLI arguments."""
    parser = subparsers.add_parser("restore", help="Remove injected blocks from built entry files.")
    parser.add_argument("directory", help="Build output directory to scan.")
    parser.add_argument("--entry", default="index.html", help="Entry file name to look for.")


def run_restore_command(args: argparse.Namespace) -> int:
    root = Path(args.directory).resolve()
    if not root.is_dir():
        raise ConfigError(f"directory not found: {root}")

    restored = untouched = 0
    for path in find_entry_files(root, args.entry):
        document, changed = restore(read_document(path))
        if not changed:
            untouched += 1
            continue
        write_document(path, document)
        restored += 1
        print(f"[restore] restored: {path.relative_to(root).as_posix()}", flush=True)

    print(f"[restore] {restored} restored, {untouched} untouched", flush=True)
    return 0
