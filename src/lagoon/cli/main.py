#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys

from lagoon.cli.commands.inject import register_inject_command, run_inject_command
from lagoon.cli.commands.restore import register_restore_command, run_restore_command
from lagoon.cli.commands.serve import register_serve_command, run_serve_command
from lagoon.cli.commands.supervise import register_supervise_command, run_supervise_command


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lagoon", description="Serve several built SPAs side by side.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_serve_command(subparsers)
    register_supervise_command(subparsers)
    register_inject_command(subparsers)
    register_restore_command(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        try:
            return run_serve_command(args)
        except Exception as exc:
            print(f"lagoon: {exc}", file=sys.stderr)
            return 1
    if args.command == "supervise":
        try:
            return run_supervise_command(args)
        except Exception as exc:
            print(f"lagoon: {exc}", file=sys.stderr)
            return 1
    if args.command == "inject":
        try:
            return run_inject_command(args)
        except Exception as exc:
            print(f"lagoon: {exc}", file=sys.stderr)
            return 1
    if args.command == "restore":
        try:
            return run_restore_command(args)
        except Exception as exc:
            print(f"lagoon: {exc}", file=sys.stderr)
            return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
