"""Inject the path fixer into built HTML files on disk."""
from __future__ import annotations

import argparse
from pathlib import Path

from watchfiles import Change, DefaultFilter, watch

from lagoon.config import Settings
from lagoon.errors import ConfigError, MalformedDocument
from lagoon.routing.transform import ServingContext, transform
from lagoon.topology import Topology

SKIP_DIRS = {"node_modules", ".git", "__pycache__"}


class EntryFileFilter(DefaultFilter):
    """Only react to entry files being written, never to deletions."""

    def __init__(self, entry_name: str) -> None:
        super().__init__()
        self.entry_name = entry_name

    def __call__(self, change: Change, path: str) -> bool:
        if change == Change.deleted:
            return False
        return super().__call__(change, path) and Path(path).name == self.entry_name


def find_entry_files(root: Path, entry_name: str) -> list[Path]:
    """Return every file named entry_name under root, skipping vendored dirs."""
    found: list[Path] = []
    for path in sorted(root.rglob(entry_name)):
        if not path.is_file():
            continue
        if SKIP_DIRS.intersection(path.relative_to(root).parts):
            continue
        found.append(path)
    return found


def read_document(path: Path) -> str:
    return path.read_bytes().decode("utf-8", errors="surrogateescape")


def write_document(path: Path, document: str) -> None:
    path.write_bytes(document.encode("utf-8", errors="surrogateescape"))


def inject_file(path: Path, context: ServingContext) -> str:
    """Inject one file in place; return injected, unchanged or malformed."""
    document = read_document(path)
    try:
        out = transform(document, context)
    except MalformedDocument:
        return "malformed"
    if out == document:
        return "unchanged"
    write_document(path, out)
    return "injected"


def register_inject_command(subparsers: argparse._SubParsersAction) -> None:
    """Register the `inject` subcommand and its CLI arguments."""
    parser = subparsers.add_parser("inject", help="Inject the path fixer into built entry files.")
    parser.add_argument("directory", help="Build output directory to scan.")
    parser.add_argument("--entry", default="index.html", help="Entry file name to look for.")
    parser.add_argument(
        "--protocol",
        action="append",
        default=[],
        help="Extra URL protocol the path fixer should act on (repeatable).",
    )
    parser.add_argument(
        "--shell-origin",
        action="append",
        default=[],
        help="Origin on which the path fixer stays inert (repeatable).",
    )
    parser.add_argument("--home-url", help="Also inject a control that navigates back here.")
    parser.add_argument("--debug", action="store_true", help="Log rewrites to the browser console.")
    parser.add_argument("--watch", action="store_true", help="Re-inject whenever an entry file is rebuilt.")


def build_context(args: argparse.Namespace, settings: Settings) -> ServingContext:
    protocols = tuple(settings.local_protocol_list + args.protocol)
    return ServingContext(
        topology=Topology.local_file(protocols),
        shell_origins=tuple(settings.shell_origin_list + [o.rstrip("/") for o in args.shell_origin]),
        home_url=args.home_url or settings.home_url,
        debug=args.debug or settings.debug,
    )


def run_inject_command(args: argparse.Namespace) -> int:
    """Inject every entry file once, then optionally keep watching."""
    root = Path(args.directory).resolve()
    if not root.is_dir():
        raise ConfigError(f"directory not found: {root}")

    context = build_context(args, Settings())
    counts = {"injected": 0, "unchanged": 0, "malformed": 0}
    for path in find_entry_files(root, args.entry):
        status = inject_file(path, context)
        counts[status] += 1
        print(f"[inject] {status}: {path.relative_to(root).as_posix()}", flush=True)

    print(
        f"[inject] {counts['injected']} injected, {counts['unchanged']} already injected, "
        f"{counts['malformed']} malformed",
        flush=True,
    )
    if args.watch:
        return watch_and_inject(root, args.entry, context)
    return 1 if counts["malformed"] else 0


def watch_and_inject(root: Path, entry_name: str, context: ServingContext) -> int:
    print(f"[inject] watching {root}", flush=True)
    try:
        for changes in watch(str(root), watch_filter=EntryFileFilter(entry_name), debounce=300):
            for changed in sorted({Path(p) for _change, p in changes}):
                if not changed.is_file():
                    continue
                status = inject_file(changed, context)
                if status != "unchanged":
                    print(f"[inject] {status}: {changed.relative_to(root).as_posix()}", flush=True)
    except KeyboardInterrupt:
        pass
    return 0
