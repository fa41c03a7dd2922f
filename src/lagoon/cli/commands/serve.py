"""Run a single static server instance."""
from __future__ import annotations

import argparse
import logging

from lagoon.config import Settings, load_projects, split_existing
from lagoon.errors import ConfigError, InstanceStartupFailure
from lagoon.logging_config import setup_logging
from lagoon.routing.server import build_router, serve


def register_serve_command(subparsers: argparse._SubParsersAction) -> None:
    """Register the `serve` subcommand and its CLI arguments."""
    parser = subparsers.add_parser("serve", help="Serve built projects with path resolution.")
    parser.add_argument("--config", help="Projects JSON file (defaults to LAGOON_PROJECTS).")
    parser.add_argument("--project", help="Serve only this project, on its own origin.")
    parser.add_argument("--host", help="Bind address (defaults to LAGOON_HOST).")
    parser.add_argument("--port", type=int, help="Port (defaults to the project's port or LAGOON_PORT).")
    parser.add_argument("--log-file", help="Also write server logs to this file.")


def run_serve_command(args: argparse.Namespace) -> int:
    """Load projects and block serving them until interrupted."""
    settings = Settings()
    logger = setup_logging("DEBUG" if settings.debug else "INFO", args.log_file)

    projects = load_projects(args.config or settings.projects_file)
    present, missing = split_existing(projects)
    for project in missing:
        logger.warning(f"project {project.id}: root directory not found: {project.root_directory}")

    port = args.port
    if args.project is not None:
        if any(p.id == args.project for p in missing):
            raise InstanceStartupFailure(args.project, "root directory not found")
        selected = next((p for p in present if p.id == args.project), None)
        if selected is None:
            raise ConfigError(f"unknown project {args.project!r}")
        port = port or selected.port
    elif not present:
        raise ConfigError("no project has an existing root directory")

    router = build_router(settings, present, project_id=args.project)
    serve(router, host=args.host or settings.host, port=port or settings.port)
    return 0
