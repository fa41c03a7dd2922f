"""Start one server per project (or one shared server) and keep them running."""
from __future__ import annotations

import argparse
from pathlib import Path

from lagoon.config import Settings, load_projects
from lagoon.orchestrator.main import (
    DEFAULT_STARTUP_TIMEOUT,
    Supervisor,
    build_child_env,
    health_check,
    serve_command,
)


def register_supervise_command(subparsers: argparse._SubParsersAction) -> None:
    """Register the `supervise` subcommand and its CLI arguments."""
    parser = subparsers.add_parser("supervise", help="Run a server for every configured project.")
    parser.add_argument("--config", help="Projects JSON file (defaults to LAGOON_PROJECTS).")
    parser.add_argument("--host", help="Bind address for every child (defaults to LAGOON_HOST).")
    parser.add_argument("--base-port", type=int, help="First port for projects without one.")
    parser.add_argument(
        "--shared",
        action="store_true",
        help="Serve all projects from one process under path prefixes.",
    )
    parser.add_argument(
        "--startup-timeout",
        type=float,
        default=DEFAULT_STARTUP_TIMEOUT,
        help="Seconds each child gets to answer its health check.",
    )


def run_supervise_command(args: argparse.Namespace) -> int:
    """Launch the children and wait for SIGINT/SIGTERM."""
    settings = Settings()
    config_path = Path(args.config or settings.projects_file).resolve()
    projects = load_projects(config_path)
    host = args.host or settings.host

    print(f"[supervisor] projects={config_path}", flush=True)
    print(f"[supervisor] mode={'shared' if args.shared else 'per-project'}", flush=True)

    supervisor = Supervisor(
        projects,
        command=serve_command(config_path=config_path, host=host),
        ready=health_check(host),
        base_port=args.base_port or settings.base_port,
        shared_port=settings.port,
        shared=args.shared,
        startup_timeout=args.startup_timeout,
        env=build_child_env(),
    )
    return supervisor.run()
