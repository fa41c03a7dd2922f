"""Supervise one static server process per project (or one shared process)."""
from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import threading
import time
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from lagoon.errors import InstanceStartupFailure
from lagoon.routing.server import HEALTH_PATH
from lagoon.topology import ProjectDescriptor

SRC_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_STARTUP_TIMEOUT = 10.0
SHARED_INSTANCE = "shared"


@dataclass
class Instance:
    """A planned server process and, once launched, its handle."""

    name: str
    port: int
    project_ids: list[str] = field(default_factory=list)
    process: subprocess.Popen[bytes] | None = None

    @property
    def shared(self) -> bool:
        return self.name == SHARED_INSTANCE


CommandFactory = Callable[[Instance], list[str]]
ReadyCheck = Callable[[Instance], bool]


def assign_ports(projects: Iterable[ProjectDescriptor], base_port: int) -> dict[str, int]:
    """Return {project_id: port}; fixed ports win, the rest count up from base_port."""
    projects = list(projects)
    taken = {p.port for p in projects if p.port is not None}
    ports: dict[str, int] = {}
    next_port = base_port
    for project in projects:
        if project.port is not None:
            ports[project.id] = project.port
            continue
        while next_port in taken:
            next_port += 1
        ports[project.id] = next_port
        taken.add(next_port)
        next_port += 1
    return ports


def serve_command(
    *,
    config_path: Path,
    host: str,
) -> CommandFactory:
    """Build the argv for a `lagoon serve` child."""

    def command(instance: Instance) -> list[str]:
        cmd = [
            sys.executable,
            "-m",
            "lagoon.cli.main",
            "serve",
            "--config",
            str(config_path),
            "--host",
            host,
            "--port",
            str(instance.port),
        ]
        if not instance.shared:
            cmd.extend(["--project", instance.name])
        return cmd

    return command


def health_check(host: str) -> ReadyCheck:
    """Readiness probe: the child's health endpoint must list exactly its projects.

    Anything else on the port (a stale server, another app) is not ready.
    """
    # A bind-all address is not a destination.
    if host in {"0.0.0.0", "::", ""}:
        host = "127.0.0.1"

    def check(instance: Instance) -> bool:
        url = f"http://{host}:{instance.port}{HEALTH_PATH}"
        try:
            with urllib.request.urlopen(url, timeout=1) as resp:
                if resp.status != 200:
                    return False
                payload = json.loads(resp.read())
        except Exception:
            return False
        return isinstance(payload, dict) and payload.get("projects") == instance.project_ids

    return check


def build_child_env() -> dict[str, str]:
    """Environment for children, with this package importable."""
    env = os.environ.copy()
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = os.pathsep.join([str(SRC_ROOT), existing] if existing else [str(SRC_ROOT)])
    env.setdefault("PYTHONUNBUFFERED", "1")
    return env


def stop_process(process: subprocess.Popen[bytes], *, timeout: float = 5.0) -> None:
    """Terminate a child process politely."""
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


class Supervisor:
    """Launches, watches and tears down static server children.

    A project whose root directory is missing, or whose child dies before it
    reports ready, is reported and skipped; its siblings keep running.
    """

    def __init__(
        self,
        projects: Iterable[ProjectDescriptor],
        *,
        command: CommandFactory,
        ready: ReadyCheck,
        base_port: int,
        shared_port: int | None = None,
        shared: bool = False,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        poll_interval: float = 0.1,
        env: dict[str, str] | None = None,
    ) -> None:
        self.projects = list(projects)
        self.command = command
        self.ready = ready
        self.base_port = base_port
        self.shared_port = shared_port if shared_port is not None else base_port
        self.shared = shared
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self.env = env
        self.instances: list[Instance] = []
        self.failures: list[InstanceStartupFailure] = []
        self._stop = threading.Event()

    def plan(self) -> list[Instance]:
        """Decide which instances to launch, recording missing roots as failures."""
        present: list[ProjectDescriptor] = []
        for project in self.projects:
            if project.root_directory.is_dir():
                present.append(project)
            else:
                self._fail(InstanceStartupFailure(project.id, f"root directory not found: {project.root_directory}"))

        if self.shared:
            if not present:
                return []
            return [Instance(SHARED_INSTANCE, self.shared_port, [p.id for p in present])]

        ports = assign_ports(self.projects, self.base_port)
        return [Instance(p.id, ports[p.id], [p.id]) for p in present]

    def start(self) -> list[Instance]:
        """Launch every planned instance; return the ones that became ready."""
        for instance in self.plan():
            try:
                self._launch(instance)
            except InstanceStartupFailure as exc:
                self._fail(exc)
                continue
            self.instances.append(instance)
            print(
                f"[supervisor] {instance.name} ready on port {instance.port} "
                f"({', '.join(instance.project_ids)})",
                flush=True,
            )
        return list(self.instances)

    def _launch(self, instance: Instance) -> None:
        cmd = self.command(instance)
        try:
            instance.process = subprocess.Popen(cmd, env=self.env)
        except OSError as exc:
            raise InstanceStartupFailure(instance.name, f"could not start: {exc}") from exc

        deadline = time.monotonic() + max(self.startup_timeout, 0.0)
        while True:
            code = instance.process.poll()
            if code is not None:
                raise InstanceStartupFailure(instance.name, f"exited during startup (code {code})")
            if self.ready(instance):
                return
            if time.monotonic() >= deadline:
                stop_process(instance.process)
                raise InstanceStartupFailure(
                    instance.name, f"not ready after {self.startup_timeout:g}s on port {instance.port}"
                )
            time.sleep(self.poll_interval)

    def _fail(self, exc: InstanceStartupFailure) -> None:
        self.failures.append(exc)
        print(f"[supervisor] skipping {exc}", flush=True)

    def request_stop(self, *_args: object) -> None:
        self._stop.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self.request_stop)
        signal.signal(signal.SIGTERM, self.request_stop)

    def wait(self) -> int:
        """Block until a stop is requested or every child has exited."""
        while not self._stop.is_set():
            for instance in self.instances:
                if instance.process is not None and instance.process.poll() is not None:
                    print(
                        f"[supervisor] {instance.name} exited (code {instance.process.returncode})",
                        flush=True,
                    )
                    instance.process = None
            if all(instance.process is None for instance in self.instances):
                print("[supervisor] all servers exited", flush=True)
                return 1
            self._stop.wait(self.poll_interval)
        return 0

    def stop(self) -> None:
        """Terminate every child and wait for each to exit."""
        for instance in self.instances:
            if instance.process is None:
                continue
            print(f"[supervisor] stopping {instance.name}", flush=True)
            stop_process(instance.process)

    def run(self) -> int:
        self.install_signal_handlers()
        self.start()
        if not self.instances:
            print("[supervisor] no servers started", flush=True)
            return 1
        try:
            return self.wait()
        except KeyboardInterrupt:
            return 0
        finally:
            self.stop()
