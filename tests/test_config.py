from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from lagoon.config import Settings, load_projects, split_existing
from lagoon.errors import ConfigError
from lagoon.topology import ProjectDescriptor, Topology, TopologyKind


def test_load_projects_resolves_roots_next_to_file(projects_file: Path, project_tree: Path) -> None:
    projects = load_projects(projects_file)

    assert [p.id for p in projects] == ["alpha", "beta"]
    assert projects[0].root == (project_tree / "apps" / "alpha").resolve()
    assert projects[0].entry_file == "index.html"
    assert projects[1].port == 6001


def test_load_projects_accepts_a_bare_list(tmp_path: Path) -> None:
    path = tmp_path / "projects.json"
    path.write_text(json.dumps([{"id": "solo", "root": "/srv/solo", "entry": "/app.html"}]), encoding="utf-8")

    (project,) = load_projects(path)

    assert project.root_directory == Path("/srv/solo")
    assert project.entry_file == "app.html"


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"projects": [{"id": "a/b", "root": "x"}]}),
        json.dumps({"projects": [{"id": "a"}]}),
        json.dumps({"projects": [{"id": "a", "root": "x", "port": 70000}]}),
        json.dumps({"projects": [{"id": "a", "root": "x", "entry": "../index.html"}]}),
        json.dumps({"projects": [{"id": "a", "root": "x"}, {"id": "a", "root": "y"}]}),
    ],
)
def test_bad_projects_files_raise_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "projects.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_projects(path)


def test_missing_projects_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_projects(tmp_path / "nope.json")


def test_split_existing(tmp_path: Path, projects) -> None:
    gone = ProjectDescriptor(id="gone", root=tmp_path / "missing")

    present, missing = split_existing([*projects, gone])

    assert [p.id for p in present] == ["alpha", "beta"]
    assert [p.id for p in missing] == ["gone"]


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAGOON_PORT", "7000")
    monkeypatch.setenv("LAGOON_ENV", "dev")
    monkeypatch.setenv("LAGOON_SHELL_ORIGINS", "http://a:1/, http://b:2")
    monkeypatch.setenv("LAGOON_API_PREFIXES", "api,/rpc/")
    monkeypatch.setenv("LAGOON_LOCAL_PROTOCOLS", "app:")

    settings = Settings()

    assert settings.port == 7000
    assert settings.debug is True
    assert settings.shell_origin_list == ["http://a:1", "http://b:2"]
    assert settings.api_prefix_list == ["/api/", "/rpc/"]
    assert settings.local_protocol_list == ["app:"]


def test_settings_from_env_file(tmp_path: Path) -> None:
    (tmp_path / "lagoon.env").write_text("LAGOON_BASE_PORT=5300\n", encoding="utf-8")

    assert Settings().base_port == 5300


def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.port == 5174
    assert settings.api_prefix_list == ["/api/", "/session/", "/ai/"]
    assert settings.debug is False
    assert settings.probe_locality is False


def test_descriptor_prefix_and_base_path() -> None:
    plain = ProjectDescriptor(id="alpha", root="/srv/alpha")
    based = ProjectDescriptor(id="beta", root="/srv/beta", base_path="/tools/beta/")

    assert plain.prefix == "/alpha"
    assert based.prefix == "/tools/beta"


def test_descriptor_is_immutable() -> None:
    project = ProjectDescriptor(id="alpha", root="/srv/alpha")

    with pytest.raises(ValidationError):
        project.id = "beta"


def test_topology_protocols() -> None:
    assert Topology.path_prefixed().protocols == ()
    assert Topology.dedicated_origin().kind is TopologyKind.DEDICATED_ORIGIN
    assert Topology.local_file(("app", "file:")).protocols == ("file:", "tauri:", "lagoon:", "app:")
