from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from lagoon.errors import ConfigError
from lagoon.topology import ProjectDescriptor


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", "lagoon.env"), env_file_encoding="utf-8", extra="ignore")

    # Server
    host: str = Field(default="127.0.0.1", alias="LAGOON_HOST")
    port: int = Field(default=5174, alias="LAGOON_PORT")
    base_port: int = Field(default=5174, alias="LAGOON_BASE_PORT")
    env: str = Field(default="prod", alias="LAGOON_ENV")  # dev|prod

    # Projects
    projects_file: Path = Field(default=Path("projects.json"), alias="LAGOON_PROJECTS")

    # Injection
    shell_origins: str = Field(default="", alias="LAGOON_SHELL_ORIGINS")
    home_url: str | None = Field(default=None, alias="LAGOON_HOME_URL")
    local_protocols: str = Field(default="", alias="LAGOON_LOCAL_PROTOCOLS")

    # Routing
    api_prefixes: str = Field(default="/api/,/session/,/ai/", alias="LAGOON_API_PREFIXES")
    probe_locality: bool = Field(default=False, alias="LAGOON_PROBE_LOCALITY")

    @property
    def shell_origin_list(self) -> list[str]:
        return [origin.rstrip("/") for origin in _split_csv(self.shell_origins)]

    @property
    def api_prefix_list(self) -> list[str]:
        return ["/" + p.strip("/") + "/" for p in _split_csv(self.api_prefixes)]

    @property
    def local_protocol_list(self) -> list[str]:
        return _split_csv(self.local_protocols)

    @property
    def debug(self) -> bool:
        return self.env == "dev"


class ProjectsFile(BaseModel):
    projects: list[ProjectDescriptor]


def load_projects(path: str | Path) -> list[ProjectDescriptor]:
    """Read the projects JSON file; relative roots resolve next to the file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"projects file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc

    if isinstance(raw, list):
        raw = {"projects": raw}

    try:
        parsed = ProjectsFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"{path}: {exc.error_count()} invalid project entries\n{exc}") from exc

    base_dir = path.resolve().parent
    projects: list[ProjectDescriptor] = []
    seen: set[str] = set()
    for project in parsed.projects:
        if project.id in seen:
            raise ConfigError(f"{path}: duplicate project id {project.id!r}")
        seen.add(project.id)
        if not project.root_directory.is_absolute():
            project = project.model_copy(update={"root_directory": base_dir / project.root_directory})
        projects.append(project)
    return projects


def split_existing(projects: list[ProjectDescriptor]) -> tuple[list[ProjectDescriptor], list[ProjectDescriptor]]:
    """Return (projects whose root exists, projects whose root is missing)."""
    present = [p for p in projects if p.root_directory.is_dir()]
    missing = [p for p in projects if not p.root_directory.is_dir()]
    return present, missing
