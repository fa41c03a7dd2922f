"""Project descriptors and the deployment topology value object."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectDescriptor(BaseModel):
    """One pre-built single-page app: where it lives and how it is addressed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    root_directory: Path = Field(alias="root")
    entry_file: str = Field(default="index.html", alias="entry")
    port: int | None = Field(default=None, ge=1, le=65535)
    base_path: str | None = None

    @field_validator("id")
    @classmethod
    def _id_is_a_segment(cls, value: str) -> str:
        if "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError(f"project id must be a single path segment: {value!r}")
        return value

    @field_validator("entry_file")
    @classmethod
    def _entry_is_relative(cls, value: str) -> str:
        value = value.strip().lstrip("/")
        if not value or ".." in value.replace("\\", "/").split("/"):
            raise ValueError(f"entry file must be a relative path: {value!r}")
        return value

    @property
    def prefix(self) -> str:
        """URL prefix for same-origin serving, e.g. ``/studio``."""
        raw = (self.base_path or self.id).strip().strip("/")
        return "/" + raw if raw else ""

    @property
    def root(self) -> Path:
        return self.root_directory.resolve()


class TopologyKind(str, enum.Enum):
    PATH_PREFIXED = "path-prefixed"
    DEDICATED_ORIGIN = "dedicated-origin"
    LOCAL_FILE = "local-file"


LOCAL_PROTOCOLS = ("file:", "tauri:", "lagoon:")


@dataclass(frozen=True)
class Topology:
    """How project identity maps onto URLs for the document being served.

    This is the single decision point for the injected base declaration and
    for which protocols the browser runtime is willing to act on.
    """

    kind: TopologyKind
    root_href: str = "/"
    extra_protocols: tuple[str, ...] = ()

    @classmethod
    def path_prefixed(cls) -> Topology:
        return cls(TopologyKind.PATH_PREFIXED)

    @classmethod
    def dedicated_origin(cls, project: ProjectDescriptor | None = None) -> Topology:
        root_href = "/"
        if project is not None and project.base_path:
            root_href = project.prefix + "/"
        return cls(TopologyKind.DEDICATED_ORIGIN, root_href=root_href)

    @classmethod
    def local_file(cls, extra_protocols: tuple[str, ...] = ()) -> Topology:
        return cls(TopologyKind.LOCAL_FILE, extra_protocols=extra_protocols)

    @property
    def base_href(self) -> str:
        if self.kind is TopologyKind.DEDICATED_ORIGIN:
            return self.root_href
        return "./"

    @property
    def protocols(self) -> tuple[str, ...]:
        """Protocols the runtime guard accepts; empty means any."""
        if self.kind is not TopologyKind.LOCAL_FILE:
            return ()
        extra = tuple(p if p.endswith(":") else p + ":" for p in self.extra_protocols)
        return LOCAL_PROTOCOLS + tuple(p for p in extra if p not in LOCAL_PROTOCOLS)
