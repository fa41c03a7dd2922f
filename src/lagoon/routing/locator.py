"""Map absolute-looking asset requests onto the project that owns them.

Resolution order:
  1. prefix   -> /studio/chunk.js resolves under the studio root
  2. referer  -> /chunk.js requested from /studio/index.html resolves under studio
  3. probe    -> every project root is tried, most-recently-matched first,
                 then declared order

Nothing here touches global state or logs; callers decide what to report.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
from urllib.parse import unquote, urlsplit

from lagoon.errors import PathTraversalRejected, ResourceNotFound
from lagoon.topology import ProjectDescriptor

_SEGMENT_SPLIT = re.compile(r"[\\/]")


@dataclass(frozen=True)
class RequestContext:
    request_path: str
    referer_url: str | None = None
    serving_origin: str | None = None


@dataclass(frozen=True)
class Resolution:
    path: Path
    project: ProjectDescriptor
    strategy: str  # prefix | referer | probe


def clean_request_path(raw: str) -> str:
    """Drop query/fragment, percent-decode, and reject traversal segments."""
    path = raw.split("?", 1)[0].split("#", 1)[0]
    path = unquote(path)
    if "\x00" in path or any(seg == ".." for seg in _SEGMENT_SPLIT.split(path)):
        raise PathTraversalRejected(raw)
    return "/" + path.lstrip("/")


def locate(
    context: RequestContext,
    projects: Sequence[ProjectDescriptor],
    *,
    recent: str | None = None,
) -> Resolution:
    """Resolve a request to an existing file or directory inside one project root.

    Raises PathTraversalRejected before any lookup when the path has a ``..``
    segment, and ResourceNotFound once every strategy is exhausted.
    """
    path = clean_request_path(context.request_path)

    prefixed = _match_prefix(path, projects)
    if prefixed is not None:
        project, remainder = prefixed
        found = _candidate(project, remainder)
        if found is not None:
            return Resolution(found, project, "prefix")

    if context.referer_url:
        owner = _project_from_referer(context.referer_url, projects)
        if owner is not None:
            found = _candidate(owner, path.lstrip("/"))
            if found is None:
                raise ResourceNotFound(context.request_path)
            return Resolution(found, owner, "referer")

    for project in _probe_order(projects, recent):
        found = _candidate(project, path.lstrip("/"))
        if found is not None:
            return Resolution(found, project, "probe")

    raise ResourceNotFound(context.request_path)


def _by_prefix_length(projects: Sequence[ProjectDescriptor]) -> list[ProjectDescriptor]:
    """Longest prefix first; stable, so declared order breaks ties."""
    return sorted((p for p in projects if p.prefix), key=lambda p: -len(p.prefix))


def _match_prefix(
    path: str,
    projects: Sequence[ProjectDescriptor],
) -> tuple[ProjectDescriptor, str] | None:
    for project in _by_prefix_length(projects):
        prefix = project.prefix
        if path == prefix or path.startswith(prefix + "/"):
            return project, path[len(prefix):].lstrip("/")
    return None


def _project_from_referer(
    referer: str,
    projects: Sequence[ProjectDescriptor],
) -> ProjectDescriptor | None:
    try:
        ref_path = unquote(urlsplit(referer).path or "")
    except ValueError:
        return None
    if not ref_path:
        return None

    matched = _match_prefix("/" + ref_path.lstrip("/"), projects)
    if matched is not None:
        return matched[0]

    segments = [s for s in ref_path.split("/") if s]
    for project in projects:
        if project.id in segments:
            return project
    return None


def _probe_order(
    projects: Sequence[ProjectDescriptor],
    recent: str | None,
) -> list[ProjectDescriptor]:
    if recent is None:
        return list(projects)
    first = [p for p in projects if p.id == recent]
    return first + [p for p in projects if p.id != recent]


def _candidate(project: ProjectDescriptor, relative: str) -> Path | None:
    """Return root/relative if it exists and stays inside the project root."""
    root = project.root
    try:
        candidate = (root / relative).resolve() if relative else root
    except (OSError, RuntimeError):
        return None

    # Symlinks resolving outside the root count as missing.
    if candidate != root and root not in candidate.parents:
        return None
    try:
        if not candidate.exists():
            return None
    except OSError:
        # ENAMETOOLONG and friends: nothing by that name can be served.
        return None
    return candidate
