"""Static server: resolve requests to project files and transform HTML on the way out."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response

from lagoon.config import Settings
from lagoon.errors import ConfigError, MalformedDocument, PathTraversalRejected, ResourceNotFound
from lagoon.routing.locator import RequestContext, Resolution, locate
from lagoon.routing.middleware import CORS_HEADERS, AccessLogMiddleware, CORSHeadersMiddleware
from lagoon.routing.transform import ServingContext, transform
from lagoon.topology import ProjectDescriptor, Topology

HEALTH_PATH = "/__lagoon__/health"

CONTENT_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
    ".json": "application/json",
    ".map": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".wasm": "application/wasm",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".txt": "text/plain",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"
HTML_SUFFIXES = {".html", ".htm"}


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def _not_found() -> Response:
    return PlainTextResponse("Not Found", status_code=404)


class StaticRouter:
    """Answers one request at a time against a fixed set of projects.

    One instance serves either a single project on its own origin or several
    projects under path prefixes; the ServingContext carries which.
    """

    def __init__(
        self,
        projects: Iterable[ProjectDescriptor],
        *,
        context: ServingContext,
        api_prefixes: Iterable[str] = (),
        probe_locality: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.projects = list(projects)
        self.context = context
        self.api_prefixes = tuple(api_prefixes)
        self.probe_locality = probe_locality
        self.logger = logger or logging.getLogger("lagoon.server")
        self._recent: str | None = None

    def handle(self, method: str, path: str, referer: str | None, origin: str | None) -> Response:
        """Turn one request into a response; never raises."""
        method = method.upper()
        if method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        if method not in {"GET", "HEAD"}:
            return PlainTextResponse("Method Not Allowed", status_code=405)

        if path == HEALTH_PATH:
            return JSONResponse({"ok": True, "projects": [p.id for p in self.projects]})
        if any(path.startswith(prefix) for prefix in self.api_prefixes):
            return JSONResponse({"error": "API endpoint not available"}, status_code=404)

        try:
            return self._serve(method, RequestContext(path, referer, origin))
        except Exception:
            self.logger.exception(f"{method} {path} failed")
            return PlainTextResponse("Internal Server Error", status_code=500)

    def _serve(self, method: str, request: RequestContext) -> Response:
        resolution = self._resolve(method, request)
        if resolution is None:
            return _not_found()

        project = resolution.project
        target = resolution.path
        if target.is_dir():
            target = target / project.entry_file
            if not target.is_file():
                self.logger.info(f"{method} {request.request_path} -> {project.id} has no {project.entry_file}")
                return _not_found()

        self._recent = project.id
        self.logger.info(f"{method} {request.request_path} -> {project.id} ({resolution.strategy}) {target}")

        if target.suffix.lower() in HTML_SUFFIXES:
            return Response(content=self._render_html(target), media_type=content_type_for(target))
        return FileResponse(target, media_type=content_type_for(target))

    def _resolve(self, method: str, request: RequestContext) -> Resolution | None:
        recent = self._recent if self.probe_locality else None
        try:
            return locate(request, self.projects, recent=recent)
        except PathTraversalRejected:
            self.logger.warning(
                f"{method} {request.request_path} rejected: path traversal (referer={request.referer_url})"
            )
        except ResourceNotFound:
            suffix = f" (from {request.referer_url})" if request.referer_url else ""
            self.logger.info(f"{method} {request.request_path} -> not found{suffix}")
        return None

    def _render_html(self, target: Path) -> bytes:
        raw = target.read_bytes()
        # surrogateescape keeps non-UTF-8 bytes intact through the round trip
        document = raw.decode("utf-8", errors="surrogateescape")
        try:
            return transform(document, self.context).encode("utf-8", errors="surrogateescape")
        except MalformedDocument:
            self.logger.warning(f"{target.name}: no head/body anchor, serving unmodified")
            return raw


def create_app(router: StaticRouter) -> FastAPI:
    """Create the ASGI app around a StaticRouter."""
    app = FastAPI(title="lagoon", docs_url=None, redoc_url=None, openapi_url=None)

    app.add_middleware(CORSHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)

    @app.api_route("/{path:path}", methods=["GET", "HEAD", "OPTIONS"], include_in_schema=False)
    async def serve_path(request: Request, path: str) -> Response:
        origin = f"{request.url.scheme}://{request.url.netloc}"
        # The locator percent-decodes exactly once, so hand it the path as sent.
        raw = request.scope.get("raw_path")
        target = raw.decode("utf-8", errors="replace") if raw else request.url.path
        return router.handle(request.method, target, request.headers.get("referer"), origin)

    return app


def build_router(
    settings: Settings,
    projects: Iterable[ProjectDescriptor],
    *,
    project_id: str | None = None,
) -> StaticRouter:
    """Router for one dedicated project origin, or for all projects under prefixes."""
    projects = list(projects)
    if project_id is None:
        selected = projects
        topology = Topology.path_prefixed()
    else:
        selected = [p for p in projects if p.id == project_id]
        if not selected:
            raise ConfigError(f"unknown project {project_id!r}")
        topology = Topology.dedicated_origin(selected[0])

    context = ServingContext(
        topology=topology,
        shell_origins=tuple(settings.shell_origin_list),
        home_url=settings.home_url,
        debug=settings.debug,
    )
    return StaticRouter(
        selected,
        context=context,
        api_prefixes=settings.api_prefix_list,
        probe_locality=settings.probe_locality,
    )


def serve(router: StaticRouter, *, host: str, port: int, log_level: str = "info") -> None:
    """Run a single-worker server for the router until it is signalled to stop."""
    app = create_app(router)
    router.logger.info(f"serving {', '.join(p.id for p in router.projects)} on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, workers=1, log_level=log_level, access_log=False)
