"""Error taxonomy shared by the locator, transformer, server and supervisor."""
from __future__ import annotations


class LagoonError(Exception):
    """Base class for every error raised by lagoon."""


class ConfigError(LagoonError):
    """The projects file or settings could not be used."""


class ResourceNotFound(LagoonError):
    """No resolution strategy produced an existing file."""

    def __init__(self, request_path: str) -> None:
        super().__init__(f"no project serves {request_path}")
        self.request_path = request_path


class PathTraversalRejected(ResourceNotFound):
    """The request path tried to climb out of a project root."""

    def __init__(self, request_path: str) -> None:
        super().__init__(request_path)
        self.args = (f"traversal segment in {request_path}",)


class MalformedDocument(LagoonError):
    """An HTML document has no <head>, </head> or </body> to inject into."""


class InstanceStartupFailure(LagoonError):
    """A static server instance could not be launched or bound its port."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason
