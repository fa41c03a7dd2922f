"""Textual HTML injection and restoration.

The input is raw document text, never a parsed DOM. Injection is anchored on
structural tag landmarks and guarded by a versioned comment marker, so running
it twice is a no-op and restoration knows exactly what to cut out.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass

from lagoon.errors import MalformedDocument
from lagoon.routing.payload import render_home_control, render_path_fixer
from lagoon.topology import Topology

_HEAD_OPEN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)

# Upper bound for a single injected script body when matching it back out.
_MAX_SCRIPT = 32_000

PATH_FIXER_ID = "lagoon-path-fixer"
HOME_CONTROL_ID = "lagoon-home-control-script"


@dataclass(frozen=True)
class Marker:
    """Versioned comment proving a block was injected."""

    name: str
    version: int = 1

    @property
    def comment(self) -> str:
        return f"<!-- lagoon:{self.name} v{self.version} -->"

    @property
    def pattern(self) -> str:
        # Any version counts, so an older injection is never doubled up.
        return rf"<!--\s*lagoon:{re.escape(self.name)}\s+v\d+\s*-->"

    def present_in(self, document: str) -> bool:
        return re.search(self.pattern, document) is not None


PATH_FIXER_MARKER = Marker("path-fixer")
HOME_CONTROL_MARKER = Marker("home-control")


def _script_span(script_id: str) -> str:
    return (
        rf'<script\b[^>]*\bid="{re.escape(script_id)}"[^>]*>'
        rf"(?:(?!</script>)[\s\S]){{0,{_MAX_SCRIPT}}}</script>"
    )


_BASE_TAG = r"<base\b[^>]*\bdata-lagoon\b[^>]*>"

_INJECTED_BLOCK = re.compile(
    rf"(?:{_BASE_TAG})?{_script_span(PATH_FIXER_ID)}{PATH_FIXER_MARKER.pattern}",
    re.IGNORECASE,
)
_HOME_BLOCK = re.compile(
    rf"{_script_span(HOME_CONTROL_ID)}{HOME_CONTROL_MARKER.pattern}",
    re.IGNORECASE,
)
# Pieces left behind when a document was hand-edited after injection.
_STRAY_PIECES = [
    re.compile(_BASE_TAG, re.IGNORECASE),
    re.compile(_script_span(PATH_FIXER_ID), re.IGNORECASE),
    re.compile(_script_span(HOME_CONTROL_ID), re.IGNORECASE),
    re.compile(PATH_FIXER_MARKER.pattern),
    re.compile(HOME_CONTROL_MARKER.pattern),
]
# Blocks written by the older standalone injector: a relative base tag followed
# by an anonymous script carrying the "[PathFixer]" log signature.
_LEGACY_BLOCK = re.compile(
    r"(?:<base\s+href=\"[^\"]*\"\s*/?>\s*)?"
    r"<script>(?:(?!</script>)[\s\S]){0,6000}?(?:\[PathFixer\]|isTauriAsset)"
    r"(?:(?!</script>)[\s\S]){0,6000}</script>\s*",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ServingContext:
    """Everything the transformer needs to know about where a document is served."""

    topology: Topology
    shell_origins: tuple[str, ...] = ()
    home_url: str | None = None
    home_label: str = "Home"
    debug: bool = False


def base_declaration(topology: Topology) -> str:
    return f'<base href="{html.escape(topology.base_href, quote=True)}" data-lagoon>'


def home_control_block(home_url: str, *, label: str = "Home") -> str:
    script = render_home_control(home_url, label=label)
    return f'<script id="{HOME_CONTROL_ID}">{script}</script>' + HOME_CONTROL_MARKER.comment


def path_fixer_block(context: ServingContext) -> str:
    """Base declaration, payload script and marker as one splice-ready string."""
    script = render_path_fixer(
        context.topology,
        shell_origins=context.shell_origins,
        debug=context.debug,
    )
    return (
        base_declaration(context.topology)
        + f'<script id="{PATH_FIXER_ID}">{script}</script>'
        + PATH_FIXER_MARKER.comment
    )


def is_transformed(document: str) -> bool:
    return PATH_FIXER_MARKER.present_in(document)


def transform(document: str, context: ServingContext) -> str:
    """Inject the path fixer (and optional home control) exactly once each.

    The two blocks carry their own markers, so a document transformed
    without a home URL can still gain the control later. Existing
    attributes are never rewritten here; that is the browser runtime's
    job. Raises MalformedDocument when there is no <head>, </head> or
    </body> to anchor on.
    """
    out = document
    if not is_transformed(out):
        block = path_fixer_block(context)
        out = _splice(out, block, anchors=("head-open", "head-close", "body-close"))
    if context.home_url and not HOME_CONTROL_MARKER.present_in(out):
        block = home_control_block(context.home_url, label=context.home_label)
        out = _splice(out, block, anchors=("head-close", "body-close", "head-open"))
    return out


def restore(document: str) -> tuple[str, bool]:
    """Strip every lagoon injection (and legacy path-fixer blocks).

    Returns the cleaned document and whether anything was removed.
    """
    out = _INJECTED_BLOCK.sub("", document)
    out = _HOME_BLOCK.sub("", out)
    for piece in _STRAY_PIECES:
        out = piece.sub("", out)
    out = _LEGACY_BLOCK.sub("", out)
    return out, out != document


def _find_anchor(document: str, anchor: str) -> int | None:
    if anchor == "head-open":
        match = _HEAD_OPEN.search(document)
        return match.end() if match else None
    if anchor == "head-close":
        match = _HEAD_CLOSE.search(document)
        return match.start() if match else None
    if anchor == "body-close":
        last = None
        for last in _BODY_CLOSE.finditer(document):
            pass
        return last.start() if last else None
    raise ValueError(f"unknown anchor {anchor!r}")


def _splice(document: str, block: str, *, anchors: tuple[str, ...]) -> str:
    for anchor in anchors:
        index = _find_anchor(document, anchor)
        if index is not None:
            return document[:index] + block + document[index:]
    raise MalformedDocument("document has no <head>, </head> or </body> tag")
