"""Render the browser-side scripts that get spliced into served HTML."""
from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

from lagoon.topology import Topology

_CONFIG_SLOT = "/*LAGOON_CONFIG*/"


@lru_cache(maxsize=None)
def _load(name: str) -> str:
    return resources.files("lagoon.routing").joinpath("static").joinpath(name).read_text(encoding="utf-8")


def _inline_json(value: Any) -> str:
    """JSON that is safe inside an inline <script> element."""
    text = json.dumps(value, separators=(",", ":"), sort_keys=True)
    return text.replace("</", "<\\/").replace("<!--", "<\\!--")


def _render(name: str, config: dict[str, Any]) -> str:
    source = _load(name)
    if _CONFIG_SLOT not in source:
        raise RuntimeError(f"{name} has no config slot")
    return source.replace(_CONFIG_SLOT, _inline_json(config)).strip()


def render_path_fixer(
    topology: Topology,
    *,
    shell_origins: tuple[str, ...] = (),
    debug: bool = False,
    poll_interval_ms: int = 10,
) -> str:
    """Return the path-fixer script body configured for one topology."""
    return _render(
        "path_fixer.js",
        {
            "topology": topology.kind.value,
            "protocols": list(topology.protocols),
            "shellOrigins": list(shell_origins),
            "debug": debug,
            "pollInterval": poll_interval_ms,
        },
    )


def render_home_control(home_url: str, *, label: str = "Home") -> str:
    """Return the return-to-host control script body."""
    return _render("home_control.js", {"homeUrl": home_url, "label": label})
