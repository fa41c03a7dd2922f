from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from lagoon.topology import ProjectDescriptor

ALPHA_INDEX = """<!doctype html>
<html>
  <head>
    <title>alpha</title>
    <script src="/chunk.js"></script>
  </head>
  <body>
    <div id="app"></div>
  </body>
</html>
"""

BETA_INDEX = """<!doctype html>
<html>
  <head><title>beta</title></head>
  <body><img src="/logo.png"></body>
</html>
"""


@pytest.fixture()
def project_tree(tmp_path: Path) -> Path:
    """Two built apps side by side, plus a secret file next to them."""
    alpha = tmp_path / "apps" / "alpha"
    beta = tmp_path / "apps" / "beta"
    (alpha / "assets").mkdir(parents=True)
    (beta / "nested").mkdir(parents=True)

    (alpha / "index.html").write_text(ALPHA_INDEX, encoding="utf-8")
    (alpha / "chunk.js").write_text("console.log('alpha chunk');\n", encoding="utf-8")
    (alpha / "shared.js").write_text("// alpha shared\n", encoding="utf-8")
    (alpha / "assets" / "style.css").write_text("body { margin: 0; }\n", encoding="utf-8")
    (alpha / "data.bin").write_bytes(b"\x00\x01\x02")

    (beta / "index.html").write_text(BETA_INDEX, encoding="utf-8")
    (beta / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    (beta / "shared.js").write_text("// beta shared\n", encoding="utf-8")
    (beta / "nested" / "page.html").write_text("no anchors here", encoding="utf-8")

    (tmp_path / "secret.txt").write_text("top secret\n", encoding="utf-8")
    return tmp_path


@pytest.fixture()
def projects(project_tree: Path) -> list[ProjectDescriptor]:
    return [
        ProjectDescriptor(id="alpha", root=project_tree / "apps" / "alpha"),
        ProjectDescriptor(id="beta", root=project_tree / "apps" / "beta"),
    ]


@pytest.fixture()
def projects_file(project_tree: Path) -> Path:
    path = project_tree / "projects.json"
    path.write_text(
        json.dumps(
            {
                "projects": [
                    {"id": "alpha", "root": "apps/alpha"},
                    {"id": "beta", "root": "apps/beta", "port": 6001},
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def _clean_lagoon_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep developer .env files and LAGOON_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith("LAGOON_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
