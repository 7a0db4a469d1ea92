"""Shared fixtures: a project tree, settings and the test doubles."""
from pathlib import Path

import pytest

from tests.fakes import FakeBundler, FakeObserver, entry_output
from webbake.config import load_settings
from webbake.models import BundleResult

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>App</title>
    <script type="module" src="./src/a.js"></script>
    <script type="module" src="./src/b.js"></script>
</head>
<body>
    <div id="app"></div>
</body>
</html>
"""


@pytest.fixture
def project(tmp_path) -> Path:
    """Project root with index.html, two sources and a public/ tree."""
    (tmp_path / "index.html").write_text(INDEX_HTML)
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.js").write_text("import './shared.js';\nconsole.log('a');\n")
    (src / "b.js").write_text("console.log('b');\n")
    (src / "shared.js").write_text("export const x = 1;\n")
    public = tmp_path / "public"
    (public / "sub").mkdir(parents=True)
    (public / "style.css").write_text("body { margin: 0; }\n")
    (public / "sub" / "img.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe")
    return tmp_path


@pytest.fixture
def dev_settings(project):
    return load_settings(root=project, env={})


@pytest.fixture
def prod_settings(project):
    return load_settings(root=project, env={"WEBBAKE_ENV": "production"})


@pytest.fixture
def two_entry_bundler(project) -> FakeBundler:
    """Bundler reporting out1 (from a.js) then out2 (from b.js) as entries."""
    src = project.resolve() / "src"
    return FakeBundler(BundleResult(success=True, outputs=[
        entry_output("out1.hash.js", [str(src / "a.js"), str(src / "shared.js")]),
        entry_output("out2.hash.js", [str(src / "b.js")]),
    ]))


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()
