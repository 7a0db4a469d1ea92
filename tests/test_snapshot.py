"""
Snapshot tests: baking a production build plus assets, persisting it and
serving it back.
"""

import asyncio
import base64
import json
import os

import pytest

from webbake.config import load_settings
from webbake.errors import BuildFailed
from webbake.models import BuildMessage, BundleOutput, BundleResult, OutputKind
from webbake.snapshot import (
    EncodedSnapshot,
    Encoding,
    StaticSnapshot,
    decode,
    encode,
    read_snapshot,
    select_encoding,
    walk_assets,
    write_snapshot,
)

from tests.fakes import FakeBundler


class TestEncodedSnapshot:
    """The three-level encoding -> content type -> route structure."""

    def test_text_and_binary_grouping(self):
        snapshot = EncodedSnapshot()
        snapshot.insert("/a.js", b"console.log(1)", "text/javascript;charset=utf-8")
        snapshot.insert("/logo.png", b"\x89PNG\x00", "image/png")

        data = snapshot.to_dict()
        assert data["utf-8"]["text/javascript;charset=utf-8"]["/a.js"] == "console.log(1)"
        assert data["base64"]["image/png"]["/logo.png"] == base64.b64encode(b"\x89PNG\x00").decode()

    def test_select_encoding(self):
        assert select_encoding("text/html;charset=utf-8") is Encoding.TEXT
        assert select_encoding("text/css") is Encoding.TEXT
        assert select_encoding("application/json") is Encoding.BASE64
        assert select_encoding("image/svg+xml") is Encoding.BASE64

    def test_decode_restores_every_artifact(self):
        snapshot = EncodedSnapshot()
        snapshot.insert("/", b"<html></html>", "text/html;charset=utf-8")
        snapshot.insert("/font.woff2", bytes(range(256)), "font/woff2")

        routes = decode(EncodedSnapshot.loads(snapshot.dumps()))

        assert routes["/"].body == b"<html></html>"
        assert routes["/"].content_type == "text/html;charset=utf-8"
        assert routes["/font.woff2"].body == bytes(range(256))
        assert routes["/font.woff2"].path == "/font.woff2"

    def test_text_body_that_is_not_utf8_survives(self):
        body = b"latin-1 caf\xe9 \xff"
        snapshot = EncodedSnapshot()
        snapshot.insert("/legacy.txt", body, "text/plain;charset=utf-8")

        routes = decode(EncodedSnapshot.loads(snapshot.dumps()))
        assert routes["/legacy.txt"].body == body

    def test_same_route_last_writer_wins(self):
        snapshot = EncodedSnapshot()
        snapshot.insert("/app.js", b"built", "text/javascript;charset=utf-8")
        snapshot.insert("/app.js", b"\x00raw", "application/octet-stream")

        assert len(snapshot) == 1
        data = snapshot.to_dict()
        assert "utf-8" not in data
        assert decode(snapshot)["/app.js"].body == b"\x00raw"

    def test_unknown_encoding_rejected(self):
        with pytest.raises(ValueError):
            EncodedSnapshot.from_dict({"gzip": {"text/plain": {"/a": "x"}}})

    def test_from_dict_indexes_routes(self):
        snapshot = EncodedSnapshot.from_dict({"utf-8": {"text/plain": {"/a": "x"}}})
        assert "/a" in snapshot
        assert len(snapshot) == 1


class TestWalkAssets:
    """Traversal of the asset directory."""

    def test_routes_relative_to_root(self, project):
        outputs = list(walk_assets(project, project / "public"))

        assert [route for route, _, _ in outputs] == ["/public/style.css", "/public/sub/img.png"]
        by_route = {route: (body, ctype) for route, body, ctype in outputs}
        assert by_route["/public/sub/img.png"][1] == "image/png"
        assert by_route["/public/style.css"][1] == "text/css;charset=utf-8"
        assert by_route["/public/sub/img.png"][0] == (project / "public" / "sub" / "img.png").read_bytes()

    def test_missing_directory_yields_nothing(self, tmp_path):
        assert list(walk_assets(tmp_path, tmp_path / "public")) == []

    def test_symlinked_directory_followed(self, project, tmp_path_factory):
        outside = tmp_path_factory.mktemp("shared")
        (outside / "font.woff2").write_bytes(b"wOF2")
        os.symlink(outside, project / "public" / "fonts")

        routes = [route for route, _, _ in walk_assets(project, project / "public")]
        assert "/public/fonts/font.woff2" in routes

    def test_symlink_loop_terminates(self, project):
        os.symlink(project / "public", project / "public" / "sub" / "loop")
        routes = [route for route, _, _ in walk_assets(project, project / "public")]
        assert routes.count("/public/style.css") == 1


class TestEncode:
    """Baking a production snapshot."""

    def test_development_configuration_is_empty(self, dev_settings, two_entry_bundler):
        snapshot = asyncio.run(encode(dev_settings, two_entry_bundler))
        assert len(snapshot) == 0
        assert two_entry_bundler.calls == 0

    def test_production_build_and_assets(self, prod_settings, two_entry_bundler):
        snapshot = asyncio.run(encode(prod_settings, two_entry_bundler))
        routes = decode(snapshot)

        assert set(routes) == {
            "/", "/out1.hash.js", "/out2.hash.js", "/public/style.css", "/public/sub/img.png",
        }
        assert b"/out1.hash.js" in routes["/"].body
        assert routes["/public/sub/img.png"].content_type == "image/png"

    def test_asset_overrides_build_output_on_same_route(self, project):
        """Assets are walked after the build, so the asset wins a collision."""
        settings = load_settings(root=project, env={"WEBBAKE_ENV": "production"}, assets=".")
        built = BundleOutput(path="index.html", content_type="text/html;charset=utf-8",
                             body=b"<p>from the bundler</p>", kind=OutputKind.ASSET)
        bundler = FakeBundler(BundleResult(success=True, outputs=[built]))

        snapshot = asyncio.run(encode(settings, bundler))
        routes = decode(snapshot)

        assert routes["/index.html"].body == (project / "index.html").read_bytes()
        assert b"from the bundler" not in routes["/index.html"].body
        assert "/public/style.css" in routes

    def test_production_failure_propagates(self, prod_settings):
        bundler = FakeBundler(BundleResult(success=False, logs=[BuildMessage(message="boom")]))
        with pytest.raises(BuildFailed):
            asyncio.run(encode(prod_settings, bundler))


class TestPersistence:
    """The JSON snapshot resource and the lazily decoded view."""

    def test_write_and_read(self, tmp_path):
        snapshot = EncodedSnapshot()
        snapshot.insert("/", b"<p>hi</p>", "text/html;charset=utf-8")
        path = write_snapshot(snapshot, tmp_path / "out" / "snapshot.json")

        assert json.loads(path.read_text())["utf-8"]["text/html;charset=utf-8"]["/"] == "<p>hi</p>"
        assert read_snapshot(path).to_dict() == snapshot.to_dict()
        assert not (tmp_path / "out" / "snapshot.json.tmp").exists()

    def test_missing_resource_is_empty(self, tmp_path):
        assert len(read_snapshot(tmp_path / "none.json")) == 0

    def test_static_snapshot_decoded_once(self, tmp_path):
        snapshot = EncodedSnapshot()
        snapshot.insert("/", b"<p>hi</p>", "text/html;charset=utf-8")
        path = write_snapshot(snapshot, tmp_path / "snapshot.json")

        static = StaticSnapshot(path)
        first = static.routes
        path.unlink()

        assert static.routes is first
        assert first["/"].body == b"<p>hi</p>"
