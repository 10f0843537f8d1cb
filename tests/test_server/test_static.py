"""Tests for debug and production static asset serving."""
from __future__ import annotations

import gzip
from importlib.resources.abc import Traversable
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from src.server.static import EmbeddedBundle, mount_static

STYLE = "body { color: #333; }\n" * 40


@pytest.fixture
def assets(tmp_path: Path) -> Path:
    root = tmp_path / "assets"
    (root / "css").mkdir(parents=True)
    (root / "css" / "app.css").write_text(STYLE)
    (root / "index.html").write_text("<h1>home</h1>")
    (root / "logo.bin").write_bytes(b"\x00\x01")
    return root


class TestDebugMode:
    def test_serves_from_disk(self, assets: Path):
        app = FastAPI()
        mount_static(app, "/assets", str(assets), debug=True)
        resp = TestClient(app).get("/assets/css/app.css")
        assert resp.status_code == 200
        assert resp.text == STYLE

    def test_reflects_edits_without_restart(self, assets: Path):
        app = FastAPI()
        mount_static(app, "/assets", str(assets), debug=True)
        client = TestClient(app)
        client.get("/assets/css/app.css")
        (assets / "css" / "app.css").write_text("body { color: red; }")
        assert client.get("/assets/css/app.css").text == "body { color: red; }"


class TestProductionMode:
    @pytest.fixture
    def client(self, assets: Path) -> TestClient:
        app = FastAPI()
        mount_static(app, "/assets/", str(assets), debug=False)
        return TestClient(app)

    def test_prefix_stripped(self, client: TestClient):
        resp = client.get("/assets/css/app.css", headers={"Accept-Encoding": "identity"})
        assert resp.status_code == 200
        assert resp.text == STYLE
        assert resp.headers["content-type"].startswith("text/css")
        assert "content-encoding" not in resp.headers

    def test_serves_snapshot_not_disk(self, client: TestClient, assets: Path):
        (assets / "css" / "app.css").write_text("changed")
        assert client.get("/assets/css/app.css").text == STYLE

    def test_gzip_when_accepted(self, client: TestClient):
        resp = client.get("/assets/css/app.css", headers={"Accept-Encoding": "gzip"})
        assert resp.headers["content-encoding"] == "gzip"
        assert resp.text == STYLE

    def test_small_files_not_compressed(self, client: TestClient):
        resp = client.get("/assets/logo.bin", headers={"Accept-Encoding": "gzip"})
        assert "content-encoding" not in resp.headers
        assert resp.content == b"\x00\x01"

    def test_index_for_directory(self, client: TestClient):
        assert client.get("/assets/").text == "<h1>home</h1>"

    def test_etag_not_modified(self, client: TestClient):
        etag = client.get("/assets/index.html").headers["etag"]
        resp = client.get("/assets/index.html", headers={"If-None-Match": etag})
        assert resp.status_code == 304

    def test_missing_file_404(self, client: TestClient):
        assert client.get("/assets/nope.js").status_code == 404

    def test_post_not_allowed(self, client: TestClient):
        resp = client.post("/assets/index.html")
        assert resp.status_code == 405
        assert resp.headers["allow"] == "GET, HEAD"

    def test_head_has_no_body(self, client: TestClient):
        resp = client.head("/assets/css/app.css", headers={"Accept-Encoding": "identity"})
        assert resp.status_code == 200
        assert resp.content == b""
        assert resp.headers["content-length"] == str(len(STYLE))

    def test_websocket_closed(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/assets/index.html"):
                pass

    def test_missing_folder_rejected(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            mount_static(FastAPI(), "/assets", str(tmp_path / "absent"), debug=False)

    def test_bundle_root(self, assets: Path):
        bundle: Traversable = assets.parent
        app = FastAPI()
        mount_static(app, "/static", "assets", debug=False, bundle=bundle)
        assert TestClient(app).get("/static/index.html").text == "<h1>home</h1>"


class TestEmbeddedBundle:
    def test_snapshot_contents(self, assets: Path):
        bundle = EmbeddedBundle(assets)
        assert len(bundle) == 3
        assert "css/app.css" in bundle

    def test_lookup(self, assets: Path):
        bundle = EmbeddedBundle(assets)
        assert bundle.lookup("/index.html") is bundle.lookup("")
        assert bundle.lookup("/css/app.css").gzipped is not None
        assert gzip.decompress(bundle.lookup("/css/app.css").gzipped).decode() == STYLE
        assert bundle.lookup("/absent") is None
