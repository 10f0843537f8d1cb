"""Static asset serving.

Debug mode serves a directory straight from disk so edits show up on the
next request. Production mode serves an ``EmbeddedBundle``: a snapshot of
the directory (usually package data) read and gzip-compressed once, when
the mount is registered.
"""
from __future__ import annotations

import gzip
import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Iterator

from fastapi import FastAPI
from starlette.datastructures import Headers
from starlette.responses import PlainTextResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


@dataclass(frozen=True)
class BundleFile:
    """One file of the bundle, with its precompressed form."""
    content: bytes
    gzipped: bytes | None
    media_type: str
    etag: str


def _walk(node: Traversable, prefix: str = "") -> Iterator[tuple[str, bytes]]:
    for child in sorted(node.iterdir(), key=lambda c: c.name):
        name = f"{prefix}{child.name}"
        if child.is_dir():
            yield from _walk(child, f"{name}/")
        elif child.is_file():
            yield name, child.read_bytes()


def _encode(name: str, content: bytes) -> BundleFile:
    compressed = gzip.compress(content, mtime=0)
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    if media_type.startswith("text/") and "charset" not in media_type:
        media_type = f"{media_type}; charset=utf-8"
    return BundleFile(
        content=content,
        gzipped=compressed if len(compressed) < len(content) else None,
        media_type=media_type,
        etag=f'"{hashlib.sha256(content).hexdigest()[:32]}"',
    )


def _accepts_gzip(headers: Headers) -> bool:
    for token in headers.get("accept-encoding", "").split(","):
        coding, _, params = token.strip().partition(";")
        if coding.strip().lower() in ("gzip", "*"):
            return params.replace(" ", "").lower() not in ("q=0", "q=0.0", "q=0.00", "q=0.000")
    return False


class EmbeddedBundle:
    """ASGI app serving an in-memory snapshot of a directory tree.

    Paths are resolved relative to the mount point, so the files carry no
    knowledge of the URL prefix they are served under.
    """

    def __init__(self, root: Traversable) -> None:
        if not root.is_dir():
            raise FileNotFoundError(f"static bundle directory {root} does not exist")
        self._files: dict[str, BundleFile] = {
            name: _encode(name, content) for name, content in _walk(root)
        }
        logger.debug("Loaded static bundle: root=%s files=%d", root, len(self._files))

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, name: object) -> bool:
        return name in self._files

    def lookup(self, route_path: str) -> BundleFile | None:
        """Return the file served for *route_path* (relative to the mount)."""
        name = route_path.lstrip("/")
        if not name or name.endswith("/"):
            name = f"{name}{INDEX_FILE}"
        return self._files.get(name)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await WebSocketClose()(scope, receive, send)
            return
        response = self.get_response(_route_path(scope), scope)
        await response(scope, receive, send)

    def get_response(self, route_path: str, scope: Scope) -> Response:
        method = scope["method"]
        if method not in ("GET", "HEAD"):
            return PlainTextResponse(
                "Method Not Allowed", status_code=405, headers={"Allow": "GET, HEAD"}
            )

        bundle_file = self.lookup(route_path)
        if bundle_file is None:
            return PlainTextResponse("Not Found", status_code=404)

        request_headers = Headers(scope=scope)
        headers = {"ETag": bundle_file.etag, "Vary": "Accept-Encoding"}
        if request_headers.get("if-none-match") == bundle_file.etag:
            return Response(status_code=304, headers=headers)

        body = bundle_file.content
        if bundle_file.gzipped is not None and _accepts_gzip(request_headers):
            body = bundle_file.gzipped
            headers["Content-Encoding"] = "gzip"
        if method == "HEAD":
            headers["Content-Length"] = str(len(body))
            return Response(status_code=200, headers=headers, media_type=bundle_file.media_type)
        return Response(body, headers=headers, media_type=bundle_file.media_type)


def _route_path(scope: Scope) -> str:
    """Strip the mount prefix from the request path."""
    path: str = scope["path"]
    root_path: str = scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        return path[len(root_path):]
    return path


def mount_static(
    app: FastAPI,
    url: str,
    folder: str,
    *,
    debug: bool,
    bundle: Traversable | None = None,
) -> None:
    """Serve *folder* under the *url* prefix.

    Args:
        app: Application to mount on.
        url: URL prefix, e.g. ``"/assets"``.
        folder: Directory on disk (debug), or directory inside *bundle*.
        debug: Serve live from disk instead of from a snapshot.
        bundle: Package resource root holding *folder* for production
            mode. When omitted, the snapshot is read from *folder* on disk.
    """
    prefix = "/" + url.strip("/")
    name = f"static:{prefix}"
    if debug:
        app.mount(prefix, StaticFiles(directory=folder), name=name)
        logger.debug("Serving static files from disk: prefix=%s folder=%s", prefix, folder)
        return

    root: Traversable = bundle.joinpath(folder) if bundle is not None else Path(folder)
    app.mount(prefix, EmbeddedBundle(root), name=name)
