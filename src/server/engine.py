"""HTTP engine adapter around ``uvicorn.Server``.

The lifecycle manager needs two things from the engine: "accept
connections until told to stop" and "stop, draining in-flight requests
within a deadline". uvicorn provides both; this module narrows it to
exactly that and leaves signal handling to the caller.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from typing import Generator

import uvicorn
from starlette.types import ASGIApp

from src.server.exceptions import ListenError, ShutdownError
from src.shared.constants import LISTEN_BACKLOG

logger = logging.getLogger(__name__)


class _Listener(uvicorn.Server):
    """uvicorn server that never touches process signal handlers."""

    def __init__(self, config: uvicorn.Config) -> None:
        super().__init__(config)
        self.ready = asyncio.Event()

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if not self.should_exit:
            self.ready.set()

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield

    def install_signal_handlers(self) -> None:
        # Older uvicorn releases install handlers through this hook instead
        pass


class HTTPEngine:
    """Listener plus graceful-drain control for one ASGI app."""

    def __init__(
        self,
        app: ASGIApp,
        host: str,
        port: int,
        backlog: int = LISTEN_BACKLOG,
    ) -> None:
        self.host = host
        self.port = port
        self._config = uvicorn.Config(
            app,
            host=host,
            port=port,
            backlog=backlog,
            lifespan="off",
            log_config=None,
            access_log=False,
            server_header=False,
            timeout_graceful_shutdown=None,
        )
        self._server = _Listener(self._config)
        self._listening = False
        self._stopped = asyncio.Event()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def started(self) -> bool:
        """Whether the listener is accepting connections."""
        return bool(self._server.started) and not self._stopped.is_set()

    async def wait_ready(self) -> None:
        """Block until the listener has bound and accepts connections."""
        await self._server.ready.wait()

    def bind(self) -> socket.socket:
        """Create the listening socket.

        Binding to port 0 picks a free port; :attr:`port` is updated to it.

        Raises:
            ListenError: If the address cannot be bound.
        """
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as exc:
            sock.close()
            raise ListenError(self.address, f"cannot listen on {self.address}: {exc}") from exc
        self.port = sock.getsockname()[1]
        return sock

    async def listen(self) -> None:
        """Accept connections until :meth:`shutdown` completes.

        Blocks for the whole serving lifetime. Returns normally once the
        server has been asked to stop and has closed.

        Raises:
            ListenError: If binding fails or the server stops with an error.
        """
        sock = self.bind()
        self._listening = True
        try:
            await self._server.serve(sockets=[sock])
        except Exception as exc:
            raise ListenError(self.address, f"server on {self.address} failed: {exc}") from exc
        finally:
            sock.close()
            self._stopped.set()

    async def shutdown(self, timeout: float) -> None:
        """Stop accepting connections and drain in-flight requests.

        Args:
            timeout: Seconds the drain may take.

        Raises:
            ShutdownError: If the drain did not finish within *timeout*. The
                server is then told to force-exit.
        """
        if not self._listening or self._stopped.is_set():
            return
        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout)
        except asyncio.TimeoutError:
            self._server.force_exit = True
            raise ShutdownError(
                f"in-flight requests did not drain within {timeout:g}s: shutdown deadline exceeded"
            ) from None
