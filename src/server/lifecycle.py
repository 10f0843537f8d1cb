"""Server lifecycle manager.

``Server.initialize`` builds everything a running service needs and
``Server.start`` serves until a shutdown is requested, then releases
resources in order: database pool first, HTTP listener second.

    initializing --> serving --> shutting_down --> stopped
         |              |              |
         +--------------+--------------+--> failed

The manager reports every failure by raising a ``LifecycleError``; deciding
the process exit code is left to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import time
from importlib.resources.abc import Traversable

import asyncpg
from fastapi import FastAPI
from starlette.middleware import Middleware

from src.server.context import InjectConfigMiddleware
from src.server.engine import HTTPEngine
from src.server.exceptions import (
    InitializationError,
    LifecycleError,
    ListenError,
    ShutdownError,
)
from src.server.middleware import (
    AccessLogMiddleware,
    RecoverMiddleware,
    TimeoutMiddleware,
)
from src.server.routers.health import router as health_router
from src.server.shutdown import ShutdownSignal
from src.server.state_machine import INITIALIZING, create_lifecycle_machine
from src.server.static import mount_static
from src.shared.config import ServiceConfig
from src.shared.constants import VERSION
from src.shared.db.connection import DatabaseError, connect
from src.shared.errors import register_exception_handlers
from src.shared.logging import RequestIDMiddleware, setup_logging


def build_app(config: ServiceConfig, logger: logging.Logger) -> FastAPI:
    """Create the FastAPI app with the standard request pipeline.

    Stages run outermost first: request id, recovery, timeout, config
    injection, access logging.
    """
    app = FastAPI(
        title=config.service_name,
        version=VERSION,
        debug=config.app_debug,
        middleware=[
            Middleware(RequestIDMiddleware),
            Middleware(RecoverMiddleware, logger=logger),
            Middleware(TimeoutMiddleware, timeout=config.request_timeout),
            Middleware(InjectConfigMiddleware, config=config),
            Middleware(AccessLogMiddleware, logger=logger),
        ],
    )
    register_exception_handlers(app)
    app.include_router(health_router)
    app.state.db = None
    app.state.start_time = None
    return app


class Server:
    """Handle over the app, logger, configuration and database pool.

    The server exclusively owns the pool and the engine and releases each
    of them at most once.
    """

    def __init__(
        self,
        app: FastAPI,
        logger: logging.Logger,
        config: ServiceConfig,
        db: asyncpg.Pool | None = None,
        engine: HTTPEngine | None = None,
    ) -> None:
        self.app = app
        self.logger = logger
        self.config = config
        self.db = db
        self.engine = engine or HTTPEngine(app, config.app_host, config.app_port)
        self._shutdown_started = False
        self.app.state.db = db
        create_lifecycle_machine(self)

    @classmethod
    async def initialize(cls, config: ServiceConfig) -> Server:
        """Build logger, app and (if configured) the database pool.

        Raises:
            InitializationError: If logging cannot be set up or the
                database connector fails. Nothing is left running.
        """
        try:
            logger = setup_logging(config)
        except (OSError, ValueError) as exc:
            raise InitializationError(f"cannot configure logging: {exc}") from exc

        server = cls(app=build_app(config, logger), logger=logger, config=config)

        if config.has_database:
            try:
                server.db = await connect(config)
            except DatabaseError as exc:
                await server.fail()
                raise InitializationError(f"cannot connect to postgres database: {exc}") from exc
            server.app.state.db = server.db

        return server

    def serve_static_files(
        self, url: str, folder: str, bundle: Traversable | None = None
    ) -> None:
        """Serve *folder* under the *url* prefix.

        In debug mode files are read from disk on every request; otherwise
        a compressed snapshot of ``bundle / folder`` (or of *folder* on disk
        when no bundle is given) is served.

        Raises:
            FileNotFoundError: If the snapshot directory does not exist.
            RuntimeError: If the debug directory does not exist.
        """
        mount_static(self.app, url, folder, debug=self.config.app_debug, bundle=bundle)

    async def start(self, stop: asyncio.Event | None = None) -> None:
        """Serve until SIGINT, SIGTERM, *stop* being set or cancellation.

        Blocks for the whole serving lifetime, then shuts down: the
        database pool is closed, then in-flight requests get
        ``config.shutdown_timeout`` seconds to drain.

        Raises:
            ListenError: If the listener could not bind or failed while
                serving.
            ShutdownError: If the drain missed its deadline.
        """
        if self.state != INITIALIZING:
            raise LifecycleError(f"cannot start a server in state {self.state!r}")

        shutdown = ShutdownSignal()
        shutdown.install()
        if stop is not None:
            shutdown.link(stop)

        await self.begin_serving()
        self.app.state.start_time = time.time()
        listener = asyncio.create_task(self.engine.listen(), name="http-listener")
        trigger = asyncio.create_task(shutdown.wait(), name="shutdown-trigger")

        # Handlers stay installed through the drain so later signals are no-ops
        try:
            try:
                await self._wait_serving(listener, trigger)
            except asyncio.CancelledError:
                shutdown.trigger("cancellation")
                await self._shutdown(listener)
                raise

            if not shutdown.should_stop:
                error = _listener_error(listener)
                self.logger.error(
                    "Server stopped unexpectedly",
                    extra={"error": str(error) if error else "listener exited"},
                )
            await self._shutdown(listener)
        finally:
            shutdown.uninstall()
            trigger.cancel()

    async def abort(self) -> None:
        """Release the pool of a server that will never be started."""
        await self._close_db()
        await self.fail()

    async def _wait_serving(
        self, listener: asyncio.Task[None], trigger: asyncio.Task[None]
    ) -> None:
        """Block until the trigger fires or the listener exits."""
        ready = asyncio.create_task(self.engine.wait_ready(), name="listener-ready")
        try:
            done, _ = await asyncio.wait(
                {listener, trigger, ready}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            ready.cancel()

        if ready in done:
            self.logger.info(
                "Server started",
                extra={"url": self._public_url(), "host": self.engine.address},
            )
            await asyncio.wait({listener, trigger}, return_when=asyncio.FIRST_COMPLETED)

    def _public_url(self) -> str:
        if self.config.app_base_url:
            return self.config.base_url
        return f"http://{self.engine.address}"

    async def _shutdown(self, listener: asyncio.Task[None]) -> None:
        """Release the pool, then the engine. Runs at most once."""
        if self._shutdown_started:
            return
        self._shutdown_started = True

        await self.begin_shutdown()
        self.logger.info("Shutting down gracefully...")

        await self._close_db()

        try:
            await self.engine.shutdown(self.config.shutdown_timeout)
        except ShutdownError as exc:
            await _reap(listener)
            listen_error = _listener_error(listener)
            await self.fail()
            self.logger.error(
                "Could not shut down gracefully",
                extra={"error": str(exc), "server_error": str(listen_error or "")},
            )
            raise ShutdownError(
                f"could not shut down gracefully: {exc}", listen_error=listen_error
            ) from exc

        await _reap(listener)
        listen_error = _listener_error(listener)
        if listen_error is not None:
            await self.fail()
            if isinstance(listen_error, ListenError):
                raise listen_error
            raise ListenError(self.engine.address, str(listen_error)) from listen_error

        await self.finish_shutdown()
        self.logger.info("Server shut down gracefully")

    async def _close_db(self) -> None:
        if self.db is None:
            return
        try:
            await self.db.close()
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            self.logger.error("Could not close database pool", extra={"error": str(exc)})
        self.logger.debug("Database pool closed")


async def _reap(listener: asyncio.Task[None]) -> None:
    """Make sure the listener task has finished."""
    if not listener.done():
        listener.cancel()
    await asyncio.wait({listener})


def _listener_error(listener: asyncio.Task[None]) -> BaseException | None:
    if not listener.done() or listener.cancelled():
        return None
    return listener.exception()
