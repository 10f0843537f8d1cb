"""Request-scoped configuration injection.

``InjectConfigMiddleware`` binds the service configuration to the context of
every request before the rest of the chain runs; ``get_config`` reads it back
from inside handlers without a module-level global.
"""
from __future__ import annotations

import contextvars

from starlette.types import ASGIApp, Receive, Scope, Send

from src.server.exceptions import ConfigNotInjectedError
from src.shared.config import ServiceConfig

# Private to this module so nothing else can bind or shadow the entry
_config_var: contextvars.ContextVar[ServiceConfig] = contextvars.ContextVar(
    "servekit_service_config"
)


class InjectConfigMiddleware:
    """ASGI stage extending each request context with *config*."""

    def __init__(self, app: ASGIApp, config: ServiceConfig) -> None:
        self.app = app
        self.config = config

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        token = _config_var.set(self.config)
        try:
            await self.app(scope, receive, send)
        finally:
            _config_var.reset(token)


def get_config() -> ServiceConfig:
    """Return a copy of the configuration bound to the current request.

    Raises:
        ConfigNotInjectedError: If ``InjectConfigMiddleware`` did not run
            for the current context.
    """
    try:
        config = _config_var.get()
    except LookupError:
        raise ConfigNotInjectedError() from None
    return config.model_copy()


async def config_dependency() -> ServiceConfig:
    """FastAPI dependency form of :func:`get_config`."""
    return get_config()
