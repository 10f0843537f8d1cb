"""HTTP service bootstrap: lifecycle manager, request pipeline, static assets."""

from src.server.context import InjectConfigMiddleware, config_dependency, get_config
from src.server.exceptions import (
    ConfigNotInjectedError,
    InitializationError,
    LifecycleError,
    ListenError,
    ShutdownError,
)
from src.server.lifecycle import Server, build_app

__all__ = [
    "ConfigNotInjectedError",
    "InitializationError",
    "InjectConfigMiddleware",
    "LifecycleError",
    "ListenError",
    "Server",
    "ShutdownError",
    "build_app",
    "config_dependency",
    "get_config",
]
