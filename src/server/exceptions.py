"""Exceptions raised by the server lifecycle manager."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base exception for all lifecycle errors."""

    pass


class InitializationError(LifecycleError):
    """Raised when the server cannot be initialized (database, logging)."""

    pass


class ListenError(LifecycleError):
    """Raised when the listener fails to bind or stops serving with an error."""

    def __init__(self, address: str, message: str = "") -> None:
        self.address = address
        super().__init__(message or f"Listener on {address} failed")


class ShutdownError(LifecycleError):
    """Raised when the server could not shut down within its deadline.

    Keeps the listener's own exit error, if one was captured, next to the
    shutdown failure.
    """

    def __init__(self, message: str, listen_error: BaseException | None = None) -> None:
        self.listen_error = listen_error
        if listen_error is not None:
            message = f"{message}. After server error: {listen_error}"
        super().__init__(message)


class ConfigNotInjectedError(RuntimeError):
    """Raised when the config accessor runs outside an injected request."""

    def __init__(self) -> None:
        super().__init__(
            "service configuration is not bound to this context; "
            "InjectConfigMiddleware must run on every request path that reads it"
        )
