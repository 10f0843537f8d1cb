"""Request-processing stages wrapped around every route.

The server installs them outermost first:

    RequestIDMiddleware -> RecoverMiddleware -> TimeoutMiddleware
        -> InjectConfigMiddleware -> AccessLogMiddleware -> routes
"""
from __future__ import annotations

import logging
from typing import Any

import anyio
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send


def _request_uri(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


class RecoverMiddleware(BaseHTTPMiddleware):
    """Turns an exception escaping a handler into a 500 response."""

    def __init__(self, app: ASGIApp, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger or logging.getLogger(__name__)

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        try:
            return await call_next(request)
        except Exception:
            self.logger.exception(
                "Recovered from unhandled error",
                extra={"method": request.method, "uri": _request_uri(request)},
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )


class TimeoutMiddleware:
    """Answers 503 when a request runs past *timeout* seconds.

    A timeout of zero disables the stage. Once the handler has started its
    response the deadline can no longer be turned into a 503 and the
    timeout propagates instead.
    """

    def __init__(self, app: ASGIApp, timeout: float = 0.0) -> None:
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.timeout <= 0:
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            with anyio.fail_after(self.timeout):
                await self.app(scope, receive, send_wrapper)
        except TimeoutError:
            if response_started:
                raise
            response = JSONResponse(
                status_code=503,
                content={"detail": "Request timed out"},
            )
            await response(scope, receive, send)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Writes one record per request: method, uri, status and error."""

    def __init__(self, app: ASGIApp, logger: logging.Logger) -> None:
        super().__init__(app)
        self.logger = logger

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        uri = _request_uri(request)
        try:
            response = await call_next(request)
        except anyio.get_cancelled_exc_class():
            # Cut off by the timeout stage, which answers 503
            self.logger.error(
                request.method,
                extra={
                    "method": request.method,
                    "uri": uri,
                    "status": 503,
                    "error": "request timed out",
                },
            )
            raise
        except Exception as exc:
            self.logger.error(
                request.method,
                extra={"method": request.method, "uri": uri, "status": 500, "error": str(exc)},
            )
            raise

        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            request.method,
            extra={"method": request.method, "uri": uri, "status": response.status_code},
        )
        return response
