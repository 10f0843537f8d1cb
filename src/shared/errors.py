"""Errors a route handler may raise, rendered as JSON ``{"detail": ...}``.

Anything else escaping a handler is turned into a 500 by the recovery stage
of the request pipeline.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request


class AppError(Exception):
    """Base handler error carrying its HTTP status."""

    def __init__(self, detail: str, status_code: int = 500) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)

    def headers(self) -> dict[str, str] | None:
        return None


class ServiceUnavailableError(AppError):
    """A backing dependency, usually the database, is unavailable (503)."""

    def __init__(
        self, detail: str = "Service unavailable", retry_after: int | None = None
    ) -> None:
        super().__init__(detail=detail, status_code=503)
        self.retry_after = retry_after

    def headers(self) -> dict[str, str] | None:
        if self.retry_after is None:
            return None
        return {"Retry-After": str(self.retry_after)}


def register_exception_handlers(app: FastAPI) -> None:
    """Render every ``AppError`` raised by a route as a JSON response."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers(),
        )
