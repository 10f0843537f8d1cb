"""Command line entry point.

The lifecycle manager only raises; this module turns its errors into
process exit codes.
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from src.server.exceptions import InitializationError, LifecycleError
from src.server.lifecycle import Server
from src.shared.config import ServiceConfig
from src.shared.constants import SERVICE_NAME, VERSION

app = typer.Typer(
    name=SERVICE_NAME,
    help="Run the HTTP service with graceful shutdown.",
    no_args_is_help=True,
)

_console = Console(stderr=True)


def _print_error(title: str, exc: BaseException) -> None:
    _console.print(Panel(Text(str(exc)), title=title, border_style="red"))


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{SERVICE_NAME} {VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """servekit command line."""


def _load_config(**overrides: object) -> ServiceConfig:
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ServiceConfig(**values)
    except ValidationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def redact_url(url: str) -> str:
    """Hide the password of a database URL."""
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


async def _serve(config: ServiceConfig, static_url: str, static_dir: Path | None) -> None:
    server = await Server.initialize(config)
    if static_dir is not None:
        try:
            server.serve_static_files(static_url, str(static_dir))
        except (OSError, RuntimeError) as exc:
            await server.abort()
            raise InitializationError(
                f"cannot serve static files from {static_dir}: {exc}"
            ) from exc
    await server.start()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host (APP_HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (APP_PORT)."),
    debug: Optional[bool] = typer.Option(None, "--debug/--no-debug", help="Debug mode (APP_DEBUG)."),
    static_dir: Optional[Path] = typer.Option(
        None, "--static-dir", exists=True, file_okay=False, dir_okay=True, readable=True,
        help="Directory of static assets.",
    ),
    static_url: str = typer.Option("/static", "--static-url", help="URL prefix for static assets."),
) -> None:
    """Start serving until SIGINT or SIGTERM."""
    config = _load_config(app_host=host, app_port=port, app_debug=debug)
    try:
        asyncio.run(_serve(config, static_url, static_dir))
    except LifecycleError as exc:
        _print_error(type(exc).__name__, exc)
        raise typer.Exit(code=1) from exc


@app.command("show-config")
def show_config() -> None:
    """Print the effective configuration as JSON."""
    config = _load_config()
    data = config.model_dump(mode="json")
    data["database_url"] = redact_url(config.database_url)
    data["base_url"] = config.base_url
    typer.echo(json.dumps(data, indent=2, sort_keys=True))
