"""Command line entry point of the artifacts gateway."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from artifacts_common.errors import InvalidRequestError
from artifacts_common.http import CancelScope
from artifacts_common.logging import get_logger, setup_logging, with_fields
from artifacts_common.settings import RuntimeSettings, load_settings
from artifacts_service.handlers import HandlerContext, dispatch

__all__ = ["app", "build_context", "serve", "validate"]

LOGGER = get_logger(__name__)

app = typer.Typer(
    help="Validate artifact server connections.", no_args_is_help=True, add_completion=False
)


def build_context(settings: RuntimeSettings) -> HandlerContext:
    """Return the handler context used by CLI commands."""
    return HandlerContext(settings=settings)


def _configure_logging(settings: RuntimeSettings) -> None:
    obs = settings.observability
    setup_logging(obs.log_level, log_file=obs.log_file, json_format=obs.log_json)


@app.command()
def validate(
    params_file: Annotated[
        str, typer.Argument(help="Operation request JSON file, or '-' to read stdin.")
    ],
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Deadline for the whole operation in seconds."),
    ] = None,
) -> None:
    """Run one operation request and print its JSON result.

    Raises
    ------
    typer.Exit
        With code 1 when the request is invalid, 2 when the file cannot be read.
    """
    settings = load_settings()
    _configure_logging(settings)
    try:
        raw = sys.stdin.buffer.read() if params_file == "-" else Path(params_file).read_bytes()
    except OSError as exc:
        typer.echo(f"cannot read {params_file}: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    with with_fields(LOGGER, operation="cli_validate", params_file=params_file) as log:
        try:
            response = asyncio.run(
                dispatch(raw, build_context(settings), CancelScope(timeout_s=timeout))
            )
        except InvalidRequestError as exc:
            log.warning("invalid operation request: %s", exc)
            typer.echo(json.dumps(exc.to_problem_details(instance="urn:cli:validate")))
            raise typer.Exit(code=1) from exc
    typer.echo(response.model_dump_json())


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Port to listen on.")] = 8080,
) -> None:
    """Serve the HTTP front door with uvicorn."""
    settings = load_settings()
    _configure_logging(settings)
    uvicorn.run("artifacts_service.app:app", host=host, port=port, log_config=None)


if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    app()
