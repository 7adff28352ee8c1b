"""CLI command implementations"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from mdsite.config import Settings, load_config
from mdsite.core.pipeline import run_build
from mdsite.log import setup_logging
from mdsite.server import serve


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, then configure logging."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail("Invalid configuration", e)
    setup_logging(settings.log_level)
    return settings


DirArg = dict(exists=True, file_okay=False, dir_okay=True, resolve_path=True)


def build_cmd(
    in_dir: Annotated[Path, typer.Argument(help="Directory for input files", **DirArg)],
    out_dir: Annotated[Path, typer.Argument(help="Directory for output files", **DirArg)],
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR")] = None,
    ):
    """Render posts, pages, assets and static files from IN_DIR into OUT_DIR."""
    settings = _settings(overrides={"log_level": log_level})
    result = run_build(in_dir, out_dir, settings)
    typer.echo(
        f"Built {len(result.posts)} post(s), {len(result.pages)} page(s), "
        f"{len(result.assets)} asset(s), {len(result.static)} static file(s) into {out_dir}/"
    )


def serve_cmd(
    directory: Annotated[Path, typer.Argument(help="Built site directory to serve", **DirArg)],
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to listen on")] = None,
    ):
    """Serve a built site for local preview."""
    settings = _settings(overrides={"port": port})
    serve(directory, settings.port)
