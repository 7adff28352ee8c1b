"""CLI entrypoint: Typer app definition and command registration"""

import typer

from mdsite.cli.commands import build_cmd, serve_cmd


app = typer.Typer(name="mdsite", no_args_is_help=True, help="Markdown posts to static site builder")

app.command(name="build")(build_cmd)
app.command(name="serve")(serve_cmd)
