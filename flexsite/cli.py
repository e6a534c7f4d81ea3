"""Command-line interface for flexsite.

Each build task is exposed as a subcommand; running ``flexsite`` with no
subcommand runs ``default``.

Commands:
- default: Build css, images, javascript and pages in parallel.
- pages / css / images: Build one part of the site.
- javascript, javascript:main, javascript:polyfills: Build the bundles.
- lint: Lint the JavaScript sources.
- clean: Remove the output directory.
- serve: Build, then serve the output and rebuild on change.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .config import BuildContext, ConfigError

TASK_HELP = {
    "default": "Build css, images, javascript and pages.",
    "pages": "Render the HTML pages.",
    "css": "Transform and minify the stylesheet.",
    "images": "Copy the images.",
    "javascript": "Build both JavaScript bundles.",
    "javascript:main": "Build the application bundle.",
    "javascript:polyfills": "Build the polyfill bundle.",
    "lint": "Lint the JavaScript sources.",
    "clean": "Remove the output directory.",
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="flexsite")
@click.pass_context
def cli(click_ctx: click.Context):
    """flexsite build tool."""
    if click_ctx.invoked_subcommand is None:
        _run_task("default")


def _make_command(name: str) -> click.Command:
    def command():
        _run_task(name)

    return click.Command(name, callback=command, help=TASK_HELP[name])


for _name in TASK_HELP:
    cli.add_command(_make_command(_name))


@cli.command()
@click.option(
    "--port",
    "-p",
    type=int,
    required=False,
    help="Port to run the dev server (overrides flexsite.yaml, default 4000)",
)
def serve(port: int | None):
    """Build, then serve the output and rebuild on change."""
    _run_task("serve", port=port)


def _load_context() -> BuildContext:
    try:
        return BuildContext.from_environ(Path.cwd())
    except ConfigError as exc:
        click.echo(click.style("Configuration error:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {exc.path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None


def _run_task(name: str, port: int | None = None) -> None:
    from .tasks import TaskError, registry

    ctx = _load_context()
    if port is not None:
        ctx.config["port"] = port
    try:
        registry.run(name, ctx)
    except TaskError as exc:
        click.echo(click.style("Task failed:", fg="red", bold=True), err=True)
        for task, error in exc.root_causes():
            click.echo(click.style(f"  Task: {task}", fg="yellow"), err=True)
            click.echo(click.style(f"  Error: {error}", fg="white"), err=True)
        raise SystemExit(1) from None


def main():
    """Entry point for the CLI application."""
    cli()
