"""Utility functions for flexsite.

Key functions:
    log: Write a timestamped status line to the terminal.
    beep: Ring the terminal bell.
    pretty_path: Map a page path to its pretty-URL output path.
    is_markdown: Check if a path is a Markdown file.
    remove_dir: Delete a directory tree if it exists.
"""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path, PurePosixPath

import click

# Page stems that keep their location instead of moving into a folder.
TOP_LEVEL_STEMS = ("index", "404")


def log(message: str, err: bool = False, fg: str | None = None) -> None:
    """Write ``[HH:MM:SS] message`` to the terminal.

    Args:
        message: Text to print.
        err: Write to stderr instead of stdout.
        fg: Optional click colour for the message text.
    """
    stamp = click.style(datetime.now().strftime("%H:%M:%S"), fg="bright_black")
    text = click.style(message, fg=fg) if fg else message
    click.echo(f"[{stamp}] {text}", err=err)


def beep() -> None:
    click.echo("\a", nl=False, err=True)


def pretty_path(relative: PurePosixPath | str) -> PurePosixPath:
    """Rewrite a page path so it is served at a trailing-slash URL.

    ``index`` and ``404`` stay where they are with an ``.html`` extension;
    every other ``dir/name.ext`` becomes ``dir/name/index.html``.

    Args:
        relative: Page path relative to the project root.

    Returns:
        Output path relative to the destination directory.

    Examples:
        >>> pretty_path("demos/grids.md")
        PurePosixPath('demos/grids/index.html')

        >>> pretty_path("404.html")
        PurePosixPath('404.html')
    """
    rel = PurePosixPath(relative)
    stem = rel.stem
    if stem in TOP_LEVEL_STEMS:
        return rel.with_name(f"{stem}.html")
    return rel.parent / stem / "index.html"


def is_markdown(path: Path | PurePosixPath) -> bool:
    """Check if a path is a Markdown file (case-insensitive ``.md``)."""
    return path.suffix.lower() == ".md"


def remove_dir(path: Path) -> bool:
    """Delete a directory tree.

    Args:
        path: Directory to delete.

    Returns:
        True if something was removed, False if the path did not exist.
    """
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True
