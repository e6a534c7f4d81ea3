"""HTML minification for flexsite.

Production pages are piped through the ``html-minifier-terser`` CLI.

Key classes:
- HtmlMinifier: Wraps the CLI invocation.
- HtmlMinifyStage: Pipeline stage minifying every record.
"""

from __future__ import annotations

from pathlib import Path

from .executable_utils import find_executable, run_tool
from .pipeline import FileRecord, Stage
from .utils import log

MINIFIER = "html-minifier-terser"

MINIFIER_OPTIONS = (
    "--remove-comments",
    "--collapse-whitespace",
    "--collapse-boolean-attributes",
    "--remove-attribute-quotes",
    "--remove-redundant-attributes",
    "--use-short-doctype",
    "--remove-empty-attributes",
    "--minify-js",
    "--minify-css",
)


class HtmlMinifier:
    """Minify HTML strings with html-minifier-terser.

    When the CLI cannot be found, ``minify`` returns its input unchanged and
    a warning is printed once.

    Attributes:
        project_root: Project root, searched for ``node_modules/.bin``.
    """

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self._executable = find_executable(MINIFIER, project_root)
        self._warned = False

    def minify(self, html: str) -> str:
        if self._executable is None:
            if not self._warned:
                log(
                    f"{MINIFIER} not found; writing pages unminified. "
                    f"Install with `npm install -D {MINIFIER}`.",
                    err=True,
                    fg="yellow",
                )
                self._warned = True
            return html
        result = run_tool([self._executable, *MINIFIER_OPTIONS], input=html)
        return result.stdout


class HtmlMinifyStage(Stage):
    name = "htmlmin"

    def __init__(self, minifier: HtmlMinifier):
        self.minifier = minifier

    def transform(self, record: FileRecord) -> FileRecord:
        record.contents = self.minifier.minify(record.contents)
        return record
