"""Front-matter extraction for flexsite.

A content file may start with a YAML block between ``---`` lines. Files
that have one become pages: the block is stripped from the body and turned
into a ``Page`` with a slug and permalink. Pages below a ``demos`` folder
are also collected into ``site.demos``.

Key classes:
- FrontMatterStage: Barrier stage that attaches site and page data.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any

import yaml

from .content import Page, SiteContext
from .pipeline import ErrorHandler, FileRecord, Stage

FRONTMATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(.*?)^(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

DEMOS_DIR = "demos"


def extract_frontmatter(text: str) -> tuple[dict[str, Any] | None, str]:
    """Split a YAML header from the rest of a file.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (attributes, body). Attributes is None when the file has
        no header or the header is not a mapping; the body is then the
        untouched text.

    Raises:
        yaml.YAMLError: The header is present but is not valid YAML.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    data = yaml.safe_load(match.group(1))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, text
    return data, text[match.end() :]


def permalink_for(base_url: str, slug: str) -> str:
    """Public URL of a page: the base URL for ``index``, else ``demos/<slug>/``."""
    return base_url + ("" if slug == "index" else f"{DEMOS_DIR}/{slug}/")


class FrontMatterStage(Stage):
    """Attach site and page data to every record.

    This stage is a barrier: it reads all incoming records before emitting
    the first one, so ``site.demos`` is complete by the time any later
    stage renders a template.

    Attributes:
        site: The site context shared by the whole run.
    """

    name = "extract_front_matter"

    def __init__(self, site: SiteContext):
        self.site = site

    def transform(self, record: FileRecord) -> FileRecord:
        record.site = self.site
        attributes, body = extract_frontmatter(record.contents)
        if attributes is None:
            return record

        slug = record.path.stem
        fields = {"slug": slug, "permalink": permalink_for(self.site.base_url, slug)}
        fields.update(attributes)
        record.contents = body
        record.page = Page(
            slug=fields["slug"],
            permalink=fields["permalink"],
            frontmatter=attributes,
        )
        if DEMOS_DIR in record.relative.parts[:-1]:
            self.site.demos.append(record.page)
        return record

    def process(
        self, records: Iterable[FileRecord], on_error: ErrorHandler
    ) -> Iterator[FileRecord]:
        buffered = list(super().process(records, on_error))
        yield from buffered
