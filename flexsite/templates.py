"""Template rendering for flexsite.

Pages are rendered in two passes with Jinja2:

1. The page body is rendered as a string template, so content can use site
   data inline (for example to list ``site.demos``). The result becomes
   ``page.content``.
2. The page's declared template is loaded from ``templates/`` and rendered
   with the same context, now including ``page.content``.

Key classes:
- TemplateEngine: Owns the Jinja2 environment.
- TemplateStage: Pipeline stage applying both passes to each record.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from .content import Page, SiteContext
from .pipeline import FileRecord, Stage


class MissingTemplateError(Exception):
    """A page record does not name a template."""


class TemplateEngine:
    """Jinja2 environment bound to a template directory.

    Attributes:
        template_dir: Directory holding page templates.
        env: Jinja2 environment (autoescape off, pages contain raw HTML).
    """

    def __init__(self, template_dir: Path):
        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
        )

    @staticmethod
    def context(site: SiteContext | None, page: Page | None) -> dict[str, Any]:
        return {"site": site, "page": page}

    def render_string(self, source: str, context: dict[str, Any]) -> str:
        return self.env.from_string(source).render(**context)

    def render(self, name: str, context: dict[str, Any]) -> str:
        return self.env.get_template(name).render(**context)

    def render_page(self, body: str, site: SiteContext | None, page: Page | None) -> str:
        """Run both rendering passes.

        Args:
            body: Page body (already converted from markdown if needed).
            site: Site context.
            page: Page record, or None for files without front matter.

        Returns:
            The final HTML. Without a page record this is the rendered body.
        """
        context = self.context(site, page)
        content = self.render_string(body, context)
        if page is None:
            return content
        page.content = content
        if not page.template:
            raise MissingTemplateError(f"page '{page.slug}' does not declare a template")
        return self.render(page.template, context)


class TemplateStage(Stage):
    """Render every record through the template engine."""

    name = "render_template"

    def __init__(self, engine: TemplateEngine):
        self.engine = engine

    def transform(self, record: FileRecord) -> FileRecord:
        record.contents = self.engine.render_page(record.contents, record.site, record.page)
        return record
