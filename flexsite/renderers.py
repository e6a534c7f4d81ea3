"""Markdown rendering for flexsite.

Key classes:
- HighlightRenderer: mistune HTML renderer that highlights fenced code.
- MarkdownStage: Pipeline stage rendering ``.md`` bodies to HTML.
"""

from __future__ import annotations

import html

import mistune
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .pipeline import FileRecord, Stage
from .utils import is_markdown

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


def highlight_code(code: str, lang: str | None) -> str:
    """Return the inner HTML for a fenced code block.

    The code is unescaped first so entities already escaped by the parser
    are not escaped a second time. A known language is highlighted with
    Pygments; anything else is escaped verbatim.

    Args:
        code: Code block contents.
        lang: Language tag from the fence, if any.

    Returns:
        HTML to place inside ``<pre><code>``.
    """
    code = html.unescape(code)
    if lang:
        try:
            lexer = get_lexer_by_name(lang)
        except ClassNotFound:
            lexer = None
        if lexer is not None:
            formatter = HtmlFormatter(nowrap=True)
            return highlight(code, lexer, formatter)
    return str(escape(code))


class HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer that keeps raw HTML and highlights fenced code."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{highlight_code(code, lang)}</code></pre>\n"


def create_markdown() -> mistune.Markdown:
    return mistune.create_markdown(renderer=HighlightRenderer(), plugins=MARKDOWN_PLUGINS)


class MarkdownStage(Stage):
    """Render the body of ``.md`` records to HTML; pass others through."""

    name = "render_markdown"

    def __init__(self):
        self._markdown = create_markdown()

    def transform(self, record: FileRecord) -> FileRecord:
        if is_markdown(record.path):
            record.contents = self._markdown(record.contents)
        return record
