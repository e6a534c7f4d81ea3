"""Site and page records for flexsite.

Key classes:
- SiteContext: Global data shared by every page of one build.
- Page: Per-file record created from a front-matter header.

Both classes expose their free-form data as attributes so templates can
write ``site.title`` or ``page.template`` without caring where the value
came from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import BuildContext


@dataclass
class Page:
    """A content file that carried a front-matter header.

    Attributes:
        slug: File stem, used in the permalink.
        permalink: Canonical public URL path.
        frontmatter: Fields declared in the header (title, template, ...).
        content: Rendered body, filled in by the template stage.
    """

    slug: str
    permalink: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    content: str = ""

    def __getattr__(self, name: str) -> Any:
        frontmatter = self.__dict__.get("frontmatter", {})
        try:
            return frontmatter[name]
        except KeyError:
            raise AttributeError(name) from None

    def get(self, name: str, default: Any = None) -> Any:
        """Return a front-matter field, or ``default`` when it is not set."""
        return self.frontmatter.get(name, default)

    @property
    def template(self) -> str | None:
        return self.frontmatter.get("template")


@dataclass
class SiteContext:
    """Global data for one run of the pages task.

    Created once per run and mutated only by the front-matter stage, which
    appends every demo page it finds to ``demos``.

    Attributes:
        base_url: Public path prefix (``/`` or ``/<repo>/``).
        env: Environment name.
        repo: Repository name.
        data: Site data from config.json.
        demos: Pages found under ``demos/``, in discovery order.
    """

    base_url: str
    env: str
    repo: str
    data: dict[str, Any] = field(default_factory=dict)
    demos: list[Page] = field(default_factory=list)

    def __getattr__(self, name: str) -> Any:
        data = self.__dict__.get("data", {})
        try:
            return data[name]
        except KeyError:
            raise AttributeError(name) from None

    @classmethod
    def from_build(cls, ctx: BuildContext) -> SiteContext:
        data = ctx.site_data()
        return cls(
            base_url=data["base_url"],
            env=data["env"],
            repo=ctx.repo,
            data=data,
        )
