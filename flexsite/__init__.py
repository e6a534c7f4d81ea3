"""flexsite build tool.

This package builds a small static demo site: YAML front matter and markdown
pages rendered through Jinja2 templates, a transpiled stylesheet, two
JavaScript bundles and copied images. A development server rebuilds each
part when its sources change.

The entry point is the CLI module, which exposes one command per build task.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
