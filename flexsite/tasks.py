"""Build tasks for flexsite.

Every CLI command maps to a named task in ``registry``. Tasks are plain
functions taking a ``BuildContext``; ``parallel`` and ``series`` compose
them into bigger tasks the way ``default`` and ``serve`` are built.

Tasks:
- pages: front matter, markdown, templates, pretty URLs, HTML minification.
- css: transform and minify the entry stylesheet.
- images: copy the image tree.
- javascript:main / javascript:polyfills / javascript: build the bundles.
- lint: run eslint over the JavaScript sources.
- clean: delete the output directory.
- default: css, images, javascript and pages in parallel.
- serve: default, then the dev server and watchers.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Union

from .assets import (
    CSS_ENTRY,
    IMAGES_DIR,
    CSSProcessor,
    ImageCopier,
    Linter,
    LintError,
    get_bundler,
)
from .config import BuildContext
from .content import SiteContext
from .executable_utils import ToolError
from .extractors import FrontMatterStage
from .html_utils import HtmlMinifier, HtmlMinifyStage
from .pipeline import (
    Destination,
    Pipeline,
    PluginError,
    PrettyUrlStage,
    collect_sources,
    stream_error,
)
from .renderers import MarkdownStage
from .templates import TemplateEngine, TemplateStage
from .utils import log, remove_dir

PAGE_SOURCES = ("*.html", "demos/**/*")
TEMPLATE_DIR = "templates"

TaskFunc = Callable[[BuildContext], None]
TaskRef = Union[str, TaskFunc]


class TaskError(Exception):
    """A task failed.

    Attributes:
        task: Name of the failed task.
        error: The exception that ended it, if a single one did.
        failures: Failed members of a parallel group.
    """

    def __init__(
        self,
        task: str,
        error: Exception | None = None,
        failures: list[TaskError] | None = None,
    ):
        self.task = task
        self.error = error
        self.failures = list(failures or [])
        if self.failures:
            names = ", ".join(f"'{f.task}'" for f in self.failures)
            message = f"'{task}' failed: {names} failed"
        else:
            message = f"'{task}' failed: {error}"
        super().__init__(message)

    def root_causes(self) -> list[tuple[str, Exception]]:
        """Flatten nested failures into (task, exception) pairs."""
        if self.failures:
            return [cause for failure in self.failures for cause in failure.root_causes()]
        if isinstance(self.error, TaskError):
            return self.error.root_causes()
        return [(self.task, self.error)] if self.error is not None else []


class TaskRegistry:
    """Named tasks plus the combinators that compose them."""

    def __init__(self):
        self._tasks: dict[str, TaskFunc] = {}

    def task(self, name: str) -> Callable[[TaskFunc], TaskFunc]:
        """Decorator registering ``func`` under ``name``."""

        def decorator(func: TaskFunc) -> TaskFunc:
            self.register(name, func)
            return func

        return decorator

    def register(self, name: str, func: TaskFunc) -> None:
        self._tasks[name] = func

    def names(self) -> list[str]:
        return list(self._tasks)

    def get(self, name: str) -> TaskFunc:
        try:
            return self._tasks[name]
        except KeyError:
            raise KeyError(f"Task never defined: {name}") from None

    def run(self, ref: TaskRef, ctx: BuildContext) -> None:
        """Run one task, logging its start and duration.

        Raises:
            TaskError: The task raised; the original exception is attached.
        """
        name, func = self._resolve(ref)
        log(f"Starting '{name}'...")
        started = time.perf_counter()
        try:
            func(ctx)
        except Exception as exc:
            log(f"'{name}' errored after {_elapsed(started)}", err=True, fg="red")
            raise TaskError(name, exc) from exc
        log(f"Finished '{name}' after {_elapsed(started)}")

    def parallel(self, *refs: TaskRef) -> TaskFunc:
        """Compose tasks that run concurrently.

        Every member runs to completion; afterwards one TaskError lists all
        members that failed.
        """

        def run_parallel(ctx: BuildContext) -> None:
            with ThreadPoolExecutor(max_workers=len(refs)) as executor:
                futures = [executor.submit(self.run, ref, ctx) for ref in refs]
            failures = [f.exception() for f in futures if f.exception() is not None]
            if failures:
                raise TaskError(_label("parallel", refs), failures=failures)

        run_parallel.__name__ = _label("parallel", refs)
        return run_parallel

    def series(self, *refs: TaskRef) -> TaskFunc:
        """Compose tasks that run one after another, stopping at a failure."""

        def run_series(ctx: BuildContext) -> None:
            for ref in refs:
                self.run(ref, ctx)

        run_series.__name__ = _label("series", refs)
        return run_series

    def _resolve(self, ref: TaskRef) -> tuple[str, TaskFunc]:
        if isinstance(ref, str):
            return ref, self.get(ref)
        return getattr(ref, "__name__", "<anonymous>"), ref


def _label(kind: str, refs: tuple[TaskRef, ...]) -> str:
    names = [ref if isinstance(ref, str) else getattr(ref, "__name__", "?") for ref in refs]
    return f"{kind}({', '.join(names)})"


def _elapsed(started: float) -> str:
    seconds = time.perf_counter() - started
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"


registry = TaskRegistry()


@registry.task("pages")
def pages(ctx: BuildContext) -> None:
    site = SiteContext.from_build(ctx)
    engine = TemplateEngine(ctx.project_root / TEMPLATE_DIR)
    pipeline = (
        Pipeline(error_handler=stream_error)
        .pipe(FrontMatterStage(site))
        .pipe(MarkdownStage())
        .pipe(TemplateStage(engine))
        .pipe(PrettyUrlStage())
    )
    if ctx.is_production:
        pipeline.pipe(HtmlMinifyStage(HtmlMinifier(ctx.project_root)))
    pipeline.pipe(Destination(ctx.output_dir))
    written = pipeline.run(
        collect_sources(ctx.project_root, PAGE_SOURCES, on_error=stream_error)
    )
    log(f"Wrote {len(written)} pages ({len(site.demos)} demos) into {ctx.output_dir}")


@registry.task("css")
def css(ctx: BuildContext) -> None:
    source = ctx.project_root / CSS_ENTRY
    if not source.exists():
        log(f"No stylesheet at {CSS_ENTRY}; skipping.", err=True, fg="yellow")
        return
    processor = CSSProcessor(ctx.project_root, str(ctx.config["browsers"]))
    try:
        processor.process(source, ctx.output_dir / source.name)
    except ToolError as exc:
        stream_error(PluginError("css", exc, source))


@registry.task("images")
def images(ctx: BuildContext) -> None:
    ImageCopier().process(ctx.project_root / IMAGES_DIR, ctx.output_dir / "images")


def _bundle(name: str) -> TaskFunc:
    def build_bundle(ctx: BuildContext) -> None:
        summary = get_bundler(ctx, name).run()
        if summary:
            log(f"[esbuild] {summary}")

    build_bundle.__name__ = f"javascript:{name}"
    return build_bundle


registry.register("javascript:main", _bundle("main"))
registry.register("javascript:polyfills", _bundle("polyfills"))
registry.register(
    "javascript", registry.parallel("javascript:main", "javascript:polyfills")
)


@registry.task("lint")
def lint(ctx: BuildContext) -> None:
    violations = Linter(ctx.project_root).run()
    for violation in violations:
        fg = "red" if violation.is_error else "yellow"
        log(violation.format(ctx.project_root), err=True, fg=fg)
    errors = [v for v in violations if v.is_error]
    if errors:
        raise LintError(f"{len(errors)} lint error(s) in {len(violations)} problem(s)")


@registry.task("clean")
def clean(ctx: BuildContext) -> None:
    if remove_dir(ctx.output_dir):
        log(f"Removed {ctx.output_dir}")


registry.register("default", registry.parallel("css", "images", "javascript", "pages"))


def watch(ctx: BuildContext) -> None:
    from .server import DevServer

    DevServer(ctx, registry).start()


registry.register("serve", registry.series("default", watch))
