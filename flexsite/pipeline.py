"""File pipelines for flexsite.

A pipeline reads source files into ``FileRecord`` objects and pushes them
through a chain of stages. Each stage is a generator over the incoming
records, so files flow one at a time unless a stage chooses to buffer
(the front-matter stage does).

Key classes:
- FileRecord: One file travelling through a pipeline.
- Stage: Base class for per-file transforms.
- Pipeline: Chains stages and applies the error boundary.
- PrettyUrlStage: Stage moving records to pretty-URL paths.
- Destination: Stage that writes each record below an output directory.
- PluginError: Per-file failure raised by a stage.
"""

from __future__ import annotations

import traceback
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from .utils import beep, log, pretty_path

if TYPE_CHECKING:
    from .content import Page, SiteContext


class PluginError(Exception):
    """A stage failed on one file.

    Attributes:
        plugin: Name of the stage that failed.
        error: The original exception.
        file_name: Path of the file being processed.
    """

    def __init__(self, plugin: str, error: Exception, file_name: Path | str):
        self.plugin = plugin
        self.error = error
        self.file_name = str(file_name)
        super().__init__(f"[{plugin}] {self.file_name}: {error}")


ErrorHandler = Callable[[PluginError], None]


@dataclass
class FileRecord:
    """A source file on its way through a pipeline.

    Attributes:
        path: Absolute path of the source file.
        base: Directory that ``relative`` is measured from.
        contents: Current file contents.
        relative: Output-relative path; stages may rewrite it.
        site: Site context, attached by the front-matter stage.
        page: Page record, attached when the file has front matter.
    """

    path: Path
    base: Path
    contents: str
    relative: PurePosixPath = field(default=None)  # type: ignore[assignment]
    site: SiteContext | None = None
    page: Page | None = None

    def __post_init__(self) -> None:
        if self.relative is None:
            self.relative = PurePosixPath(self.path.relative_to(self.base).as_posix())

    @classmethod
    def read(cls, path: Path, base: Path) -> FileRecord:
        return cls(path=path, base=base, contents=path.read_text(encoding="utf-8"))


def collect_sources(
    base: Path, patterns: Iterable[str], on_error: ErrorHandler | None = None
) -> list[FileRecord]:
    """Read every file matching the glob patterns below ``base``.

    A file that cannot be read as UTF-8 text becomes a ``PluginError``
    named ``src``. It is passed to ``on_error`` and skipped, or raised when
    no handler is given.

    Args:
        base: Directory the patterns are relative to.
        patterns: Glob patterns such as ``*.html`` or ``demos/**/*``.
        on_error: Optional callback for unreadable files.

    Returns:
        Records in pattern order, sorted within each pattern, without
        duplicates.
    """
    seen: set[Path] = set()
    records: list[FileRecord] = []
    for pattern in patterns:
        for path in sorted(base.glob(pattern)):
            if not path.is_file() or path in seen:
                continue
            seen.add(path)
            try:
                records.append(FileRecord.read(path, base))
            except (OSError, UnicodeDecodeError) as exc:
                error = PluginError("src", exc, path)
                if on_error is None:
                    raise error from exc
                on_error(error)
    return records


class Stage:
    """Per-file transform.

    Subclasses override ``transform``. Returning ``None`` drops the record.
    Any exception is wrapped in a ``PluginError`` naming the stage and file
    and handed to the pipeline's error callback.
    """

    name = "stage"

    def transform(self, record: FileRecord) -> FileRecord | None:
        return record

    def process(
        self, records: Iterable[FileRecord], on_error: ErrorHandler
    ) -> Iterator[FileRecord]:
        for record in records:
            try:
                result = self.transform(record)
            except PluginError as exc:
                on_error(exc)
                continue
            except Exception as exc:
                on_error(PluginError(self.name, exc, record.path))
                continue
            if result is not None:
                yield result


class Destination(Stage):
    """Write each record to ``output_dir / record.relative``."""

    name = "dest"

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def transform(self, record: FileRecord) -> FileRecord:
        target = self.output_dir / Path(*record.relative.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(record.contents, encoding="utf-8")
        return record


class PrettyUrlStage(Stage):
    """Move every record to its pretty-URL output path."""

    name = "rename"

    def transform(self, record: FileRecord) -> FileRecord:
        record.relative = pretty_path(record.relative)
        return record


class Pipeline:
    """A chain of stages.

    Without an error handler the first ``PluginError`` propagates out of
    ``run`` and halts the stream. With one, the failing file is dropped,
    the handler is called and the remaining files keep flowing.

    Attributes:
        stages: Stages in application order.
        error_handler: Optional callback for per-file failures.
    """

    def __init__(self, error_handler: ErrorHandler | None = None):
        self.stages: list[Stage] = []
        self.error_handler = error_handler

    def pipe(self, stage: Stage) -> Pipeline:
        self.stages.append(stage)
        return self

    def run(self, records: Iterable[FileRecord]) -> list[FileRecord]:
        """Push records through every stage and return what comes out."""
        stream: Iterable[FileRecord] = iter(records)
        for stage in self.stages:
            stream = stage.process(stream, self._on_error)
        return list(stream)

    def _on_error(self, error: PluginError) -> None:
        if self.error_handler is None:
            raise error
        self.error_handler(error)


def stream_error(error: PluginError) -> None:
    """Error boundary used by the pages task: report and keep going."""
    beep()
    log(str(error), err=True, fg="red")
    original = error.error
    details = "".join(
        traceback.format_exception(type(original), original, original.__traceback__)
    )
    log(details.rstrip(), err=True)
