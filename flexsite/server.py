"""Development server for flexsite.

Serves the build output as plain static files and re-runs the task that
owns a source file whenever that file changes:

- ``assets/css/**/*.css`` reruns ``css``
- ``assets/images/*`` reruns ``images``
- ``assets/javascript/*`` reruns ``javascript``
- ``*.html``, ``demos/*`` and ``templates/*`` rerun ``pages``

Key classes:
- DevServer: Starts the HTTP server and the watchers.
- RerunGuard: Keeps reruns of one task from overlapping.
- _StaticHandler: HTTP handler that resolves pretty URLs and serves 404s.
- _TaskTrigger: File system event handler bound to one task.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer

from .utils import log

if TYPE_CHECKING:
    from .config import BuildContext
    from .tasks import TaskRegistry

# (task, directory relative to the project root, patterns, recursive)
WATCHES = (
    ("css", "assets/css", ["*.css"], True),
    ("images", "assets/images", ["*"], False),
    ("javascript", "assets/javascript", ["*"], False),
    ("pages", ".", ["*.html"], False),
    ("pages", "demos", ["*"], False),
    ("pages", "templates", ["*"], False),
)

# Opened/closed events fire when a build reads its own sources.
CHANGE_EVENTS = {"created", "modified", "deleted", "moved"}


class _StaticHandler(SimpleHTTPRequestHandler):
    """Static file handler for the output directory.

    Directories resolve to their ``index.html``; anything else that is
    missing gets a 404, using ``404.html`` when the site has one.
    """

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - send_head answers directories first
        return self._serve_404()

    def log_message(self, format, *args):
        log(f"{self.address_string()} {format % args}")

    def _serve_404(self):
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            encoded = error_page.read_bytes()
            self.send_response(404)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            if not (path_obj / "index.html").exists():
                return self._serve_404()
        elif not path_obj.exists():
            return self._serve_404()
        return super().send_head()


class RerunGuard:
    """Run a callable on a worker thread without overlapping runs.

    A trigger that arrives while a run is in progress marks the guard dirty;
    the worker then runs once more when the current run ends, no matter how
    many triggers arrived in between.

    Attributes:
        name: Label used in log messages.
    """

    def __init__(self, name: str, run: Callable[[], None]):
        self.name = name
        self._run = run
        self._lock = threading.Lock()
        self._running = False
        self._pending = False
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._running

    def trigger(self) -> bool:
        """Request a run.

        Returns:
            True if a worker was started, False if the request was queued
            behind the run in progress.
        """
        with self._lock:
            if self._running:
                self._pending = True
                return False
            self._running = True
        self._thread = threading.Thread(target=self._drain, daemon=True)
        self._thread.start()
        return True

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _drain(self) -> None:
        while True:
            try:
                self._run()
            except Exception as exc:
                _report_failure(self.name, exc)
            with self._lock:
                if not self._pending:
                    self._running = False
                    return
                self._pending = False


def _report_failure(name: str, exc: Exception) -> None:
    from .tasks import TaskError

    causes = exc.root_causes() if isinstance(exc, TaskError) else [(name, exc)]
    for task, error in causes:
        log(f"'{task}' failed: {error}", err=True, fg="red")


class _TaskTrigger(PatternMatchingEventHandler):
    def __init__(self, guard: RerunGuard, patterns: list[str]):
        super().__init__(patterns=patterns, ignore_directories=True)
        self.guard = guard

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in CHANGE_EVENTS:
            return
        log(f"Changed {event.src_path}; rerunning '{self.guard.name}'")
        self.guard.trigger()


class DevServer:
    """Static file server plus per-task watchers.

    Attributes:
        ctx: Build context shared with every rerun.
        tasks: Task registry used for reruns.
        port: HTTP port.
        output_dir: Directory being served.
    """

    def __init__(self, ctx: BuildContext, tasks: TaskRegistry):
        self.ctx = ctx
        self.tasks = tasks
        self.port = ctx.port
        self.output_dir = ctx.output_dir
        self.guards: dict[str, RerunGuard] = {}
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None

    def start(self) -> None:  # pragma: no cover - integration path
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._httpd = self.make_server()
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        log(f"Serving {self.output_dir} at http://localhost:{self.port}")
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None

    def make_server(self) -> ThreadingHTTPServer:
        handler = functools.partial(_StaticHandler, directory=str(self.output_dir))
        return ThreadingHTTPServer(("", self.port), handler)

    def guard_for(self, task: str) -> RerunGuard:
        guard = self.guards.get(task)
        if guard is None:
            guard = RerunGuard(task, lambda: self.tasks.run(task, self.ctx))
            self.guards[task] = guard
        return guard

    def _start_watcher(self) -> None:
        observer = Observer()
        for task, folder, patterns, recursive in WATCHES:
            path = self.ctx.project_root / folder
            if not path.is_dir():
                continue
            handler = _TaskTrigger(self.guard_for(task), patterns)
            observer.schedule(handler, str(path), recursive=recursive)
        observer.start()
        self._observer = observer
