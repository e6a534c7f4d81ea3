import threading
from pathlib import Path

import pytest

from flexsite import tasks
from flexsite.assets import LintError, LintViolation
from flexsite.config import BuildContext, load_config
from flexsite.html_utils import HtmlMinifier
from flexsite.tasks import TaskError, TaskRegistry, registry

DEMO_TEMPLATE = (
    "<title>{{ page.title }} | {{ site.title }}</title>"
    "<main>{{ page.content }}</main>"
    "<a href=\"{{ page.permalink }}\">{{ page.slug }}</a>"
)

INDEX = (
    "<ul>{% for demo in site.demos %}"
    "<li><a href=\"{{ demo.permalink }}\">{{ demo.title }}</a></li>"
    "{% endfor %}</ul><p>{{ site.demos|length }} demos, {{ site.env }}</p>\n"
)


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "solved-by-flexbox"
    write(root / "config.json", '{"title": "Solved"}')
    write(root / "templates" / "demo.html", DEMO_TEMPLATE)
    write(root / "index.html", INDEX)
    write(root / "404.html", "<h1>Not found</h1>\n")
    write(
        root / "demos" / "sample.html",
        "---\ntitle: Sample\ntemplate: demo.html\n---\n<p>Hello from {{ page.slug }}</p>\n",
    )
    write(
        root / "demos" / "grids.md",
        "---\ntitle: Grids\ntemplate: demo.html\n---\n# Better grids\n",
    )
    return root


def context(root: Path, env: str = "development") -> BuildContext:
    return BuildContext(project_root=root, config=load_config(root), env=env)


def test_pages_builds_pretty_urls_and_demo_listing(project):
    registry.run("pages", context(project))
    build = project / "build"

    index = (build / "index.html").read_text(encoding="utf-8")
    assert "<p>2 demos, development</p>" in index
    assert '<a href="/demos/grids/">Grids</a>' in index
    assert '<a href="/demos/sample/">Sample</a>' in index

    sample = (build / "demos" / "sample" / "index.html").read_text(encoding="utf-8")
    assert sample.startswith("<title>Sample | Solved</title>")
    assert "<p>Hello from sample</p>" in sample
    assert '<a href="/demos/sample/">sample</a>' in sample

    grids = (build / "demos" / "grids" / "index.html").read_text(encoding="utf-8")
    assert "<main><h1>Better grids</h1></main>" in grids

    assert (build / "404.html").read_text(encoding="utf-8") == "<h1>Not found</h1>"
    assert not (build / "demos" / "sample.html").exists()


def test_pages_keeps_going_after_a_broken_page(project, capsys):
    write(
        project / "demos" / "broken.html",
        "---\ntitle: Broken\ntemplate: missing.html\n---\nnope\n",
    )
    registry.run("pages", context(project))
    build = project / "build"
    assert (build / "demos" / "sample" / "index.html").exists()
    assert (build / "index.html").exists()
    assert not (build / "demos" / "broken").exists()
    err = capsys.readouterr().err
    assert "[render_template]" in err
    assert "broken.html" in err
    assert "missing.html" in err


def test_pages_in_production_uses_repo_prefix_and_minifies(project, monkeypatch):
    monkeypatch.setattr(HtmlMinifier, "minify", lambda self, html: html.replace("\n", ""))
    registry.run("pages", context(project, env="production"))
    build = project / "build"
    index = (build / "index.html").read_text(encoding="utf-8")
    assert '<a href="/solved-by-flexbox/demos/sample/">Sample</a>' in index
    assert "production" in index
    assert "\n" not in index
    grids = (build / "demos" / "grids" / "index.html").read_text(encoding="utf-8")
    assert "<main><h1>Better grids</h1></main>" in grids


def test_css_and_images_do_not_depend_on_environment(project, monkeypatch):
    monkeypatch.setattr("flexsite.executable_utils.shutil.which", lambda name: None)
    write(project / "assets" / "css" / "main.css", ".grid { display: flex; }\n")
    (project / "assets" / "images").mkdir(parents=True)
    (project / "assets" / "images" / "logo.png").write_bytes(b"png")

    outputs = []
    for env in ("development", "production"):
        ctx = context(project, env=env)
        registry.run("css", ctx)
        registry.run("images", ctx)
        outputs.append(
            (
                (project / "build" / "main.css").read_text(encoding="utf-8"),
                (project / "build" / "images" / "logo.png").read_bytes(),
            )
        )
        registry.run("clean", ctx)
    assert outputs[0] == outputs[1] == (".grid{display:flex}", b"png")


def test_css_without_entry_is_skipped(project, capsys):
    registry.run("css", context(project))
    assert not (project / "build" / "main.css").exists()
    assert "No stylesheet" in capsys.readouterr().err


def test_clean_removes_output(project):
    (project / "build" / "old").mkdir(parents=True)
    registry.run("clean", context(project))
    assert not (project / "build").exists()
    registry.run("clean", context(project))


def test_lint_reports_everything_then_fails(project, monkeypatch, capsys):
    violations = [
        LintViolation(str(project / "a.js"), 1, 1, "semi", "Missing semicolon.", 1),
        LintViolation(str(project / "a.js"), 2, 5, "no-undef", "'x' is not defined.", 2),
        LintViolation(str(project / "b.js"), 3, 1, "eqeqeq", "Expected '==='.", 2),
    ]
    monkeypatch.setattr("flexsite.tasks.Linter.run", lambda self: violations)
    with pytest.raises(TaskError) as excinfo:
        registry.run("lint", context(project))
    assert isinstance(excinfo.value.error, LintError)
    err = capsys.readouterr().err
    assert "a.js:1:1 warning Missing semicolon. (semi)" in err
    assert "a.js:2:5 error" in err
    assert "b.js:3:1 error" in err


def test_lint_passes_with_only_warnings(project, monkeypatch):
    warning = LintViolation(str(project / "a.js"), 1, 1, "semi", "Missing semicolon.", 1)
    monkeypatch.setattr("flexsite.tasks.Linter.run", lambda self: [warning])
    registry.run("lint", context(project))


def test_unknown_task():
    with pytest.raises(KeyError, match="Task never defined: deploy"):
        TaskRegistry().run("deploy", None)


def test_parallel_runs_every_member_and_aggregates_failures(capsys):
    tasks_ = TaskRegistry()
    ran = []
    lock = threading.Lock()

    def ok(ctx):
        with lock:
            ran.append("ok")

    def boom(ctx):
        raise ValueError("boom")

    def bust(ctx):
        raise RuntimeError("bust")

    tasks_.register("ok", ok)
    tasks_.register("boom", boom)
    tasks_.register("bust", bust)
    tasks_.register("all", tasks_.parallel("boom", "ok", "bust"))

    with pytest.raises(TaskError) as excinfo:
        tasks_.run("all", None)
    assert ran == ["ok"]
    causes = excinfo.value.root_causes()
    assert [(task, str(error)) for task, error in causes] == [("boom", "boom"), ("bust", "bust")]
    out = capsys.readouterr()
    assert "Starting 'all'..." in out.out
    assert "Finished 'ok'" in out.out
    assert "'boom' errored" in out.err


def test_series_stops_at_first_failure():
    tasks_ = TaskRegistry()
    ran = []

    @tasks_.task("first")
    def first(ctx):
        ran.append("first")
        raise ValueError("stop")

    @tasks_.task("second")
    def second(ctx):
        ran.append("second")

    tasks_.register("both", tasks_.series("first", "second"))
    with pytest.raises(TaskError) as excinfo:
        tasks_.run("both", None)
    assert ran == ["first"]
    assert excinfo.value.root_causes()[0][0] == "first"


def test_default_runs_the_four_build_tasks(monkeypatch):
    ran = []
    lock = threading.Lock()

    def recorder(name):
        def record(ctx):
            with lock:
                ran.append(name)

        return record

    for name in ("css", "images", "javascript", "pages"):
        monkeypatch.setitem(registry._tasks, name, recorder(name))
    registry.run("default", None)
    assert sorted(ran) == ["css", "images", "javascript", "pages"]


def test_serve_builds_before_watching(monkeypatch):
    ran = []
    monkeypatch.setitem(registry._tasks, "default", lambda ctx: ran.append("default"))

    class FakeServer:
        def __init__(self, ctx, task_registry):
            assert task_registry is registry

        def start(self):
            ran.append("watch")

    monkeypatch.setattr("flexsite.server.DevServer", FakeServer)
    registry.run("serve", None)
    assert ran == ["default", "watch"]


def test_registered_task_names():
    assert {
        "pages",
        "css",
        "images",
        "javascript",
        "javascript:main",
        "javascript:polyfills",
        "lint",
        "clean",
        "default",
        "serve",
    } <= set(tasks.registry.names())


def test_pages_uses_runtime_base_url_over_site_data(project, monkeypatch):
    monkeypatch.setattr(HtmlMinifier, "minify", lambda self, html: html)
    write(project / "config.json", '{"title": "Solved", "baseUrl": "/stale/"}')
    write(project / "index.html", "[{{ site.baseUrl }}]")
    registry.run("pages", context(project, env="production"))
    assert (project / "build" / "index.html").read_text(encoding="utf-8") == "[/solved-by-flexbox/]"


def test_pages_skips_binary_files_under_demos(project, capsys):
    (project / "demos" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")
    registry.run("pages", context(project))
    build = project / "build"
    assert (build / "demos" / "sample" / "index.html").exists()
    assert (build / "index.html").exists()
    assert not (build / "demos" / "logo").exists()
    err = capsys.readouterr().err
    assert "[src]" in err
    assert "logo.png" in err
