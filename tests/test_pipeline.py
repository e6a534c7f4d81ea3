from pathlib import Path, PurePosixPath

import pytest

from flexsite.pipeline import (
    Destination,
    FileRecord,
    Pipeline,
    PluginError,
    PrettyUrlStage,
    Stage,
    collect_sources,
    stream_error,
)


class Upper(Stage):
    name = "upper"

    def transform(self, record):
        if "fail" in record.contents:
            raise RuntimeError("cannot shout")
        record.contents = record.contents.upper()
        return record


def write(base: Path, relative: str, text: str) -> Path:
    path = base / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_collect_sources_matches_patterns_once(tmp_path):
    write(tmp_path, "index.html", "home")
    write(tmp_path, "404.html", "missing")
    write(tmp_path, "demos/a.html", "a")
    write(tmp_path, "demos/deep/b.md", "b")
    write(tmp_path, "templates/demo.html", "tpl")
    (tmp_path / "demos" / "empty").mkdir()

    records = collect_sources(tmp_path, ["*.html", "demos/**/*", "index.html"])
    relatives = [str(record.relative) for record in records]
    assert relatives == ["404.html", "index.html", "demos/a.html", "demos/deep/b.md"]
    assert records[2].contents == "a"


def test_pipeline_without_handler_halts_on_error(tmp_path):
    records = [
        FileRecord.read(write(tmp_path, "a.html", "fail"), tmp_path),
        FileRecord.read(write(tmp_path, "b.html", "ok"), tmp_path),
    ]
    with pytest.raises(PluginError) as excinfo:
        Pipeline().pipe(Upper()).run(records)
    assert excinfo.value.plugin == "upper"
    assert isinstance(excinfo.value.error, RuntimeError)


def test_error_boundary_drops_file_and_continues(tmp_path):
    records = [
        FileRecord.read(write(tmp_path, "a.html", "fail"), tmp_path),
        FileRecord.read(write(tmp_path, "b.html", "ok"), tmp_path),
    ]
    errors = []
    out = Pipeline(error_handler=errors.append).pipe(Upper()).run(records)
    assert [record.contents for record in out] == ["OK"]
    assert len(errors) == 1
    assert errors[0].file_name == str(tmp_path / "a.html")


def test_rename_and_destination(tmp_path):
    src = tmp_path / "src"
    dest = tmp_path / "build"
    records = [
        FileRecord.read(write(src, "index.html", "home"), src),
        FileRecord.read(write(src, "demos/sample.html", "sample"), src),
    ]
    Pipeline().pipe(PrettyUrlStage()).pipe(Destination(dest)).run(records)
    assert (dest / "index.html").read_text(encoding="utf-8") == "home"
    assert (dest / "demos" / "sample" / "index.html").read_text(encoding="utf-8") == "sample"
    assert records[1].relative == PurePosixPath("demos/sample/index.html")


def test_stream_error_reports_file_and_traceback(capsys):
    try:
        raise ValueError("bad template")
    except ValueError as exc:
        error = PluginError("render_template", exc, "/site/demos/x.html")
    stream_error(error)
    err = capsys.readouterr().err
    assert "[render_template] /site/demos/x.html: bad template" in err
    assert "Traceback" in err
    assert "\a" in err


def test_unreadable_source_goes_to_error_handler(tmp_path):
    write(tmp_path, "demos/a.html", "a")
    (tmp_path / "demos" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")

    errors = []
    records = collect_sources(tmp_path, ["demos/**/*"], on_error=errors.append)
    assert [str(record.relative) for record in records] == ["demos/a.html"]
    assert errors[0].plugin == "src"
    assert errors[0].file_name == str(tmp_path / "demos" / "logo.png")
    assert isinstance(errors[0].error, UnicodeDecodeError)

    with pytest.raises(PluginError):
        collect_sources(tmp_path, ["demos/**/*"])
