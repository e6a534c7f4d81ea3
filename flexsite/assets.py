"""Asset processing for flexsite.

Stylesheets, scripts and images are handled by separate processors, one
per task:

- CSSProcessor: transforms and minifies the entry stylesheet with the
  ``lightningcss`` CLI, falling back to ``rcssmin`` when it is missing.
- ImageCopier: copies the image tree unchanged.
- Bundler: builds one JavaScript bundle with the ``esbuild`` CLI.
- Linter: runs ``eslint`` over the JavaScript sources.
"""

from __future__ import annotations

import functools
import json
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import rcssmin

from .executable_utils import ToolError, find_executable, run_tool
from .utils import log

if TYPE_CHECKING:
    from .config import BuildContext

CSS_ENTRY = Path("assets") / "css" / "main.css"
IMAGES_DIR = Path("assets") / "images"
JS_DIR = Path("assets") / "javascript"

PUBLIC_PATH_DEFINE = "process.env.SBF_PUBLIC_PATH"
NODE_ENV_DEFINE = "process.env.NODE_ENV"


class BundlerError(Exception):
    """A bundle could not be built.

    Attributes:
        bundle: Name of the bundle.
        output: The bundler's diagnostic text.
    """

    def __init__(self, bundle: str, output: str):
        self.bundle = bundle
        self.output = output
        super().__init__(f"bundle '{bundle}' failed:\n{output}".rstrip())


class LintError(Exception):
    """Raised after all lint violations have been reported."""


class BaseAssetProcessor(ABC):
    """Base class for asset processors."""

    @abstractmethod
    def process(self, source: Path, dest: Path) -> None:
        """Process ``source`` into ``dest``."""
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)


class CSSProcessor(BaseAssetProcessor):
    """Turn modern CSS into browser-compatible, minified CSS.

    Runs ``lightningcss`` without bundling, so ``url()`` references are
    left exactly as written. Without the CLI the stylesheet is only
    minified with rcssmin.

    Attributes:
        project_root: Root directory of the project.
        browsers: Browserslist query for the transform targets.
    """

    def __init__(self, project_root: Path, browsers: str):
        self.project_root = project_root
        self.browsers = browsers

    def process(self, source: Path, dest: Path) -> None:
        self.ensure_dest_dir(dest)
        lightningcss = find_executable("lightningcss", self.project_root)
        if not lightningcss:
            log(
                "lightningcss CLI not found; minifying CSS without transforms. "
                "Install with `npm install -D lightningcss-cli`.",
                err=True,
                fg="yellow",
            )
            css = source.read_text(encoding="utf-8")
            dest.write_text(rcssmin.cssmin(css), encoding="utf-8")
            return
        run_tool(
            [
                lightningcss,
                "--minify",
                "--targets",
                self.browsers,
                str(source),
                "-o",
                str(dest),
            ],
            cwd=self.project_root,
        )


class ImageCopier(BaseAssetProcessor):
    """Copy a directory tree without touching the files."""

    def process(self, source: Path, dest: Path) -> None:
        if not source.exists():
            return
        for item in source.rglob("*"):
            if item.is_dir():
                continue
            target = dest / item.relative_to(source)
            self.ensure_dest_dir(target)
            shutil.copy2(item, target)


@dataclass(frozen=True)
class BundleSpec:
    """How to build one bundle.

    Attributes:
        name: Bundle name used in task names and logs.
        entry: Entry module, relative to the project root.
        minify: Emit optimized output.
        target: Language level to down-level to, or None to keep syntax.
        defines: Build-time constants, by identifier.
    """

    name: str
    entry: Path
    minify: bool
    target: str | None = None
    defines: dict[str, str] = field(default_factory=dict)


def main_bundle(ctx: BuildContext) -> BundleSpec:
    """Application bundle; optimization follows the environment."""
    return BundleSpec(
        name="main",
        entry=JS_DIR / "main.js",
        minify=ctx.is_production,
        target="es2015",
        defines={NODE_ENV_DEFINE: ctx.env, PUBLIC_PATH_DEFINE: ctx.public_path},
    )


def polyfills_bundle(ctx: BuildContext) -> BundleSpec:
    """Polyfill bundle; always built in production mode."""
    return BundleSpec(
        name="polyfills",
        entry=JS_DIR / "polyfills.js",
        minify=True,
        defines={NODE_ENV_DEFINE: "production"},
    )


BUNDLES = {"main": main_bundle, "polyfills": polyfills_bundle}


class Bundler:
    """Build a JavaScript bundle with esbuild.

    The executable lookup and the command line are computed on first use
    and reused by every later ``run``.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory receiving the bundle and its source map.
        spec: What to build.
        public_path: Public URL prefix of the output directory.
    """

    def __init__(self, project_root: Path, output_dir: Path, spec: BundleSpec, public_path: str):
        self.project_root = project_root
        self.output_dir = output_dir
        self.spec = spec
        self.public_path = public_path

    @property
    def outfile(self) -> Path:
        return self.output_dir / self.spec.entry.name

    @functools.cached_property
    def command(self) -> list[str]:
        esbuild = find_executable("esbuild", self.project_root)
        if not esbuild:
            raise BundlerError(
                self.spec.name,
                "esbuild not found. Install with `npm install -D esbuild`.",
            )
        cmd = [
            esbuild,
            str(self.spec.entry),
            "--bundle",
            f"--outfile={self.outfile}",
            "--sourcemap",
            f"--public-path={self.public_path}",
            "--log-level=info",
        ]
        if self.spec.minify:
            cmd.append("--minify")
        if self.spec.target:
            cmd.append(f"--target={self.spec.target}")
        for name, value in self.spec.defines.items():
            cmd.append(f"--define:{name}={json.dumps(value)}")
        return cmd

    def run(self) -> str:
        """Build the bundle.

        Returns:
            esbuild's summary output.

        Raises:
            BundlerError: esbuild is missing or reported errors.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        try:
            result = run_tool(self.command, cwd=self.project_root)
        except ToolError as exc:
            raise BundlerError(self.spec.name, exc.output) from exc
        return (result.stderr or result.stdout or "").strip()


def get_bundler(ctx: BuildContext, name: str) -> Bundler:
    """Return the cached bundler for ``name``, creating it on first call."""
    bundler = ctx.bundlers.get(name)
    if bundler is None:
        bundler = Bundler(ctx.project_root, ctx.output_dir, BUNDLES[name](ctx), ctx.public_path)
        ctx.bundlers[name] = bundler
    return bundler


@dataclass
class LintViolation:
    path: str
    line: int
    column: int
    rule: str | None
    message: str
    severity: int

    @property
    def is_error(self) -> bool:
        return self.severity >= 2

    def format(self, project_root: Path) -> str:
        try:
            shown = Path(self.path).relative_to(project_root)
        except ValueError:
            shown = Path(self.path)
        kind = "error" if self.is_error else "warning"
        rule = f" ({self.rule})" if self.rule else ""
        return f"{shown}:{self.line}:{self.column} {kind} {self.message}{rule}"


class Linter:
    """Run eslint and collect every reported violation.

    Attributes:
        project_root: Root directory of the project.
        patterns: Glob patterns of the files to lint.
    """

    patterns = ("assets/javascript/**/*.js",)

    def __init__(self, project_root: Path):
        self.project_root = project_root

    def files(self) -> list[Path]:
        found: list[Path] = []
        for pattern in self.patterns:
            found.extend(sorted(p for p in self.project_root.glob(pattern) if p.is_file()))
        return found

    def run(self) -> list[LintViolation]:
        files = self.files()
        if not files:
            return []
        eslint = find_executable("eslint", self.project_root)
        if not eslint:
            raise LintError("eslint not found. Install with `npm install -D eslint`.")
        result = run_tool(
            [eslint, "--format", "json", *map(str, files)],
            cwd=self.project_root,
            check=False,
        )
        # eslint exits 1 for violations and 2 for its own failures.
        if result.returncode not in (0, 1):
            raise LintError((result.stderr or result.stdout).strip())
        return parse_eslint_report(result.stdout)


def parse_eslint_report(report: str) -> list[LintViolation]:
    entries: list[dict[str, Any]] = json.loads(report or "[]")
    violations = []
    for entry in entries:
        for message in entry.get("messages", []):
            violations.append(
                LintViolation(
                    path=entry.get("filePath", ""),
                    line=message.get("line", 0),
                    column=message.get("column", 0),
                    rule=message.get("ruleId"),
                    message=message.get("message", ""),
                    severity=message.get("severity", 2),
                )
            )
    return violations
