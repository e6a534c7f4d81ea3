"""External tool discovery and invocation for flexsite.

CSS transforms, bundling, HTML minification and linting are done by
Node-based command-line tools. They are looked up on PATH first and then in
the project's ``node_modules/.bin``.

Functions:
    find_executable: Locate a tool in PATH or node_modules.
    run_tool: Run a tool and raise ToolError when it fails.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path


class ToolError(Exception):
    """An external tool exited with a non-zero status.

    Attributes:
        tool: Name of the executable.
        returncode: Exit status.
        output: The tool's diagnostic text (stderr, or stdout if stderr
            was empty).
    """

    def __init__(self, tool: str, returncode: int, output: str):
        self.tool = tool
        self.returncode = returncode
        self.output = output
        super().__init__(f"{tool} exited with status {returncode}\n{output}".rstrip())


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable (e.g. 'esbuild', 'eslint').
        project_root: Optional project root whose ``node_modules/.bin``
            is searched when PATH has no match.

    Returns:
        Full path to the executable if found, None otherwise.
    """
    found = shutil.which(name)
    if found:
        return found
    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)
    return None


def run_tool(
    cmd: Sequence[str],
    cwd: Path | None = None,
    input: str | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command and capture its text output.

    Args:
        cmd: Command line; the first item is the executable.
        cwd: Working directory.
        input: Text passed on stdin.
        check: Raise ToolError on a non-zero exit.

    Returns:
        The completed process.
    """
    result = subprocess.run(
        list(cmd),
        cwd=cwd,
        input=input,
        capture_output=True,
        text=True,
    )
    if check and result.returncode != 0:
        output = (result.stderr or result.stdout or "").strip()
        raise ToolError(Path(cmd[0]).name, result.returncode, output)
    return result
