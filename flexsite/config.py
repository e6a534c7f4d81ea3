"""Project configuration for flexsite.

Two files configure a build:

- ``flexsite.yaml`` (optional) holds build settings such as the output
  directory, the dev server port and the repository name used for the
  production public path.
- ``config.json`` holds the site data handed to templates as ``site``.

The ``NODE_ENV`` environment variable selects the environment; the literal
value ``production`` turns on production behavior.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

ENV_VAR = "NODE_ENV"
PRODUCTION = "production"
DEVELOPMENT = "development"

DEFAULT_CONFIG = {
    "output_dir": "build",
    "port": 4000,
    "repo": "",
    "browsers": "> 1%, last 2 versions, Safari > 5, ie > 9, Firefox ESR",
}


class ConfigError(Exception):
    """Raised when a configuration file cannot be used.

    Attributes:
        path: The offending file.
        message: Human-readable explanation.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


def load_config(project_root: Path) -> dict[str, Any]:
    """Load build settings from flexsite.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary of settings with defaults applied.
    """
    config_path = project_root / "flexsite.yaml"
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(config_path, f"invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(config_path, "expected a mapping at the top level")
        config.update(loaded)
    if not config.get("repo"):
        config["repo"] = project_root.resolve().name
    return config


def load_site_data(project_root: Path) -> dict[str, Any]:
    """Load the base site data from config.json.

    Args:
        project_root: Root directory of the project.

    Returns:
        The decoded JSON object, or an empty dict when the file is absent.
    """
    data_path = project_root / "config.json"
    if not data_path.exists():
        return {}
    try:
        data = json.loads(data_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(data_path, f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(data_path, "expected a JSON object")
    return data


@dataclass
class BuildContext:
    """Everything a task needs to know about the current build.

    The context lives for a whole CLI invocation, so objects cached on it
    (the JavaScript bundlers) survive repeated task runs in watch mode.

    Attributes:
        project_root: Root directory of the project.
        config: Build settings from flexsite.yaml merged over the defaults.
        env: Environment name taken from NODE_ENV.
        bundlers: Lazily created bundlers keyed by bundle name.
    """

    project_root: Path
    config: dict[str, Any]
    env: str = DEVELOPMENT
    bundlers: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_environ(
        cls, project_root: Path, environ: Mapping[str, str] | None = None
    ) -> BuildContext:
        environ = os.environ if environ is None else environ
        return cls(
            project_root=project_root,
            config=load_config(project_root),
            env=environ.get(ENV_VAR) or DEVELOPMENT,
        )

    @property
    def is_production(self) -> bool:
        return self.env == PRODUCTION

    @property
    def repo(self) -> str:
        return str(self.config["repo"])

    @property
    def public_path(self) -> str:
        """Public URL prefix: ``/<repo>/`` in production, ``/`` otherwise."""
        if self.is_production:
            return f"/{self.repo.strip('/')}/"
        return "/"

    @property
    def output_dir(self) -> Path:
        return self.project_root / self.config.get("output_dir", "build")

    @property
    def port(self) -> int:
        return int(self.config.get("port", 4000))

    def site_data(self) -> dict[str, Any]:
        """Base site data merged with the runtime overrides."""
        data = load_site_data(self.project_root)
        data.update(
            {"base_url": self.public_path, "baseUrl": self.public_path, "env": self.env}
        )
        return data
