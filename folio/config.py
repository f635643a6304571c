"""Configuration for folio.

Settings come from three layers, later ones winning: built-in defaults, an
optional `_config.yml` in the content directory, and command-line flags.

Key functions:
- load_config: Read `_config.yml` and merge it over the defaults.
- resolve_settings: Apply CLI overrides and return a Settings object.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .utils import parse_bool

CONFIG_FILENAME = "_config.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "folio",
    "host": "127.0.0.1",
    "port": 4000,
    "drafts": False,
    "output_dir": "_site",
    "livereload": False,
    "ws_port": None,
}


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one run.

    Attributes:
        content_dir: Directory holding the documents.
        title: Site title shown in page titles.
        host: Interface the dev server binds to.
        port: Dev server HTTP port.
        drafts: Whether draft documents are visible.
        output_dir: Build output directory.
        livereload: Whether to run the live reload websocket server.
        ws_port: Live reload websocket port.
    """

    content_dir: Path
    title: str
    host: str
    port: int
    drafts: bool
    output_dir: Path
    livereload: bool
    ws_port: int


def load_config(content_dir: Path) -> dict[str, Any]:
    """Load configuration from `_config.yml`.

    Args:
        content_dir: Content directory that may hold the config file.

    Returns:
        Dictionary of configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config_path = content_dir / CONFIG_FILENAME
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as exc:
            raise ConfigError(f"cannot parse configuration: {exc}", config_path) from exc
        if not isinstance(loaded, dict):
            raise ConfigError("configuration must be a mapping", config_path)
        config.update(loaded)
    return config


def resolve_settings(content_dir: Path, **overrides: Any) -> Settings:
    """Build Settings from the config file plus command-line overrides.

    Overrides whose value is None are ignored, so unset CLI options fall
    through to the file and then the defaults.

    Args:
        content_dir: Content directory.
        **overrides: Values from the command line, keyed like DEFAULT_CONFIG.

    Returns:
        Resolved Settings.

    Raises:
        ConfigError: If the file cannot be read or a value has the wrong type.
    """
    content_dir = Path(content_dir)
    config = load_config(content_dir) if content_dir.is_dir() else DEFAULT_CONFIG.copy()
    config.update({key: value for key, value in overrides.items() if value is not None})

    try:
        port = int(config["port"])
        if config.get("ws_port") is not None:
            ws_port = int(config["ws_port"])
        else:
            ws_port = port + 1 if port else 0
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid port: {exc}", content_dir / CONFIG_FILENAME) from exc

    output_dir = Path(str(config["output_dir"]))
    if not output_dir.is_absolute():
        output_dir = content_dir / output_dir

    return Settings(
        content_dir=content_dir,
        title=str(config.get("title") or ""),
        host=str(config["host"]),
        port=port,
        drafts=parse_bool(config.get("drafts")),
        output_dir=output_dir,
        livereload=parse_bool(config.get("livereload")),
        ws_port=ws_port,
    )
