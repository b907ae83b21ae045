"""Load FolioConfig from folio.yaml / folio.toml if present.

Merges file config with CLI kwargs. CLI overrides file.
"""

from __future__ import annotations

import dataclasses
import tomllib
from pathlib import Path

import yaml

from folio._errors import ConfigError
from folio.config import CONFIG_FILENAMES, FolioConfig

_KNOWN_KEYS = frozenset(
    f.name for f in dataclasses.fields(FolioConfig) if f.name != "root"
)


def load_config(root: Path, **overrides: object) -> FolioConfig:
    """Load FolioConfig from root, optionally merging a config file.

    Looks for folio.yaml, folio.yml, or folio.toml in root. If found, loads
    and merges with overrides. Overrides take precedence; ``None`` overrides
    are ignored so CLI defaults never mask file values.

    Raises:
        ConfigError: If the config file is malformed or a value has the
            wrong type.

    """
    file_config = read_config_file(root)
    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    if "output" in merged and not isinstance(merged["output"], Path):
        merged["output"] = Path(str(merged["output"]))
    if "port" in merged:
        try:
            merged["port"] = int(merged["port"])  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            msg = f"port must be an integer, got {merged['port']!r}"
            raise ConfigError(msg) from exc
    if "markdown_plugins" in merged:
        plugins = merged["markdown_plugins"]
        if isinstance(plugins, str) or not isinstance(plugins, (list, tuple)):
            msg = f"markdown_plugins must be a list, got {plugins!r}"
            raise ConfigError(msg)
        merged["markdown_plugins"] = tuple(str(p) for p in plugins)
    return FolioConfig(root=Path(root), **merged)  # type: ignore[arg-type]


def read_config_file(root: Path) -> dict[str, object]:
    """Read folio config from yaml/toml if present. Returns empty dict otherwise."""
    for name in CONFIG_FILENAMES:
        path = Path(root) / name
        if not path.is_file():
            continue
        if path.suffix == ".toml":
            return _parse_toml(path)
        return _parse_yaml(path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        msg = f"Malformed config file {path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping"
        raise ConfigError(msg)
    return _flatten_folio_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Malformed config file {path}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_folio_section(data)


def _flatten_folio_section(data: dict[str, object]) -> dict[str, object]:
    """Extract known keys from the top level and from a ``folio:`` section."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k in _KNOWN_KEYS:
            result[k] = v
    section = data.get("folio")
    if isinstance(section, dict):
        for k, v in section.items():
            if k in _KNOWN_KEYS:
                result[k] = v
    return result
