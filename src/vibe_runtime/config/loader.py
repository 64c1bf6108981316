"""
vibe-runtime: layered configuration loading

File: src/vibe_runtime/config/loader.py

Purpose
- Build the effective runtime config from four layers, later layers winning:
  built-in defaults, ``vibe.toml``, ``VIBE_<SECTION>_<FIELD>`` environment
  variables and caller overrides.

Functional requirements
- Only settings known to the schema are read from the environment; values
  are coerced to the setting's kind.
- An explicit config path must exist; the implicit ``./vibe.toml`` may not.
- Path settings are made absolute against the config file's directory.
- The result is validated once after all layers are applied.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import structlog

from vibe_runtime.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    settable_fields,
)
from vibe_runtime.constants import CONFIG_FILE_NAME

DEFAULT_CONFIG_FILE: Final[str] = CONFIG_FILE_NAME
ENV_PREFIX: Final[str] = "VIBE_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

logger = structlog.get_logger(__name__)


class ConfigLoadError(ValueError):
    """Raised when a config layer cannot be read or coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    ``cli_overrides`` may use dotted keys (``{"scheduler.max_parallel": 3}``)
    or nested sections (``{"scheduler": {"max_parallel": 3}}``).
    """

    explicit = config_path is not None
    path = Path(config_path if explicit else DEFAULT_CONFIG_FILE).expanduser().resolve()

    layers = (
        read_config_file(path, required=explicit),
        env_overrides(os.environ if environ is None else environ),
        _expand_dotted(cli_overrides or {}),
    )
    config: dict[str, Any] = dict(default_config())
    for layer in layers:
        config = merge_config(config, layer)
    config = assert_valid_config(config)

    for section, name in PATH_FIELDS:
        value = config[section][name]
        if isinstance(value, str):
            config[section][name] = _absolute(value, path.parent)

    logger.debug("config_loaded", path=str(path), file_layer=bool(layers[0]))
    return config


def read_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"cannot read {path}: {exc}") from exc


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Settings present in ``environ``, coerced and nested by section."""

    found: dict[str, Any] = {}
    for section, name, kind in settable_fields():
        variable = f"{ENV_PREFIX}{section}_{name}".upper()
        if variable not in environ:
            continue
        raw = environ[variable].strip()
        if kind == "int":
            try:
                value: object = int(raw)
            except ValueError:
                raise ConfigLoadError(f"{variable} must be an integer, got {raw!r}") from None
        elif kind == "bool":
            if raw.lower() not in _TRUTHY | _FALSY:
                raise ConfigLoadError(f"{variable} must be a boolean, got {raw!r}")
            value = raw.lower() in _TRUTHY
        else:
            value = raw
        found.setdefault(section, {})[name] = value
    return found


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Canonical JSON rendering, stable across runs."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expand_dotted(overrides: Mapping[str, object]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for key, value in overrides.items():
        *parents, leaf = key.split(".")
        if not leaf or not all(parents):
            raise ConfigLoadError(f"invalid override key {key!r}")
        cursor = nested
        for part in parents:
            cursor = cursor.setdefault(part, {})
        if isinstance(value, Mapping) and isinstance(cursor.get(leaf), dict):
            cursor[leaf] = merge_config(cursor[leaf], value)
        else:
            cursor[leaf] = value
    return nested


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_overrides",
    "load_config",
    "read_config_file",
]
