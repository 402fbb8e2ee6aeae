"""Settings loader for the RadioHead bridge.

Configuration is read from a TOML file. Keys may either sit at the top level
or inside a ``[bridge]`` table; anything missing falls back to the defaults
in :mod:`rhbridge.const`.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from marshmallow import ValidationError

from ..const import DEFAULT_CONFIG_PATH
from ..errors import ConfigurationError
from .model import BridgeConfig
from .schema import BridgeConfigSchema

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "RHBRIDGE_CONFIG"
CONFIG_TABLE = "bridge"


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"invalid TOML in {path}: {exc}") from exc

    table = document.get(CONFIG_TABLE, document)
    if not isinstance(table, dict):
        raise ConfigurationError(f"[{CONFIG_TABLE}] in {path} must be a table")
    return dict(table)


def _resolve_path(path: str | os.PathLike[str] | None) -> tuple[Path, bool]:
    if path is not None:
        return Path(path), True
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path), True
    return Path(DEFAULT_CONFIG_PATH), False


def load_bridge_config(
    path: str | os.PathLike[str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> BridgeConfig:
    """Load, validate and return the bridge configuration.

    An explicitly requested file (argument or ``RHBRIDGE_CONFIG``) must
    exist; the default location is optional. ``overrides`` entries that are
    ``None`` are ignored so argparse namespaces can be passed straight in.
    """
    config_path, explicit = _resolve_path(path)

    raw: dict[str, Any] = {}
    if config_path.exists():
        raw = _read_toml(config_path)
        logger.debug("Loaded configuration from %s", config_path)
    elif explicit:
        raise ConfigurationError(f"configuration file {config_path} does not exist")

    if overrides:
        raw.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return BridgeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc.messages}") from exc


def config_from_mapping(values: Mapping[str, Any]) -> BridgeConfig:
    """Validate an in-memory mapping as if it had been read from a file."""
    try:
        return BridgeConfigSchema().load(dict(values))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc.messages}") from exc


__all__ = [
    "BridgeConfig",
    "CONFIG_PATH_ENV",
    "config_from_mapping",
    "load_bridge_config",
]
