from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .settings import Settings

logger = logging.getLogger(__name__)

ENV_PREFIX = "STRIKEWATCH_"
DEFAULT_CONFIG = "config.yml"

# read directly by the entry points, not part of the settings tree
RESERVED_ENV = {"CONFIG", "LOG_LEVEL"}


def _deep_set(obj: dict[str, Any], path: list[str], value: Any) -> None:
    cur: dict[str, Any] = obj
    for key in path[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    cur[path[-1]] = value


def _parse_env_value(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _apply_env_overrides(data: dict[str, Any], *, prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Overlay ``<prefix><SECTION>__<KEY>`` variables onto the loaded YAML."""
    merged: dict[str, Any] = dict(data)
    applied = []

    for key, raw_value in sorted(os.environ.items()):
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        if remainder in RESERVED_ENV:
            continue

        path = [p.lower() for p in remainder.split("__") if p]
        if not path:
            continue

        _deep_set(merged, path, _parse_env_value(raw_value))
        applied.append(".".join(path))

    if applied:
        # names only, values may be secrets
        logger.debug("Config overrides from environment: %s", ", ".join(applied))
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Cannot parse config file {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config root must be a mapping, got: {type(loaded)!r}")
    return loaded


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from YAML plus environment overrides.

    An explicitly named file (argument or ``STRIKEWATCH_CONFIG``) must exist;
    a missing ``./config.yml`` just means defaults.

    Raises:
        ValueError: Missing or unparsable file, or values failing validation
    """
    explicit = config_path or os.environ.get(f"{ENV_PREFIX}CONFIG")
    path = Path(explicit or DEFAULT_CONFIG)

    if path.exists():
        data = _read_yaml(path)
    elif explicit:
        raise ValueError(f"Config file not found: {path}")
    else:
        logger.debug("No %s found, using defaults", path)
        data = {}

    data = _apply_env_overrides(data)

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
