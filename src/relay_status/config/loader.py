"""Locate, interpolate and validate the relay-status YAML config."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from relay_status.config.models import RelayStatusConfig

CONFIG_FILENAME = ".relay-status.yaml"
CONFIG_ENV_VAR = "RELAY_STATUS_CONFIG"

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{\s*(?P<name>[A-Za-z_][A-Za-z0-9_]*)\s*(?::-(?P<default>[^}]*))?\}")


def _interpolate_env(value: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-fallback}`` references in *value*.

    Unset variables without a fallback are left as written so the
    validation error points at the offending field.
    """

    def _lookup(match: re.Match[str]) -> str:
        name, default = match.group("name"), match.group("default")
        if name in os.environ:
            return os.environ[name]
        return default if default is not None else match.group(0)

    return _ENV_REF.sub(_lookup, value)


def _interpolate_recursive(data: Any) -> Any:
    match data:
        case str():
            return _interpolate_env(data)
        case dict():
            return {key: _interpolate_recursive(val) for key, val in data.items()}
        case list():
            return [_interpolate_recursive(item) for item in data]
        case _:
            return data


def find_config_file(start: Path | None = None) -> Path | None:
    """Return the nearest .relay-status.yaml at or above *start* (default cwd)."""
    here = (start or Path.cwd()).resolve()
    return next(
        (d / CONFIG_FILENAME for d in (here, *here.parents) if (d / CONFIG_FILENAME).is_file()),
        None,
    )


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        return path
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return find_config_file()


def load_config(path: Path | None = None) -> RelayStatusConfig:
    """Load *path*, ``$RELAY_STATUS_CONFIG``, or the nearest config file.

    Raises ``FileNotFoundError`` when nothing is found and ``ValueError``
    when the document does not validate.
    """
    config_path = _resolve_path(path)
    if config_path is None or not config_path.is_file():
        raise FileNotFoundError(
            f"Could not find {CONFIG_FILENAME}. Create one, pass --path, or set {CONFIG_ENV_VAR}."
        )
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    try:
        return RelayStatusConfig.model_validate(_interpolate_recursive(raw))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration in {config_path}: {exc}") from exc
