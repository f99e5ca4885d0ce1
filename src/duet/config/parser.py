"""Read duet.yaml into a validated :class:`DuetConfig`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from duet.config.models import DuetConfig

DEFAULT_CONFIG_NAME = "duet.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


def find_config(path: Path | None = None) -> Path | None:
    """Pick the config file to load.

    An explicit *path* must exist.  Without one, ``duet.yaml`` in the
    working directory is used when present; ``None`` means run on
    defaults.
    """
    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return path
    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def load_config(path: Path | None = None) -> DuetConfig:
    """Load settings, falling back to built-in defaults when there is no file.

    A ``.env`` next to the config file is loaded into the environment so
    the spawned CLIs inherit it.
    """
    config_path = find_config(path)
    if config_path is None:
        return DuetConfig()

    settings = _read_settings(config_path)
    env_path = config_path.parent / ".env"
    if env_path.is_file():
        load_dotenv(env_path)

    try:
        return DuetConfig.model_validate(settings)
    except ValidationError as exc:
        raise ConfigError(_describe_errors(exc)) from exc


def _read_settings(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        where = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            where = f" (line {mark.line + 1}, column {mark.column + 1})"
        raise ConfigError(f"Invalid YAML in {path.name}{where}") from exc

    # An empty file means "all defaults".
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        )
    return data


def _describe_errors(exc: ValidationError) -> str:
    lines = ["Config validation failed:"]
    for err in exc.errors():
        key = ".".join(str(part) for part in err["loc"]) or "(root)"
        reason = "Unknown setting" if err["type"] == "extra_forbidden" else err["msg"]
        lines.append(f"  {key}: {reason}")
    return "\n".join(lines)
