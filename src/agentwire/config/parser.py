"""Read agentwire.yaml (when present) into an ``AgentWireConfig``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from agentwire.config.models import AgentWireConfig

DEFAULT_CONFIG_NAME = "agentwire.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> AgentWireConfig:
    """Load and validate agentwire configuration.

    An explicit *path* must exist.  Without one, ``agentwire.yaml`` in the
    current directory is used if present, otherwise the defaults apply.
    A ``.env`` file beside the config file is loaded into the environment.

    Raises:
        ConfigError: On a missing explicit file, bad YAML, or invalid values.
    """
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_NAME
        if not path.is_file():
            return AgentWireConfig()
    elif not Path(path).is_file():
        msg = f"Config file not found: {path}"
        raise ConfigError(msg)

    path = Path(path)
    raw = _parse_mapping(path)
    dotenv_path = path.parent / ".env"
    if dotenv_path.is_file():
        load_dotenv(dotenv_path)

    try:
        return AgentWireConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc


def _parse_mapping(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc
    except yaml.MarkedYAMLError as exc:
        where = ""
        mark = exc.problem_mark
        if mark is not None:
            where = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML in {path.name}: {exc}"
        raise ConfigError(msg) from exc

    # An empty file means "all defaults".
    data = {} if data is None else data
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _describe(exc: ValidationError) -> str:
    """One line per invalid field, e.g. ``supervisor → kill_wait: ...``."""
    lines = ["Config validation failed:"]
    for err in exc.errors():
        where = " → ".join(str(part) for part in err["loc"]) or "(root)"
        lines.append(f"  {where}: {err['msg']}")
    return "\n".join(lines)
