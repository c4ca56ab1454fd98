"""Configuration management for the prompt engine.

Schema of prompt-engine.yaml (all keys optional):
- prompts_dir: directory containing template files
- extensions: file extensions recognized as templates
- partial_prefix: file name prefix that marks a partial
- debounce_seconds: quiet period before a reload is triggered
- date_format: strftime format of the `date` built-in
- strict_undefined: raise on access to undefined values while rendering
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from promptengine.exceptions import ConfigError

CONFIG_FILE_NAME = "prompt-engine.yaml"
PROMPTS_DIR_ENV = "PROMPTS_DIR"

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class EngineConfig(BaseModel):
    """Prompt engine settings."""

    prompts_dir: Path = Field(
        default=Path("./prompts"), description="Directory containing templates"
    )
    extensions: list[str] = Field(
        default_factory=lambda: [".tmpl"],
        description="File extensions recognized as templates",
    )
    partial_prefix: str = Field(
        default="_", description="Name prefix that marks a partial"
    )
    debounce_seconds: float = Field(
        default=0.3, ge=0, description="Quiet period before reloading"
    )
    date_format: str = Field(
        default=DEFAULT_DATE_FORMAT, description="Format of the `date` built-in"
    )
    strict_undefined: bool = Field(
        default=True, description="Raise on undefined values while rendering"
    )

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        """Ensure every extension carries its leading dot."""
        if not value:
            raise ValueError("at least one template extension is required")
        return [ext if ext.startswith(".") else f".{ext}" for ext in value]

    @field_validator("partial_prefix")
    @classmethod
    def require_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("partial_prefix must not be empty")
        return value


def load_config_yaml(path: Path) -> dict[str, Any]:
    """Load raw settings from a YAML file."""
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
    **overrides: Any,
) -> EngineConfig:
    """Build the engine configuration.

    Precedence (lowest to highest): defaults, YAML file, PROMPTS_DIR
    environment variable, explicit keyword overrides. Overrides set to None
    are ignored so CLI options can be passed straight through.

    Args:
        path: Optional YAML file. When omitted, prompt-engine.yaml in the
            current directory is used if it exists.
        environ: Environment mapping (defaults to os.environ).
        **overrides: Field values taking precedence over everything else.

    Returns:
        Validated EngineConfig.

    Raises:
        ConfigError: If the file or the resulting values are invalid.
    """
    environ = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if path is not None:
        data.update(load_config_yaml(path))
    else:
        candidate = Path.cwd() / CONFIG_FILE_NAME
        if candidate.exists():
            data.update(load_config_yaml(candidate))

    if environ.get(PROMPTS_DIR_ENV):
        data["prompts_dir"] = environ[PROMPTS_DIR_ENV]

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return EngineConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
