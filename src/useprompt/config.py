"""Engine configuration loaded from YAML."""

from __future__ import annotations

import keyword
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

DEFAULT_CONFIG_NAME = "use-prompt.yaml"
DEFAULT_CACHE_PATH = ".use-prompt/cache.json"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be loaded or validated."""


class PendingPolicy(str, Enum):
    """What to do with a directive that has no cached substitution yet."""

    SILENT = "silent"
    DIAGNOSTIC = "diagnostic"


class EngineConfig(BaseModel):
    """Settings for one transform pass."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cache_path: str = DEFAULT_CACHE_PATH
    pending_policy: PendingPolicy = PendingPolicy.SILENT
    splice_imports: bool = True
    hygiene_prefix: str = "P{index}_"
    client_directive: Optional[str] = "use client"
    framework_import: Optional[str] = None
    error_class: str = "RuntimeError"

    @field_validator("hygiene_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if "{index}" not in value:
            raise ValueError("hygiene_prefix must contain an '{index}' placeholder")
        try:
            sample = value.format(index=0)
        except (KeyError, IndexError, ValueError) as error:
            raise ValueError(f"hygiene_prefix is not a valid template: {error}") from error
        if not (sample + "x").isidentifier():
            raise ValueError(f"hygiene_prefix {value!r} does not produce identifiers")
        return value

    @field_validator("error_class", "framework_import")
    @classmethod
    def _check_dotted_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parts = value.split(".")
        if not all(part.isidentifier() and not keyword.iskeyword(part) for part in parts):
            raise ValueError(f"{value!r} is not a dotted Python name")
        return value

    @field_validator("client_directive")
    @classmethod
    def _blank_directive_disables(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    def resolve_cache_path(self, base: Path) -> Path:
        """Resolve ``cache_path`` relative to ``base`` when it is not absolute."""
        candidate = Path(self.cache_path)
        if not candidate.is_absolute():
            candidate = base / candidate
        return candidate

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a validated copy with the non-``None`` overrides applied."""
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return coerce_config(values)


def coerce_config(data: Mapping[str, Any]) -> EngineConfig:
    """Validate a mapping, accepting either a flat layout or a ``transform`` section."""
    section: Any = data.get("transform", data) if isinstance(data, Mapping) else data
    if section is None:
        section = {}
    if not isinstance(section, Mapping):
        raise ConfigError("The 'transform' section must be a mapping.")
    try:
        return EngineConfig.model_validate(dict(section))
    except ValidationError as error:
        raise ConfigError(f"Invalid transform configuration: {error}") from error


def load_config(config_path: Path | str | None) -> EngineConfig:
    """Load YAML configuration from disk; a missing file yields the defaults."""
    if config_path is None:
        return EngineConfig()
    path = Path(config_path)
    if not path.exists():
        return EngineConfig()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data: Dict[str, Any] | Any = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return coerce_config(data)
