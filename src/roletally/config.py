"""Configuration loading and validation for roletally."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class OperatorsConfig(BaseModel):
    """Operators configuration for command access control."""

    user_ids: list[str] = Field(default_factory=list)
    role_id: str | None = None


class DiscordConfig(BaseModel):
    """Discord configuration."""

    guild_id: str | None = None
    operators: OperatorsConfig = Field(default_factory=OperatorsConfig)


class RoleConfig(BaseModel):
    """Which role's holders are counted.

    An explicit ``role_id`` always wins; ``role_name`` is only consulted
    when no id is configured.
    """

    role_id: str | None = None
    role_name: str = "Social Member"


class ActivityConfig(BaseModel):
    """History scanning and report configuration."""

    default_days: int = Field(30, ge=1)
    max_days: int = Field(90, ge=1)
    default_top: int = Field(20, ge=1, le=50)
    max_fetch: int = Field(2000, ge=1)  # Budget for single-channel reports
    max_messages_per_channel: int = Field(2000, ge=1)
    max_messages_per_thread: int | None = Field(None, ge=1)
    include_threads: bool = True
    page_size: int = Field(100, ge=1, le=100)
    pacing_seconds: float = Field(0.35, ge=0)
    max_concurrency: int = Field(1, ge=1)

    @model_validator(mode="after")
    def validate_default_days(self) -> "ActivityConfig":
        """Ensure the default lookback is reachable."""
        if self.default_days > self.max_days:
            raise ValueError(
                f"default_days ({self.default_days}) exceeds max_days ({self.max_days})"
            )
        return self

    @property
    def thread_budget(self) -> int:
        """Scan budget for a thread in server-wide reports."""
        if self.max_messages_per_thread is not None:
            return self.max_messages_per_thread
        return max(1, self.max_messages_per_channel // 2)


class Config(BaseModel):
    """Root configuration for roletally."""

    log_level: str = "INFO"
    log_json: bool = True

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    role: RoleConfig = Field(default_factory=RoleConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @property
    def discord_token(self) -> str | None:
        """Get Discord token from environment."""
        return os.environ.get("DISCORD_TOKEN") or None

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls.model_validate(apply_env_overrides(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Environment overrides apply to the defaults as well.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(apply_env_overrides({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(apply_env_overrides({}))


# Environment variable -> (section, key). Section None means top level.
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "ROLETALLY_LOG_LEVEL": (None, "log_level"),
    "ROLETALLY_LOG_JSON": (None, "log_json"),
    "GUILD_ID": ("discord", "guild_id"),
    "ROLE_ID": ("role", "role_id"),
    "ROLE_NAME": ("role", "role_name"),
    "DEFAULT_DAYS": ("activity", "default_days"),
    "DAYS_LOOKBACK": ("activity", "default_days"),
    "MAX_FETCH": ("activity", "max_fetch"),
    "MAX_MESSAGES_PER_CHANNEL": ("activity", "max_messages_per_channel"),
    "INCLUDE_THREADS": ("activity", "include_threads"),
}

_BOOL_KEYS = {"log_json", "include_threads"}


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto a raw config mapping.

    Empty variables are ignored. Boolean values accept ``true`` (any case);
    anything else is false. Numeric values are left as strings for pydantic
    to coerce and validate.

    Args:
        raw: Mapping parsed from YAML. Not mutated.

    Returns:
        New mapping with overrides applied.
    """
    merged: dict[str, Any] = dict(raw)

    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value: Any = os.environ.get(env_var)
        if not value:
            continue
        if key in _BOOL_KEYS:
            value = value.strip().lower() == "true"

        if section is None:
            merged[key] = value
        else:
            nested = dict(merged.get(section) or {})
            nested[key] = value
            merged[section] = nested

    return merged
