"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
A YAML file supplies defaults, environment variables override the file and
CLI flags override both.
"""

import json
import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError

from mqttsight.core.exceptions import ConfigurationError
from mqttsight.models.message import IncludeMode, PreserveMode, SortKey

DEFAULT_CONFIG_FILE = "mqttsight.yaml"

# Accepted spellings that map onto a canonical enum value
_ALIASES = {
    "topic": "label",
}

# Comma-separated in env vars; NoDecode hands the raw string to split_patterns
PatternList = Annotated[List[str], NoDecode]


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        if not os.path.exists(DEFAULT_CONFIG_FILE):
            return {}
        config_path = DEFAULT_CONFIG_FILE

    if not os.path.exists(config_path):
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            details={"path": config_path},
        )

    with open(config_path, "r") as f:
        try:
            config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Config file is not valid YAML: {config_path}",
                details={"path": config_path, "error": str(e)},
            ) from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping: {config_path}",
            details={"path": config_path},
        )
    return config_data


def split_patterns(v: Any) -> List[str]:
    """Accept a comma-separated string or a list of patterns."""
    if v is None:
        return []
    if isinstance(v, str):
        return [p.strip() for p in v.split(",") if p.strip()]
    return [str(p).strip() for p in v if str(p).strip()]


def _normalize_choice(v: Any) -> Any:
    if isinstance(v, str):
        lowered = v.strip().lower()
        return _ALIASES.get(lowered, lowered)
    return v


class BrokerSettings(BaseSettings):
    """Broker connection configuration."""

    host: str = Field(default="localhost", description="Broker host")
    port: int = Field(default=1883, ge=1, le=65535, description="Broker port")
    topic: str = Field(default="#", description="Subscription topic filter")
    username: Optional[str] = Field(default=None, description="Username for authentication")
    password: Optional[str] = Field(default=None, description="Password for authentication")
    client_id_prefix: str = Field(default="mqttsight", description="Prefix for the random client id")
    connect_timeout_seconds: float = Field(default=10.0, gt=0, description="Connection timeout")
    keepalive_seconds: int = Field(default=60, gt=0, description="MQTT keepalive interval")

    @model_validator(mode="after")
    def check_credentials(self) -> "BrokerSettings":
        """A password is only meaningful together with a username."""
        if self.password and not self.username:
            raise ValueError("Password provided without username")
        return self

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_BROKER_")


class FilterSettings(BaseSettings):
    """Include/exclude filtering configuration."""

    exclude: PatternList = Field(default_factory=list, description="Topics to drop (wildcards allowed)")
    include: PatternList = Field(default_factory=list, description="Topics/payloads to keep")
    mode: IncludeMode = Field(default=IncludeMode.BOTH, description="Where include patterns apply")

    @field_validator("exclude", "include", mode="before")
    def parse_patterns(cls, v: Any) -> List[str]:
        return split_patterns(v)

    @field_validator("mode", mode="before")
    def parse_mode(cls, v: Any) -> Any:
        return _normalize_choice(v)

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_FILTER_")


class MaskingSettings(BaseSettings):
    """Sensitive data masking configuration."""

    patterns: PatternList = Field(default_factory=list, description="Terms to mask in topics and payloads")
    preserve: PreserveMode = Field(default=PreserveMode.NONE, description="Characters left visible")

    @field_validator("patterns", mode="before")
    def parse_patterns(cls, v: Any) -> List[str]:
        return split_patterns(v)

    @field_validator("preserve", mode="before")
    def parse_preserve(cls, v: Any) -> Any:
        return _normalize_choice(v)

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_MASKING_")


class DisplaySettings(BaseSettings):
    """Table presentation configuration."""

    sort: SortKey = Field(default=SortKey.TIME, description="Initial sort order")
    live: bool = Field(default=False, description="Show non-retained messages too")
    clear_retained: bool = Field(default=False, description="Clear retained messages on receipt")
    topic_width: int = Field(default=60, description="Initial topic column width")
    payload_width: int = Field(default=40, description="Initial payload column width")
    min_topic_width: int = Field(default=30, description="Topic column floor")
    min_payload_width: int = Field(default=20, description="Payload column floor")
    width_step: int = Field(default=5, gt=0, description="Column width change per key press")
    detail_payload_cap: int = Field(default=1000, gt=0, description="Payload characters shown in detail view")

    @field_validator("sort", mode="before")
    def parse_sort(cls, v: Any) -> Any:
        return _normalize_choice(v)

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_DISPLAY_")


class SchedulerSettings(BaseSettings):
    """Render cadence and ingest buffering configuration."""

    interval_ms: int = Field(default=1000, gt=0, description="Standard redraw period")
    degraded_interval_ms: int = Field(default=15000, gt=0, description="Redraw period for large datasets")
    degrade_threshold: int = Field(default=1000, gt=0, description="Stored topics before slowing down")
    fast_feedback_labels: int = Field(default=10, ge=0, description="Render immediately below this many topics")
    batch_size: int = Field(default=10, gt=0, description="Messages applied per drain step")
    drain_delay_ms: int = Field(default=10, ge=0, description="Delay between drain steps")
    queue_high_water: int = Field(default=1000, gt=0, description="Queue length that triggers trimming")
    queue_low_water: int = Field(default=100, gt=0, description="Queue length kept after trimming")

    @model_validator(mode="after")
    def check_watermarks(self) -> "SchedulerSettings":
        if self.queue_low_water > self.queue_high_water:
            raise ValueError("queue_low_water must not exceed queue_high_water")
        return self

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_SCHEDULER_")


class Settings(BaseSettings):
    """Main application settings."""

    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="WARNING", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Write logs here instead of stderr")
    metrics_port: Optional[int] = Field(default=None, ge=1, le=65535, description="Serve Prometheus metrics")

    # Component settings
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    filter: FilterSettings = Field(default_factory=FilterSettings)
    masking: MaskingSettings = Field(default_factory=MaskingSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @field_validator("log_level", mode="before")
    def parse_log_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    model_config = SettingsConfigDict(env_prefix="MQTTSIGHT_", case_sensitive=False)


_SECTIONS = {
    "broker": BrokerSettings,
    "filter": FilterSettings,
    "masking": MaskingSettings,
    "display": DisplaySettings,
    "scheduler": SchedulerSettings,
}


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    for section, values in config_data.items():
        if section in _SECTIONS:
            if not isinstance(values, dict):
                continue
            for key, value in values.items():
                _set_env(f"MQTTSIGHT_{section}_{key}".upper(), value)
        else:
            _set_env(f"MQTTSIGHT_{section}".upper(), values)


def _set_env(env_var: str, value: Any) -> None:
    if env_var in os.environ or value is None:
        return
    # Pattern lists are read back by split_patterns, mappings are JSON-decoded
    if isinstance(value, list):
        os.environ[env_var] = ",".join(str(v) for v in value)
    elif isinstance(value, dict):
        os.environ[env_var] = json.dumps(value)
    else:
        os.environ[env_var] = str(value)


def build_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """
    Build settings from config file, environment and explicit overrides.

    Args:
        config_path: YAML file to read; defaults to ./mqttsight.yaml if present
        overrides: Values from the command line, nested by section name

    Raises:
        ConfigurationError: if any value fails validation
    """
    config_data = load_config_file(config_path)
    if config_data:
        _set_env_from_config(config_data)

    overrides = dict(overrides or {})
    try:
        sections = {
            name: section_cls(**overrides.pop(name, {}))
            for name, section_cls in _SECTIONS.items()
        }
        return Settings(**sections, **overrides)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(errors),
            details={"errors": errors},
        ) from e
    except SettingsError as e:
        raise ConfigurationError(f"Invalid environment configuration: {e}") from e
