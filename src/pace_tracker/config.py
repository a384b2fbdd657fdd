"""Configuration models and helpers for the activity tracker."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError, InvalidTimeExpression
from .normalization import DEFAULT_SEPARATOR
from .paths import get_activity_log_path, get_config_path, get_db_path
from .store import ActivityStore, StorageKind, open_store
from .timing import TimeZoneSelection, parse_weekday

logger = logging.getLogger(__name__)


class GeneralConfig(BaseModel):
    """Settings shared by the lifecycle and review engines."""

    category_separator: str = Field(default=DEFAULT_SEPARATOR, min_length=1)
    default_category: str = Field(default="Uncategorized", min_length=1)
    default_time_zone: Optional[str] = None
    default_time_zone_offset: Optional[str] = None
    week_start: str = "monday"

    model_config = ConfigDict(extra="forbid")

    @field_validator("week_start")
    @classmethod
    def _check_week_start(cls, value: str) -> str:
        try:
            parse_weekday(value)
        except InvalidTimeExpression as exc:
            raise ValueError(str(exc)) from exc
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_time_zone(self) -> "GeneralConfig":
        if self.default_time_zone and self.default_time_zone_offset:
            raise ValueError(
                "default_time_zone and default_time_zone_offset are mutually exclusive"
            )
        return self

    @property
    def week_start_index(self) -> int:
        return parse_weekday(self.week_start)

    def time_zone_selection(
        self, tz_name: Optional[str] = None, tz_offset: Optional[str] = None
    ) -> TimeZoneSelection:
        """Explicit selections win over the configured default zone."""
        if tz_name or tz_offset:
            return TimeZoneSelection(tz_name=tz_name, tz_offset=tz_offset)
        return TimeZoneSelection(
            tz_name=self.default_time_zone, tz_offset=self.default_time_zone_offset
        )


class StorageConfig(BaseModel):
    kind: StorageKind = StorageKind.SQLITE
    path: Optional[Path] = None

    model_config = ConfigDict(extra="forbid")

    def resolved_path(self) -> Optional[Path]:
        if self.path is not None:
            return self.path.expanduser()
        if self.kind is StorageKind.SQLITE:
            return get_db_path()
        if self.kind is StorageKind.FILE:
            return get_activity_log_path()
        return None


class ReviewConfig(BaseModel):
    case_sensitive: bool = False

    model_config = ConfigDict(extra="forbid")


class PaceConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_toml(cls, text: str) -> "PaceConfig":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Optional[Path] = None) -> PaceConfig:
    """Read the config file; a missing default file yields the defaults."""
    config_path = Path(path).expanduser() if path else get_config_path()
    if not config_path.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {config_path}")
        logger.debug("No config file at %s; using defaults.", config_path)
        return PaceConfig()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {config_path}: {exc}") from exc
    logger.debug("Loaded configuration from %s", config_path)
    return PaceConfig.from_toml(text)


def open_configured_store(config: PaceConfig) -> ActivityStore:
    return open_store(config.storage.kind, config.storage.resolved_path())
