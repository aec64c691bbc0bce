"""
Settings model.

All settings are validated with Pydantic. Stored values may come from JSON
or from environment variables (strings), so normal Pydantic coercion
applies: "true" -> True, "0.5" -> 0.5.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..retry.backoff import (
    DEFAULT_MAX_SECONDS,
    DEFAULT_MIN_SECONDS,
    LONGEST_DELAY_SECONDS,
    BackoffPolicy,
)
from .errors import InvalidSettingError
from .store import KeyValueStore

logger = logging.getLogger(__name__)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ShortcutFilter(str, Enum):
    """Which shortcuts get tidied."""

    ALL = "all"  # Every file matching the search pattern
    APPS = "apps"  # Only shortcuts that launch an application


def default_search_pattern() -> str:
    return "*.lnk" if os.name == "nt" else "*.desktop"


class TidySettings(BaseModel):
    """
    Operator settings.

    Desktop and filter settings are read fresh at the start of every run,
    so changes apply on the next run. The backoff range is read once, when
    the orchestrator is built.
    """

    model_config = ConfigDict(extra="forbid")

    tidy_all_users: bool = Field(
        default=True, description="Also tidy the desktop shared by all users"
    )
    shortcut_filter: ShortcutFilter = Field(
        default=ShortcutFilter.APPS, description="Which shortcuts to delete"
    )
    search_pattern: str = Field(
        default_factory=default_search_pattern,
        min_length=1,
        description="Glob matched against file names on the desktop",
    )
    minimum_severity: str = Field(
        default="INFO", description="Lowest log level that is recorded"
    )
    backoff_min_seconds: float = Field(
        default=DEFAULT_MIN_SECONDS,
        gt=0,
        le=LONGEST_DELAY_SECONDS,
        allow_inf_nan=False,
        description="Delay before the first retry",
    )
    backoff_max_seconds: float = Field(
        default=DEFAULT_MAX_SECONDS,
        gt=0,
        le=LONGEST_DELAY_SECONDS,
        allow_inf_nan=False,
        description="Longest delay between retries",
    )
    user_desktop: Optional[str] = Field(
        default=None, description="Override for the current user's desktop"
    )
    common_desktop: Optional[str] = Field(
        default=None, description="Override for the all-users desktop"
    )

    @field_validator("minimum_severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v} (expected one of {', '.join(LOG_LEVELS)})")
        return level

    @field_validator("search_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError(f"Search pattern must be a file name pattern: {v}")
        return v

    @model_validator(mode="after")
    def validate_backoff_range(self) -> "TidySettings":
        if self.backoff_max_seconds < self.backoff_min_seconds:
            raise ValueError(
                f"backoff_max_seconds ({self.backoff_max_seconds}) is below "
                f"backoff_min_seconds ({self.backoff_min_seconds})"
            )
        return self

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            minimum=self.backoff_min_seconds, maximum=self.backoff_max_seconds
        )


SETTING_KEYS = tuple(TidySettings.model_fields)


def load_settings(store: KeyValueStore) -> TidySettings:
    """
    Read every known key from `store` and validate.

    Absent keys take their defaults.

    Raises:
        InvalidSettingError: If a stored value fails validation
    """
    stored = {}
    for key in SETTING_KEYS:
        value = store.read(key)
        if value is not None:
            stored[key] = value

    try:
        return TidySettings(**stored)
    except ValidationError as e:
        raise _invalid(e) from e


def save_settings(store: KeyValueStore, changes: Dict[str, Any]) -> TidySettings:
    """
    Validate `changes` together with the other current settings, then
    persist them. Nothing is written unless every change is valid.

    Returns:
        The settings as they are after the write

    Raises:
        InvalidSettingError: If a key is unknown or a value is invalid
    """
    for key in changes:
        if key not in SETTING_KEYS:
            raise InvalidSettingError(key, "unknown setting")

    current = load_settings(store).model_dump()
    current.update(changes)
    try:
        updated = TidySettings(**current)
    except ValidationError as e:
        raise _invalid(e) from e

    stored = updated.model_dump(mode="json")
    for key in changes:
        store.write(key, stored[key])
        logger.info(f"Setting '{key}' changed to {getattr(updated, key)!r}")
    return updated


def save_setting(store: KeyValueStore, key: str, value: Any) -> TidySettings:
    """Validate and persist a single setting. See save_settings()."""
    return save_settings(store, {key: value})


def _invalid(error: ValidationError) -> InvalidSettingError:
    first = error.errors()[0]
    key = ".".join(str(part) for part in first.get("loc", ())) or "settings"
    return InvalidSettingError(key, first.get("msg", str(error)))
