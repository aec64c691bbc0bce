"""
Key/value settings stores.

Stores are small and composable:

    InMemoryCache(EnvironmentOverride("TIDYMONSTER", JsonFileStore(path)))

- JsonFileStore persists a flat JSON object on disk
- EnvironmentOverride lets PREFIX_KEY environment variables win on reads
- InMemoryCache avoids re-reading the file for every lookup

Values are plain JSON types. Validation happens in models.py.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import SettingsError

logger = logging.getLogger(__name__)


ENV_PREFIX = "TIDYMONSTER"
CONFIG_PATH_ENV = "TIDYMONSTER_CONFIG"


class KeyValueStore(ABC):
    """Small persisted key/value store. read() returns None when absent."""

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def write(self, key: str, value: Any) -> None:
        pass


class JsonFileStore(KeyValueStore):
    """
    Flat JSON object in a single file.

    A missing file reads as empty. A corrupted file also reads as empty
    (with a warning) and is replaced on the next write.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._load().get(key)

    def write(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def _load(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupted settings file {self.path}: {e}")
            return {}
        except OSError as e:
            raise SettingsError(f"Cannot read settings file {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self.path}: not a JSON object")
            return {}
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never see a half-written file
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".settings-", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise SettingsError(f"Cannot write settings file {self.path}: {e}") from e


class EnvironmentOverride(KeyValueStore):
    """
    Environment variables override reads from the inner store.

    Key "tidy_all_users" with prefix "TIDYMONSTER" is overridden by
    TIDYMONSTER_TIDY_ALL_USERS. Writes always go to the inner store.
    """

    def __init__(self, prefix: str, inner: KeyValueStore, environ=None):
        self.prefix = prefix
        self.inner = inner
        self._environ = os.environ if environ is None else environ

    def env_name(self, key: str) -> str:
        return f"{self.prefix}_{key}".upper()

    def read(self, key: str) -> Optional[Any]:
        value = self._environ.get(self.env_name(key))
        if value is not None:
            return value
        return self.inner.read(key)

    def write(self, key: str, value: Any) -> None:
        self.inner.write(key, value)


class InMemoryCache(KeyValueStore):
    """Read-through, write-through cache over another store."""

    _MISSING = object()

    def __init__(self, inner: KeyValueStore):
        self.inner = inner
        self._cache: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._cache.get(key, self._MISSING)
        if value is not self._MISSING:
            return value

        value = self.inner.read(key)
        with self._lock:
            self._cache[key] = value
        return value

    def write(self, key: str, value: Any) -> None:
        self.inner.write(key, value)
        with self._lock:
            self._cache.pop(key, None)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()


def default_config_path() -> Path:
    """$TIDYMONSTER_CONFIG, else the per-user config directory."""
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override)

    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "tidymonster" / "settings.json"


def open_settings_store(path=None) -> KeyValueStore:
    """Standard store stack: cached, environment-overridable JSON file."""
    return InMemoryCache(
        EnvironmentOverride(ENV_PREFIX, JsonFileStore(path or default_config_path()))
    )
