"""
Tests for settings stores and the validated settings model.
"""

import json

import pytest

from tidymonster.retry import BackoffPolicy
from tidymonster.settings import (
    EnvironmentOverride,
    InMemoryCache,
    InvalidSettingError,
    JsonFileStore,
    KeyValueStore,
    SettingsError,
    ShortcutFilter,
    TidySettings,
    default_config_path,
    load_settings,
    open_settings_store,
    save_setting,
    save_settings,
)


class CountingStore(KeyValueStore):
    """Dict-backed store that counts reads."""

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.reads = 0

    def read(self, key):
        self.reads += 1
        return self.data.get(key)

    def write(self, key, value):
        self.data[key] = value


class TestJsonFileStore:
    """Tests for the on-disk store."""

    def test_missing_file_reads_as_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "absent.json")
        assert store.read("tidy_all_users") is None

    def test_write_then_read(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        store = JsonFileStore(path)

        store.write("search_pattern", "*.lnk")
        store.write("tidy_all_users", False)

        assert store.read("search_pattern") == "*.lnk"
        assert json.loads(path.read_text()) == {
            "search_pattern": "*.lnk",
            "tidy_all_users": False,
        }
        # No temporary files left behind
        assert [p.name for p in path.parent.iterdir()] == ["settings.json"]

    def test_corrupted_file_reads_as_empty_and_is_replaced(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        store = JsonFileStore(path)

        assert store.read("search_pattern") is None

        store.write("search_pattern", "*.url")
        assert json.loads(path.read_text()) == {"search_pattern": "*.url"}

    def test_non_object_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileStore(path).read("anything") is None

    def test_unwritable_location_raises_settings_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = JsonFileStore(blocker / "settings.json")

        with pytest.raises(SettingsError):
            store.write("search_pattern", "*.lnk")


class TestEnvironmentOverride:
    """Tests for environment variable overrides."""

    def test_environment_wins_on_read(self):
        inner = CountingStore({"search_pattern": "*.lnk"})
        store = EnvironmentOverride(
            "TIDYMONSTER", inner, environ={"TIDYMONSTER_SEARCH_PATTERN": "*.url"}
        )

        assert store.read("search_pattern") == "*.url"
        assert inner.reads == 0

    def test_falls_back_to_inner(self):
        inner = CountingStore({"search_pattern": "*.lnk"})
        store = EnvironmentOverride("TIDYMONSTER", inner, environ={})
        assert store.read("search_pattern") == "*.lnk"

    def test_writes_go_to_inner(self):
        inner = CountingStore()
        store = EnvironmentOverride("TIDYMONSTER", inner, environ={})

        store.write("tidy_all_users", False)

        assert inner.data == {"tidy_all_users": False}

    def test_env_name(self):
        store = EnvironmentOverride("TIDYMONSTER", CountingStore(), environ={})
        assert store.env_name("tidy_all_users") == "TIDYMONSTER_TIDY_ALL_USERS"

    def test_string_values_are_coerced_by_model(self):
        environ = {
            "TIDYMONSTER_TIDY_ALL_USERS": "false",
            "TIDYMONSTER_BACKOFF_MIN_SECONDS": "0.5",
        }
        store = EnvironmentOverride("TIDYMONSTER", CountingStore(), environ=environ)

        settings = load_settings(store)

        assert settings.tidy_all_users is False
        assert settings.backoff_min_seconds == 0.5


class TestInMemoryCache:
    """Tests for the read-through cache."""

    def test_reads_are_cached(self):
        inner = CountingStore({"search_pattern": "*.lnk"})
        cache = InMemoryCache(inner)

        assert cache.read("search_pattern") == "*.lnk"
        assert cache.read("search_pattern") == "*.lnk"
        assert inner.reads == 1

    def test_absent_keys_are_cached(self):
        inner = CountingStore()
        cache = InMemoryCache(inner)

        cache.read("user_desktop")
        cache.read("user_desktop")

        assert inner.reads == 1

    def test_write_invalidates_key(self):
        inner = CountingStore({"search_pattern": "*.lnk"})
        cache = InMemoryCache(inner)
        cache.read("search_pattern")

        cache.write("search_pattern", "*.url")

        assert cache.read("search_pattern") == "*.url"

    def test_invalidate_clears_everything(self):
        inner = CountingStore({"search_pattern": "*.lnk"})
        cache = InMemoryCache(inner)
        cache.read("search_pattern")

        inner.data["search_pattern"] = "*.url"
        cache.invalidate()

        assert cache.read("search_pattern") == "*.url"


class TestConfigPath:
    """Tests for locating the settings file."""

    def test_environment_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TIDYMONSTER_CONFIG", str(tmp_path / "custom.json"))
        assert default_config_path() == tmp_path / "custom.json"

    def test_default_ends_in_package_directory(self, monkeypatch):
        monkeypatch.delenv("TIDYMONSTER_CONFIG", raising=False)
        path = default_config_path()
        assert path.name == "settings.json"
        assert path.parent.name == "tidymonster"

    def test_open_settings_store_round_trip(self, monkeypatch, tmp_path):
        monkeypatch.delenv("TIDYMONSTER_SEARCH_PATTERN", raising=False)
        path = tmp_path / "settings.json"

        save_setting(open_settings_store(path), "search_pattern", "*.url")

        assert load_settings(open_settings_store(path)).search_pattern == "*.url"


class TestTidySettings:
    """Tests for defaults and validation."""

    def test_defaults(self):
        settings = load_settings(CountingStore())

        assert settings.tidy_all_users is True
        assert settings.shortcut_filter is ShortcutFilter.APPS
        assert settings.minimum_severity == "INFO"
        assert settings.backoff_policy() == BackoffPolicy(minimum=0.01, maximum=3600.0)
        assert settings.user_desktop is None

    def test_severity_is_normalized(self):
        assert TidySettings(minimum_severity=" warning ").minimum_severity == "WARNING"

    @pytest.mark.parametrize(
        "key, value",
        [
            ("minimum_severity", "LOUD"),
            ("search_pattern", "sub/*.lnk"),
            ("search_pattern", ""),
            ("shortcut_filter", "some"),
            ("backoff_min_seconds", 0),
            ("backoff_min_seconds", float("nan")),
            ("backoff_max_seconds", float("inf")),
            ("backoff_max_seconds", 1e10),
            ("tidy_all_users", "perhaps"),
        ],
    )
    def test_invalid_values_rejected(self, key, value):
        store = CountingStore()

        with pytest.raises(InvalidSettingError) as exc_info:
            save_setting(store, key, value)

        assert exc_info.value.key == key
        assert store.data == {}

    def test_longest_delay_accepted(self):
        settings = save_setting(CountingStore(), "backoff_max_seconds", 86400)

        assert settings.backoff_policy().maximum == 86400.0

    def test_unknown_key_rejected(self):
        with pytest.raises(InvalidSettingError):
            save_setting(CountingStore(), "colour", "green")

    def test_backoff_range_checked_against_current_values(self):
        store = CountingStore({"backoff_max_seconds": 10})

        with pytest.raises(InvalidSettingError):
            save_setting(store, "backoff_min_seconds", 20)

    def test_several_changes_validated_together(self):
        store = CountingStore()

        settings = save_settings(
            store, {"backoff_min_seconds": 5000, "backoff_max_seconds": 7200}
        )

        assert settings.backoff_policy() == BackoffPolicy(minimum=5000, maximum=7200)
        assert store.data == {"backoff_min_seconds": 5000.0, "backoff_max_seconds": 7200.0}

    def test_nothing_written_when_any_change_is_invalid(self):
        store = CountingStore()

        with pytest.raises(InvalidSettingError):
            save_settings(store, {"tidy_all_users": False, "minimum_severity": "LOUD"})

        assert store.data == {}

    def test_save_stores_json_value(self):
        store = CountingStore()

        settings = save_setting(store, "shortcut_filter", "all")

        assert settings.shortcut_filter is ShortcutFilter.ALL
        assert store.data == {"shortcut_filter": "all"}

    def test_invalid_stored_value_fails_load(self):
        store = CountingStore({"minimum_severity": "LOUD"})

        with pytest.raises(InvalidSettingError) as exc_info:
            load_settings(store)

        assert exc_info.value.key == "minimum_severity"
