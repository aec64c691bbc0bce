"""
Settings error types.
"""


class SettingsError(Exception):
    """Base exception for settings storage failures."""

    pass


class InvalidSettingError(SettingsError):
    """A stored or submitted setting failed validation."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid setting '{key}': {reason}")
