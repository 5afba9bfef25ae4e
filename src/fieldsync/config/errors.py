"""Configuration error definitions."""

from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigError(ConfigError):
    """Raised when required configuration values are absent or blank."""
