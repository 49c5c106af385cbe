"""
Configuration for the tracker.

Loads settings from environment variables and an optional .env file.
get_settings() is the single source of truth for service configuration.
"""

from sol_tracker.config.settings import TrackerSettings, get_settings  # noqa: F401

__all__ = ["TrackerSettings", "get_settings"]
