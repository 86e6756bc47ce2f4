"""Unified configuration management for phase timing.

This module provides a single source of truth for all configuration,
integrating environment variables, .env files, and defaults.
"""

from phase_timing.config.env_loader import Environment, get_environment, load_env_files
from phase_timing.config.settings import (
    TimingConfig,
    get_settings,
    load_app_config,
    reset_settings,
)

__all__ = [
    "TimingConfig",
    "get_settings",
    "load_app_config",
    "reset_settings",
    "Environment",
    "get_environment",
    "load_env_files",
]
