"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import StorageConfig, get_database_uri, get_storage_config
from .tracker import TrackerConfig, default_github_resilience, get_tracker_config

__all__ = [
    "ConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "TrackerConfig",
    "configure_logging",
    "default_github_resilience",
    "get_database_uri",
    "get_storage_config",
    "get_tracker_config",
    "optional_env_var",
    "require_env_vars",
]
