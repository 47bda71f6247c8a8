"""Configuration management for the notification engine."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config
from .models import (
    AppConfig,
    BatchConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NotificationsConfig,
    ProviderConfig,
    ProviderMode,
    RetryConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "BatchConfig",
    "EnvironmentConfig",
    "LoggingConfig",
    "NotificationsConfig",
    "ProviderConfig",
    "RetryConfig",
    # Enums
    "LogFormat",
    "LogLevel",
    "ProviderMode",
    # Exceptions
    "ConfigurationError",
]
