"""Configuration management for the notification service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, validate_config_file
from .models import (
    NOTIFICATION_CATEGORIES,
    AppConfig,
    CompanyConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    NotificationSettings,
    ProviderConfig,
    ProviderKind,
    RateLimitConfig,
    RealtimeConfig,
    ReminderConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "ProviderConfig",
    "NotificationSettings",
    "RateLimitConfig",
    "RealtimeConfig",
    "CompanyConfig",
    "ReminderConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums and constants
    "ProviderKind",
    "LogLevel",
    "LogFormat",
    "NOTIFICATION_CATEGORIES",
    # Exceptions
    "ConfigurationError",
]
