"""Configuration management module for the deadline notifier."""

from .environment import EnvironmentConfig, is_valid_email, load_environment_config
from .exceptions import ConfigurationError
from .loader import apply_environment, load_config, validate_config_file
from .models import (
    AppConfig,
    DeadlineConfig,
    DeliveryConfig,
    DispatchConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    RecipientConfig,
    ScheduleConfig,
    split_addresses,
)

__all__ = [
    # Main loader functions
    "load_config",
    "validate_config_file",
    "load_environment_config",
    "apply_environment",
    # Configuration models
    "AppConfig",
    "ScheduleConfig",
    "DeadlineConfig",
    "RecipientConfig",
    "DeliveryConfig",
    "DispatchConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Helpers
    "is_valid_email",
    "split_addresses",
    # Exceptions
    "ConfigurationError",
]
