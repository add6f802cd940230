# dlm_agent/config/__init__.py

"""
Configuration for the dlm agent.
"""

from .base import BaseConfig
from .errors import ConfigError, ConfigFileError, ConfigValidationError
from .ingestion_config import (
    AppConfig,
    ChunkerOverride,
    ChunkerSettings,
    CircuitBreakerSettings,
    ConsumerSettings,
    DockerSettings,
    FileReaderSettings,
    IngestionConfigManager,
    LoggingSettings,
    SourceKind,
    SourceSpec,
    UrlReaderSettings,
)

__all__ = [
    "AppConfig",
    "BaseConfig",
    "ChunkerOverride",
    "ChunkerSettings",
    "CircuitBreakerSettings",
    "ConfigError",
    "ConfigFileError",
    "ConfigValidationError",
    "ConsumerSettings",
    "DockerSettings",
    "FileReaderSettings",
    "IngestionConfigManager",
    "LoggingSettings",
    "SourceKind",
    "SourceSpec",
    "UrlReaderSettings",
]
