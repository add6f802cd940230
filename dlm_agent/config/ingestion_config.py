# dlm_agent/config/ingestion_config.py

"""
Configuration management for the log ingestion pipeline.

This module provides the settings models for chunking, the three reader
variants, the chunk consumer and its circuit breaker, plus the source
specification that tells the collector what to attach to.
"""

from enum import Enum
import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
import yaml

from .base import BaseConfig
from .errors import ConfigError, ConfigFileError, ConfigValidationError

logger = logging.getLogger(__name__)

SourceTypeName = Literal["docker", "file", "url"]


class ChunkerSettings(BaseModel):
    """Size and age limits for a chunk buffer."""

    model_config = ConfigDict(extra="forbid")

    max_age: float = Field(default=30.0, gt=0, description="Seconds before a time flush")
    max_size: int = Field(default=500_000, gt=0, description="Bytes before a size flush")


class ChunkerOverride(BaseModel):
    """Per source-type override of the chunker limits."""

    model_config = ConfigDict(extra="forbid")

    max_age: float | None = Field(default=None, gt=0)
    max_size: int | None = Field(default=None, gt=0)


class FileReaderSettings(BaseModel):
    """Configuration for file sources."""

    model_config = ConfigDict(extra="forbid")

    poll_interval: float = Field(default=1.0, gt=0)
    encoding: str = "utf-8"
    read_block_size: int = Field(default=64 * 1024, gt=0)


class UrlReaderSettings(BaseModel):
    """Configuration for HTTP(S) sources."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0, description="Linear backoff step")
    timeout: float = Field(default=30.0, gt=0)


class DockerSettings(BaseModel):
    """How to reach the Docker Engine API."""

    model_config = ConfigDict(extra="forbid")

    socket_path: str | None = "/var/run/docker.sock"
    base_url: str = "http://docker"
    api_version: str | None = None
    timeout: float = Field(default=30.0, gt=0)


class ConsumerSettings(BaseModel):
    """Bounded queue and drain loop settings."""

    model_config = ConfigDict(extra="forbid")

    max_queue_size: int = Field(default=1000, gt=0)
    processing_delay: float = Field(default=0.01, ge=0)


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker guarding the downstream processor."""

    model_config = ConfigDict(extra="forbid")

    failure_threshold: int = Field(default=5, gt=0)
    recovery_timeout: float = Field(default=300.0, gt=0)


class LoggingSettings(BaseModel):
    """Process logging settings."""

    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    json_format: bool = False

    @model_validator(mode="after")
    def _normalize_level(self) -> "LoggingSettings":
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = self.level.upper()
        if level not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        self.level = level
        return self


class AppConfig(BaseConfig):
    """Complete configuration for the ingestion pipeline."""

    chunker: ChunkerSettings = Field(default_factory=ChunkerSettings)
    source_overrides: dict[SourceTypeName, ChunkerOverride] = Field(
        default_factory=dict
    )
    file: FileReaderSettings = Field(default_factory=FileReaderSettings)
    url: UrlReaderSettings = Field(default_factory=UrlReaderSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    consumer: ConsumerSettings = Field(default_factory=ConsumerSettings)
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def chunker_settings_for(self, source_type: str) -> ChunkerSettings:
        """Effective chunker limits for a source type."""
        override = self.source_overrides.get(source_type)  # type: ignore[call-overload]
        if override is None:
            return self.chunker
        return self.chunker.model_copy(
            update=override.model_dump(exclude_none=True)
        )


class SourceKind(str, Enum):
    """The four mutually exclusive source specifications."""

    ALL_CONTAINERS = "all_containers"
    CONTAINER_LABELS = "container_labels"
    FILE = "file"
    URL = "url"


class SourceSpec(BaseModel):
    """What the collector should attach to. Exactly one option may be set."""

    model_config = ConfigDict(extra="forbid")

    all_containers: bool = False
    labels: dict[str, str] | None = None
    file: str | None = None
    follow: bool = False
    url: str | None = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> "SourceSpec":
        selected = [
            name
            for name, chosen in (
                ("all_containers", self.all_containers),
                ("labels", self.labels is not None),
                ("file", self.file is not None),
                ("url", self.url is not None),
            )
            if chosen
        ]
        if len(selected) != 1:
            raise ValueError(
                "Exactly one of all_containers, labels, file or url must be set "
                f"(got: {', '.join(selected) or 'none'})"
            )
        if self.follow and self.file is None:
            raise ValueError("follow is only valid together with file")
        if self.labels is not None and not self.labels:
            raise ValueError("labels must contain at least one key=value pair")
        if self.file is not None and not self.file.strip():
            raise ValueError("file must not be empty")
        return self

    @property
    def kind(self) -> SourceKind:
        if self.file is not None:
            return SourceKind.FILE
        if self.url is not None:
            return SourceKind.URL
        if self.labels is not None:
            return SourceKind.CONTAINER_LABELS
        return SourceKind.ALL_CONTAINERS

    @staticmethod
    def parse_labels(pairs: list[str] | tuple[str, ...]) -> dict[str, str]:
        """Parse ``key=value`` strings into a label filter."""
        labels: dict[str, str] = {}
        for pair in pairs:
            key, sep, value = pair.partition("=")
            if not sep or not key:
                raise ValueError(f"Invalid label filter '{pair}', expected key=value")
            labels[key] = value
        return labels


class IngestionConfigManager:
    """Manager for configuration loading and validation."""

    def __init__(self, config_path: str | Path | None = None) -> None:
        """Initialize the config manager."""
        self.config_path = Path(config_path) if config_path else None
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = AppConfig()
        return self._config

    def load_config(self, config_path: str | Path | None = None) -> AppConfig:
        """Load configuration from a YAML or JSON file."""
        if config_path:
            self.config_path = Path(config_path)

        if not self.config_path or not self.config_path.exists():
            raise ConfigFileError(
                "Configuration file not found",
                str(self.config_path) if self.config_path else None,
            )

        data = self._read_file(self.config_path)
        self._config = self.parse_config(data, str(self.config_path))
        logger.info(f"Loaded configuration from {self.config_path}")
        return self._config

    def parse_config(
        self, data: dict[str, Any], config_file: str | None = None
    ) -> AppConfig:
        """Validate raw configuration data into an AppConfig."""
        try:
            return AppConfig(**data)
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid configuration: {e.error_count()} error(s)",
                [dict(err) for err in e.errors()],
                config_file,
            ) from e

    def _read_file(self, path: Path) -> dict[str, Any]:
        suffix = path.suffix.lower()
        try:
            with open(path) as f:
                if suffix in [".yaml", ".yml"]:
                    data = yaml.safe_load(f)
                elif suffix == ".json":
                    data = json.load(f)
                else:
                    raise ConfigFileError(
                        f"Unsupported config file format: {path.suffix}", str(path)
                    )
        except ConfigError:
            raise
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigFileError(
                "Failed to read configuration", str(path), e
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigFileError(
                f"Top-level structure must be a mapping, got {type(data).__name__}",
                str(path),
            )
        return data

    def save_config(self, config: AppConfig, output_path: str | Path) -> None:
        """Save configuration to a YAML or JSON file."""
        output_path = Path(output_path)
        data = config.model_dump(mode="json", exclude_none=True)

        with open(output_path, "w") as f:
            if output_path.suffix.lower() == ".json":
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
