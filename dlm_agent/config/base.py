# dlm_agent/config/base.py

"""
Settings base shared by every configuration document.

Values can come from keyword arguments, a loaded file, or ``DLM_*``
environment variables (nested sections separated by ``__``, for example
``DLM_CHUNKER__MAX_SIZE``).
"""

import hashlib
import json

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_SCHEMA_VERSIONS = ("1.0.0",)


class BaseConfig(BaseSettings):
    """Environment-aware settings with a schema version and drift checksum."""

    model_config = SettingsConfigDict(
        env_prefix="DLM_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )

    schema_version: str = Field(
        default=SUPPORTED_SCHEMA_VERSIONS[-1],
        description="Version of the configuration layout",
    )
    validation_checksum: str | None = Field(
        default=None,
        description="Expected fingerprint of the remaining settings",
    )

    @field_validator("schema_version")
    @classmethod
    def check_schema_version(cls, v: str) -> str:
        if v not in SUPPORTED_SCHEMA_VERSIONS:
            supported = ", ".join(SUPPORTED_SCHEMA_VERSIONS)
            raise ValueError(f"schema version {v} is not one of: {supported}")
        return v

    def fingerprint(self) -> str:
        """SHA-256 over the canonical JSON form, excluding the checksum field."""
        payload = self.model_dump(mode="json", exclude={"validation_checksum"})
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def matches_checksum(self) -> bool:
        """True when no checksum is pinned or the pinned one still matches."""
        return self.validation_checksum in (None, self.fingerprint())
