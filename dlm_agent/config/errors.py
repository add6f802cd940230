# dlm_agent/config/errors.py

"""
Errors raised while loading and validating agent configuration.
"""

from typing import Any

_MAX_INPUT_PREVIEW = 50


class ConfigError(Exception):
    """Base configuration error."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"[{self.path}]")
        if self.cause:
            parts.append(f"({type(self.cause).__name__}: {self.cause})")
        return " ".join(parts)


class ConfigValidationError(ConfigError):
    """Raised when a configuration document does not fit the AppConfig model."""

    def __init__(
        self, message: str, errors: list[dict[str, Any]], path: str | None = None
    ):
        super().__init__(message, path)
        self.errors = errors

    @staticmethod
    def _preview(value: Any) -> str:
        text = repr(value) if not isinstance(value, str) else value
        if len(text) > _MAX_INPUT_PREVIEW:
            text = text[: _MAX_INPUT_PREVIEW - 3] + "..."
        return text

    def format_errors(self) -> str:
        """Render one numbered line per invalid field."""
        lines = [f"Configuration validation failed in {self.path or '<input>'}:"]
        for number, error in enumerate(self.errors, 1):
            field = " -> ".join(str(part) for part in error.get("loc", ())) or "<root>"
            lines.append(f"  {number}. {field}: {error.get('msg', 'invalid value')}")
            if "input" in error:
                lines.append(f"     got: {self._preview(error['input'])}")
        return "\n".join(lines)

    def get_summary(self) -> str:
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        return f"{count} validation {noun} found"


class ConfigFileError(ConfigError):
    """The configuration file is missing, unreadable or not a mapping."""
