# dlm_agent/ingestion/processor/redactor.py

"""
Redactor normalizes raw log lines and removes secrets before buffering.
"""

from collections.abc import Iterable
import logging
import re

logger = logging.getLogger(__name__)

REDACTED = "**REDACTED**"

# CSI SGR sequences, e.g. "\x1b[31m"
ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Applied in order; each rule also sees the output of the previous ones.
DEFAULT_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"AKIA[0-9A-Z]{16}"),  # AWS access key id
    re.compile(r"[A-Fa-f0-9]{12,}"),  # hex runs of 12+ chars
    re.compile(r"ey[A-Za-z0-9_-]{20,}"),  # JWT-like base64url tokens
)


class Redactor:
    """Strips ANSI escapes and applies ordered secret-redaction rules."""

    def __init__(
        self,
        patterns: Iterable[re.Pattern[str] | str] | None = None,
        replacement: str = REDACTED,
    ) -> None:
        source = DEFAULT_SECRET_PATTERNS if patterns is None else patterns
        self.patterns = [
            p if isinstance(p, re.Pattern) else re.compile(p) for p in source
        ]
        self.replacement = replacement

    def redact(self, line: str) -> str:
        """Return the line with ANSI codes stripped and secrets replaced."""
        redacted = ANSI_PATTERN.sub("", line)
        for pattern in self.patterns:
            redacted = pattern.sub(self.replacement, redacted)
        return redacted

    def get_stats(self) -> dict[str, object]:
        return {
            "patterns_count": len(self.patterns),
            "replacement": self.replacement,
        }
