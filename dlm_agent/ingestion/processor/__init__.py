# dlm_agent/ingestion/processor/__init__.py

"""
Line normalization, redaction and chunking.
"""

from .chunker import DEFAULT_MAX_AGE, DEFAULT_MAX_SIZE, Chunker
from .redactor import ANSI_PATTERN, DEFAULT_SECRET_PATTERNS, REDACTED, Redactor

__all__ = [
    "ANSI_PATTERN",
    "DEFAULT_MAX_AGE",
    "DEFAULT_MAX_SIZE",
    "DEFAULT_SECRET_PATTERNS",
    "REDACTED",
    "Chunker",
    "Redactor",
]
