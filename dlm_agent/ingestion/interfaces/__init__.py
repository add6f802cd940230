# dlm_agent/ingestion/interfaces/__init__.py

"""
Core interfaces for the log ingestion system.
"""

from .core import (
    Chunk,
    EventType,
    FlushReason,
    LogSourceReader,
    ReaderEvent,
    ReaderState,
    SourceHealth,
    SourceType,
)
from .errors import (
    ConfigurationError,
    LogIngestionError,
    SourceAlreadyRunningError,
    SourceConnectionError,
    SourceNotFoundError,
    SourceStreamError,
)
from .processor import ChunkProcessor, LoggingChunkProcessor, ProcessResult

__all__ = [
    # Core interfaces
    "Chunk",
    "EventType",
    "FlushReason",
    "LogSourceReader",
    "ReaderEvent",
    "ReaderState",
    "SourceHealth",
    "SourceType",
    # Downstream boundary
    "ChunkProcessor",
    "LoggingChunkProcessor",
    "ProcessResult",
    # Error handling
    "ConfigurationError",
    "LogIngestionError",
    "SourceAlreadyRunningError",
    "SourceConnectionError",
    "SourceNotFoundError",
    "SourceStreamError",
]
