# dlm_agent/ingestion/__init__.py

"""
Log Ingestion System

Readers for containers, files and URLs feed per-source chunkers; chunks are
fanned in by the collector and handed to a bounded, breaker-gated consumer.
"""

from .adapters import (
    ContainerSourceReader,
    DockerClient,
    FileSourceReader,
    URLSourceReader,
)
from .interfaces import (
    Chunk,
    ChunkProcessor,
    ConfigurationError,
    EventType,
    FlushReason,
    LogIngestionError,
    LogSourceReader,
    ProcessResult,
    ReaderEvent,
    SourceAlreadyRunningError,
    SourceConnectionError,
    SourceHealth,
    SourceNotFoundError,
    SourceStreamError,
    SourceType,
)
from .manager import LogCollector
from .processor import Chunker, Redactor
from .queues import ChunkConsumer, ChunkQueue, QueueStats

__all__ = [
    # Core interfaces
    "Chunk",
    "EventType",
    "FlushReason",
    "LogSourceReader",
    "ReaderEvent",
    "SourceHealth",
    "SourceType",
    "ChunkProcessor",
    "ProcessResult",
    # Error handling
    "ConfigurationError",
    "LogIngestionError",
    "SourceAlreadyRunningError",
    "SourceConnectionError",
    "SourceNotFoundError",
    "SourceStreamError",
    # Readers
    "ContainerSourceReader",
    "DockerClient",
    "FileSourceReader",
    "URLSourceReader",
    # Processing
    "Chunker",
    "ChunkConsumer",
    "ChunkQueue",
    "LogCollector",
    "QueueStats",
    "Redactor",
]
