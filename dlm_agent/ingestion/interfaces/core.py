# dlm_agent/ingestion/interfaces/core.py

"""
Core interfaces and data structures for log ingestion.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceType(str, Enum):
    """Supported log source types. Values double as metric labels."""

    DOCKER = "docker"
    FILE = "file"
    URL = "url"


class FlushReason(str, Enum):
    """Why a chunk buffer was flushed."""

    SIZE = "size"
    TIME = "time"
    MANUAL = "manual"
    DESTROY = "destroy"


@dataclass(frozen=True)
class Chunk:
    """A bounded, timestamped, redacted batch of log text."""

    source_id: str
    source_type: SourceType
    sequence: int
    content: str
    size_bytes: int
    ts_start: datetime
    ts_end: datetime
    reason: FlushReason

    @property
    def chunk_id(self) -> str:
        return f"{self.source_id}-{self.sequence}"

    def to_dict(self) -> dict[str, Any]:
        """Serializable view of the chunk."""
        return {
            "chunk_id": self.chunk_id,
            "source_id": self.source_id,
            "source_type": self.source_type.value,
            "sequence": self.sequence,
            "content": self.content,
            "size_bytes": self.size_bytes,
            "ts_start": self.ts_start.isoformat(),
            "ts_end": self.ts_end.isoformat(),
            "reason": self.reason.value,
        }


@dataclass
class ReaderState:
    """Per-source reader state. Cursors are process-local and never persisted."""

    source_id: str
    running: bool = False
    inode: int | None = None  # file readers
    offset: int = 0  # file readers
    bytes_read: int = 0  # url and container readers


class EventType(str, Enum):
    """Kinds of events published on a reader's outbound channel."""

    CHUNK = "chunk"
    END = "end"
    ERROR = "error"


@dataclass
class ReaderEvent:
    """An item on a reader's outbound channel."""

    type: EventType
    source_id: str
    chunk: Chunk | None = None
    error: Exception | None = None


@dataclass
class SourceHealth:
    """Health status for a log source."""

    is_healthy: bool
    last_success: str | None = None
    error_count: int = 0
    last_error: str | None = None
    metrics: dict[str, Any] = field(default_factory=dict)


class LogSourceReader(ABC):
    """Abstract interface shared by the container, file and URL readers."""

    source_id: str
    source_type: SourceType

    @abstractmethod
    async def start(self) -> None:
        """Begin streaming. Returns once the first read is underway."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Halt the read loop, release resources and destroy the chunker."""
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[ReaderEvent]:
        """Iterate over chunk, end and error events until the reader stops."""
        pass

    @abstractmethod
    def flush(self) -> Chunk | None:
        """Force a manual flush of the reader's buffered lines."""
        pass

    @abstractmethod
    async def health_check(self) -> SourceHealth:
        """Check the health status of the log source."""
        pass

    @abstractmethod
    def get_health_metrics(self) -> dict[str, Any]:
        """Get detailed health and performance metrics."""
        pass
