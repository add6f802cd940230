# dlm_agent/ingestion/interfaces/processor.py

"""
Boundary between the ingestion core and the downstream chunk consumer
(summarization, storage, search).
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Protocol, runtime_checkable

from .core import Chunk

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome reported by a downstream processor for one chunk."""

    success: bool
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ChunkProcessor(Protocol):
    """Protocol for anything that can take a chunk off the queue."""

    async def process(self, chunk: Chunk) -> ProcessResult:
        """Process one chunk and report success or failure."""
        ...


class LoggingChunkProcessor:
    """Processor that only logs the chunks it receives."""

    def __init__(self, preview_chars: int = 80) -> None:
        self.preview_chars = preview_chars
        self.processed = 0

    async def process(self, chunk: Chunk) -> ProcessResult:
        self.processed += 1
        preview = chunk.content[: self.preview_chars].replace("\n", " | ")
        logger.info(
            f"Chunk {chunk.chunk_id} ({chunk.size_bytes} bytes, reason={chunk.reason.value}): "
            f"{preview}"
        )
        return ProcessResult(success=True, detail={"chunk_id": chunk.chunk_id})
