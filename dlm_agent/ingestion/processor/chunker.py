# dlm_agent/ingestion/processor/chunker.py

"""
Chunker buffers redacted log lines and emits chunks on size or age limits.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
import logging
import time
from typing import Any

from ..interfaces.core import Chunk, FlushReason, SourceType
from ..monitoring.metrics import (
    MetricsCollector,
    record_chunk_emitted,
    record_line_ingested,
)
from .redactor import Redactor

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 30.0  # seconds
# ~500 kB of text, sized for a summarization model's context window
DEFAULT_MAX_SIZE = 500_000


class Chunker:
    """
    Per-source buffer of redacted lines.

    A chunk is flushed when the buffered size reaches ``max_size`` (reason
    ``size``), when the age deadline passes (``time``), on request
    (``manual``) or on ``destroy()``. The age deadline is recomputed on every
    flush and checked by a ticker task that ``start()`` launches.
    """

    def __init__(
        self,
        source_id: str,
        source_type: SourceType,
        max_age: float = DEFAULT_MAX_AGE,
        max_size: int = DEFAULT_MAX_SIZE,
        on_chunk: Callable[[Chunk], None] | None = None,
        metrics: MetricsCollector | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        if max_age <= 0:
            raise ValueError("max_age must be positive")
        if max_size <= 0:
            raise ValueError("max_size must be positive")

        self.source_id = source_id
        self.source_type = source_type
        self.max_age = max_age
        self.max_size = max_size
        self.on_chunk = on_chunk
        self.metrics = metrics or MetricsCollector()
        self.redactor = redactor or Redactor()

        self._parts: list[str] = []
        self._size_bytes = 0
        self._sequence = 0
        self._ts_start: datetime | None = None
        self._deadline = time.monotonic() + self.max_age
        self._ticker: asyncio.Task | None = None
        self._destroyed = False

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def sequence(self) -> int:
        """Sequence number of the last emitted chunk (0 if none yet)."""
        return self._sequence

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def start(self) -> None:
        """Arm the age deadline and launch the ticker on the running loop."""
        if self._destroyed or self._ticker is not None:
            return
        self._rearm()
        self._ticker = asyncio.get_running_loop().create_task(
            self._tick_loop(), name=f"chunker-ticker:{self.source_id}"
        )

    def feed(self, line: str | bytes) -> Chunk | None:
        """
        Redact and buffer one line.

        Returns:
            The chunk flushed because the size limit was reached, else None
        """
        if self._destroyed:
            logger.debug(f"Chunker for {self.source_id} destroyed, ignoring line")
            return None

        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        else:
            # Lone surrogates (surrogateescape input) are not encodable
            line = line.encode("utf-8", errors="replace").decode("utf-8")
        if not line.endswith("\n"):
            line += "\n"

        redacted = self.redactor.redact(line)
        size = len(redacted.encode("utf-8"))

        if not self._parts:
            self._ts_start = datetime.now(UTC)
        self._parts.append(redacted)
        self._size_bytes += size
        record_line_ingested(self.metrics, self.source_type.value, size)

        if self._size_bytes >= self.max_size:
            return self.flush(FlushReason.SIZE)
        return None

    def flush(self, reason: FlushReason = FlushReason.MANUAL) -> Chunk | None:
        """Finalize the buffer into a chunk. An empty buffer is a no-op."""
        if self._size_bytes == 0:
            return None

        self._sequence += 1
        now = datetime.now(UTC)
        chunk = Chunk(
            source_id=self.source_id,
            source_type=self.source_type,
            sequence=self._sequence,
            content="".join(self._parts),
            size_bytes=self._size_bytes,
            ts_start=self._ts_start or now,
            ts_end=now,
            reason=reason,
        )

        self._parts = []
        self._size_bytes = 0
        self._ts_start = None
        self._rearm()

        logger.debug(
            f"Chunk flushed: {chunk.chunk_id} size={chunk.size_bytes} reason={reason.value}"
        )
        record_chunk_emitted(self.metrics, self.source_type.value)

        if self.on_chunk is not None:
            self.on_chunk(chunk)
        return chunk

    def destroy(self) -> Chunk | None:
        """Cancel the ticker and perform the final flush. Idempotent."""
        if self._destroyed:
            return None
        self._destroyed = True

        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

        return self.flush(FlushReason.DESTROY)

    def get_stats(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "buffered_bytes": self._size_bytes,
            "buffered_lines": len(self._parts),
            "chunks_emitted": self._sequence,
            "max_age": self.max_age,
            "max_size": self.max_size,
            "destroyed": self._destroyed,
        }

    def _rearm(self) -> None:
        self._deadline = time.monotonic() + self.max_age

    async def _tick_loop(self) -> None:
        """Sleep until the deadline, flush, repeat."""
        while not self._destroyed:
            delay = self._deadline - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
                continue

            try:
                if self.flush(FlushReason.TIME) is None:
                    self._rearm()
            except Exception as e:
                logger.error(f"Time flush failed for {self.source_id}: {e}")
                self._rearm()
