# dlm_agent/ingestion/adapters/base.py

"""
Shared machinery for source readers: chunker ownership, the outbound event
channel, the read task and start/stop lifecycle.
"""

import asyncio
from abc import abstractmethod
from collections.abc import AsyncIterator
from datetime import UTC, datetime
import logging
from typing import Any

from ...config.ingestion_config import ChunkerSettings
from ..interfaces.core import (
    Chunk,
    EventType,
    LogSourceReader,
    ReaderEvent,
    ReaderState,
    SourceHealth,
    SourceType,
)
from ..monitoring.metrics import MetricsCollector, record_source_error
from ..processor.chunker import Chunker
from ..processor.redactor import Redactor

logger = logging.getLogger(__name__)

# Marks the end of the channel after stop()
_CLOSED = None


class LineSplitter:
    """Splits decoded text into complete lines, carrying partial lines over."""

    def __init__(self) -> None:
        self._carry = ""

    @property
    def pending(self) -> str:
        return self._carry

    def push(self, text: str) -> list[str]:
        """Return the complete lines in ``carry + text``."""
        data = self._carry + text
        lines = data.split("\n")
        self._carry = lines.pop()
        return [line.removesuffix("\r") for line in lines]

    def drain(self) -> str | None:
        """Return and clear the trailing partial line, if any."""
        carry, self._carry = self._carry, ""
        return carry or None


class BaseSourceReader(LogSourceReader):
    """
    Base class for container, file and URL readers.

    Subclasses implement ``_open`` (fail-fast validation/attach, called from
    ``start``) and ``_read_loop`` (the streaming task). Chunks produced by the
    owned Chunker are published in sequence order on a FIFO channel consumed
    through ``events()``.
    """

    def __init__(
        self,
        source_id: str,
        source_type: SourceType,
        chunker_settings: ChunkerSettings | None = None,
        metrics: MetricsCollector | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        self.source_id = source_id
        self.source_type = source_type
        self.metrics = metrics or MetricsCollector()
        settings = chunker_settings or ChunkerSettings()

        self.chunker = Chunker(
            source_id,
            source_type,
            max_age=settings.max_age,
            max_size=settings.max_size,
            on_chunk=self._publish_chunk,
            metrics=self.metrics,
            redactor=redactor,
        )
        self.state = ReaderState(source_id=source_id)

        self._channel: asyncio.Queue[ReaderEvent | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._opening = False
        self._stopped = False

        # Health tracking
        self._ended = False
        self._error_count = 0
        self._last_error: str | None = None
        self._last_chunk_time: datetime | None = None

    @property
    def running(self) -> bool:
        return self.state.running

    async def start(self) -> None:
        """Validate/attach, then launch the read loop and return."""
        if self.state.running or self._stopped or self._opening:
            return

        self._opening = True
        try:
            await self._open()
        finally:
            self._opening = False

        # stop() arrived while attaching; release what _open acquired
        if self._stopped:
            try:
                await self._close()
            finally:
                self.chunker.destroy()
                self._channel.put_nowait(_CLOSED)
                logger.info(f"Reader {self.source_id} stopped before it started")
            return

        self.state.running = True
        self.chunker.start()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"reader:{self.source_id}"
        )
        logger.info(f"Started reader {self.source_id}")

    async def stop(self) -> None:
        """Cancel the read loop, release resources and destroy the chunker."""
        if self._opening:
            self._stopped = True
            return
        if not self.state.running:
            return
        self.state.running = False
        self._stopped = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        try:
            await self._close()
        finally:
            self.chunker.destroy()
            self._channel.put_nowait(_CLOSED)
            logger.info(f"Stopped reader {self.source_id}")

    async def events(self) -> AsyncIterator[ReaderEvent]:
        """Yield events until the reader has been stopped."""
        while True:
            event = await self._channel.get()
            if event is _CLOSED:
                return
            yield event

    def flush(self) -> Chunk | None:
        return self.chunker.flush()

    def feed_line(self, line: str | bytes) -> Chunk | None:
        """Feed one raw line from the medium to the chunker."""
        return self.chunker.feed(line)

    async def health_check(self) -> SourceHealth:
        """Check the health status of the reader."""
        healthy = self.state.running and self._error_count == 0
        return SourceHealth(
            is_healthy=healthy,
            last_success=(
                self._last_chunk_time.isoformat() if self._last_chunk_time else None
            ),
            error_count=self._error_count,
            last_error=self._last_error,
            metrics=self.get_health_metrics(),
        )

    def get_health_metrics(self) -> dict[str, Any]:
        """Get detailed health and performance metrics."""
        return {
            "source_id": self.source_id,
            "source_type": self.source_type.value,
            "running": self.state.running,
            "ended": self._ended,
            "error_count": self._error_count,
            "last_error": self._last_error,
            "chunker": self.chunker.get_stats(),
        }

    @abstractmethod
    async def _open(self) -> None:
        """Fail-fast validation or attach. Runs inside ``start()``."""
        pass

    @abstractmethod
    async def _read_loop(self) -> None:
        """Stream lines from the medium into the chunker."""
        pass

    async def _close(self) -> None:
        """Release medium-specific resources. Runs inside ``stop()``."""
        return None

    async def _run(self) -> None:
        try:
            await self._read_loop()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(e)
        else:
            self._report_end()

    def _publish_chunk(self, chunk: Chunk) -> None:
        self._last_chunk_time = datetime.now(UTC)
        self._channel.put_nowait(
            ReaderEvent(type=EventType.CHUNK, source_id=self.source_id, chunk=chunk)
        )

    def _report_end(self) -> None:
        self._ended = True
        logger.info(f"Reader {self.source_id} reached end of stream")
        self._channel.put_nowait(
            ReaderEvent(type=EventType.END, source_id=self.source_id)
        )

    def _report_error(self, error: Exception) -> None:
        self._error_count += 1
        self._last_error = str(error)
        record_source_error(self.metrics, self.source_type.value)
        logger.error(f"Reader {self.source_id} failed: {error}")
        self._channel.put_nowait(
            ReaderEvent(type=EventType.ERROR, source_id=self.source_id, error=error)
        )
