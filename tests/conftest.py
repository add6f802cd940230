"""
Shared fixtures and helpers for the dlm agent tests.
"""

import asyncio
from datetime import UTC, datetime
import struct

import httpx
import pytest

from dlm_agent.ingestion.interfaces import (
    Chunk,
    EventType,
    FlushReason,
    ReaderEvent,
    SourceType,
)
from dlm_agent.ingestion.monitoring.metrics import MetricsCollector


def make_chunk(sequence: int = 1, content: str = "line\n", source_id: str = "file:/tmp/app.log") -> Chunk:
    """Build a chunk without going through a Chunker."""
    now = datetime.now(UTC)
    return Chunk(
        source_id=source_id,
        source_type=SourceType.FILE,
        sequence=sequence,
        content=content,
        size_bytes=len(content.encode("utf-8")),
        ts_start=now,
        ts_end=now,
        reason=FlushReason.MANUAL,
    )


def docker_frame(stream: int, payload: bytes) -> bytes:
    """Encode one frame of the Docker multiplexed log format."""
    return struct.pack(">BxxxL", stream, len(payload)) + payload


class ChunkedStream(httpx.AsyncByteStream):
    """Async body that yields the given pieces, then optionally fails."""

    def __init__(self, pieces: list[bytes], error: Exception | None = None) -> None:
        self.pieces = pieces
        self.error = error

    async def __aiter__(self):
        for piece in self.pieces:
            yield piece
        if self.error is not None:
            raise self.error


class StalledStream(httpx.AsyncByteStream):
    """Async body that yields the given pieces, then hangs until closed."""

    def __init__(self, pieces: list[bytes]) -> None:
        self.pieces = pieces
        self.closed = False

    async def __aiter__(self):
        for piece in self.pieces:
            yield piece
        await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


async def wait_for_event(reader, event_type: EventType, timeout: float = 5.0) -> list[ReaderEvent]:
    """Consume reader events up to and including the first of ``event_type``."""
    events: list[ReaderEvent] = []

    async def _collect() -> None:
        async for event in reader.events():
            events.append(event)
            if event.type == event_type:
                return

    await asyncio.wait_for(_collect(), timeout)
    return events


async def drain_events(reader) -> list[ReaderEvent]:
    """Collect every remaining event. Only terminates after ``reader.stop()``."""
    return [event async for event in reader.events()]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


def chunk_contents(events: list[ReaderEvent]) -> str:
    """Concatenate the content of every chunk event, in order."""
    return "".join(e.chunk.content for e in events if e.type == EventType.CHUNK)


@pytest.fixture
def metrics():
    return MetricsCollector()
