"""
Tests for the bounded chunk queue and the consumer drain loop.

Tests cover:
- Capacity limits and FIFO order
- Drain loop start/stop and processor outcomes
- Circuit breaker gating of submissions
- Drop and rejection metrics
"""

import asyncio

import pytest

from conftest import make_chunk
from dlm_agent.config import ConsumerSettings
from dlm_agent.ingestion.interfaces import ProcessResult
from dlm_agent.ingestion.monitoring.metrics import (
    CHUNK_PROCESSING_SECONDS,
    CHUNK_QUEUE_SIZE,
    CHUNKS_DROPPED_TOTAL,
    CIRCUIT_REJECTIONS_TOTAL,
)
from dlm_agent.ingestion.queues import ChunkConsumer, ChunkQueue
from dlm_agent.resilience import CircuitBreaker, CircuitState

FAST = ConsumerSettings(max_queue_size=10, processing_delay=0)


class RecordingProcessor:
    """Processor that records chunks and can be told to fail."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.seen = []

    async def process(self, chunk):
        self.seen.append(chunk.sequence)
        if self.raise_error:
            raise RuntimeError("summarizer unavailable")
        if self.fail:
            return ProcessResult(success=False, error="rate limited")
        return ProcessResult(success=True)


# ============================================================================
# ChunkQueue Tests
# ============================================================================


def test_queue_rejects_beyond_capacity():
    """Test max_size + 1 enqueues accept exactly max_size."""
    queue = ChunkQueue(max_size=3)

    results = [queue.enqueue(make_chunk(i)) for i in range(1, 5)]

    assert results == [True, True, True, False]
    assert queue.size() == 3
    assert queue.is_full()
    assert queue.dropped_count == 1


def test_queue_is_fifo():
    """Test dequeue order matches enqueue order."""
    queue = ChunkQueue(max_size=5)
    for i in range(1, 4):
        queue.enqueue(make_chunk(i))

    assert [c.sequence for c in queue.peek(2)] == [1, 2]
    assert [queue.dequeue().sequence for _ in range(3)] == [1, 2, 3]
    assert queue.dequeue() is None
    assert queue.is_empty()


def test_queue_clear_and_stats():
    """Test clear() empties the queue and stats stay consistent."""
    queue = ChunkQueue(max_size=2)
    queue.enqueue(make_chunk(1))
    queue.enqueue(make_chunk(2))
    queue.dequeue()

    assert queue.clear() == 1
    stats = queue.get_stats()
    assert stats.total_enqueued == 2
    assert stats.total_dequeued == 1
    assert stats.current_size == 0
    assert stats.max_size_reached == 2


# ============================================================================
# ChunkConsumer Tests
# ============================================================================


@pytest.mark.asyncio
async def test_consumer_drains_in_order(metrics):
    """Test accepted chunks are processed in submission order."""
    processor = RecordingProcessor()
    consumer = ChunkConsumer(processor, settings=FAST, metrics=metrics)

    for i in range(1, 6):
        assert consumer.submit(make_chunk(i)) is True
    await consumer.wait_idle()

    assert processor.seen == [1, 2, 3, 4, 5]
    assert consumer.draining is False
    assert metrics.get_gauge(CHUNK_QUEUE_SIZE) == 0
    assert metrics.get_histogram_stats(CHUNK_PROCESSING_SECONDS)["count"] == 5
    assert consumer.get_status()["processed"] == 5


@pytest.mark.asyncio
async def test_drain_loop_restarts_after_idle():
    """Test a submit after the queue emptied starts a new drain."""
    processor = RecordingProcessor()
    consumer = ChunkConsumer(processor, settings=FAST)

    consumer.submit(make_chunk(1))
    await consumer.wait_idle()
    consumer.submit(make_chunk(2))
    await consumer.wait_idle()

    assert processor.seen == [1, 2]


@pytest.mark.asyncio
async def test_queue_full_drops_and_meters(metrics):
    """Test overflow is dropped, not raised."""
    processor = RecordingProcessor()
    settings = ConsumerSettings(max_queue_size=2, processing_delay=0)
    consumer = ChunkConsumer(processor, settings=settings, metrics=metrics)

    accepted = [consumer.submit(make_chunk(i)) for i in range(1, 4)]
    await consumer.wait_idle()

    assert accepted == [True, True, False]
    assert processor.seen == [1, 2]
    assert metrics.get_counter(CHUNKS_DROPPED_TOTAL) == 1


@pytest.mark.asyncio
async def test_failures_open_breaker_and_reject_submissions(metrics):
    """Test reported failures trip the breaker, which then gates admission."""
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
    processor = RecordingProcessor(fail=True)
    consumer = ChunkConsumer(processor, settings=FAST, circuit_breaker=breaker, metrics=metrics)

    consumer.submit(make_chunk(1))
    consumer.submit(make_chunk(2))
    await consumer.wait_idle()

    assert breaker.state == CircuitState.OPEN
    assert consumer.submit(make_chunk(3)) is False
    assert consumer.queue.size() == 0
    assert metrics.get_counter(CIRCUIT_REJECTIONS_TOTAL) == 1
    assert consumer.get_status()["failed"] == 2


@pytest.mark.asyncio
async def test_processor_exception_counts_as_failure():
    """Test a raising processor moves the breaker without killing the loop."""
    breaker = CircuitBreaker(failure_threshold=5)
    processor = RecordingProcessor(raise_error=True)
    consumer = ChunkConsumer(processor, settings=FAST, circuit_breaker=breaker)

    consumer.submit(make_chunk(1))
    consumer.submit(make_chunk(2))
    await consumer.wait_idle()

    assert processor.seen == [1, 2]
    assert breaker.failure_count == 2
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_success_resets_failure_count():
    """Test one success clears earlier failures."""
    breaker = CircuitBreaker(failure_threshold=3)
    processor = RecordingProcessor(fail=True)
    consumer = ChunkConsumer(processor, settings=FAST, circuit_breaker=breaker)

    consumer.submit(make_chunk(1))
    await consumer.wait_idle()
    processor.fail = False
    consumer.submit(make_chunk(2))
    await consumer.wait_idle()

    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_stop_discards_queued_chunks():
    """Test stop() cancels the drain loop and clears the queue."""
    release = asyncio.Event()

    class BlockingProcessor:
        async def process(self, chunk):
            await release.wait()
            return ProcessResult(success=True)

    consumer = ChunkConsumer(BlockingProcessor(), settings=FAST)
    for i in range(1, 4):
        consumer.submit(make_chunk(i))
    await asyncio.sleep(0.01)

    await consumer.stop()

    assert consumer.queue.size() == 0
    assert consumer.draining is False
    assert consumer.submit(make_chunk(4)) is False
