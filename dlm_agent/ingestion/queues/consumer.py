# dlm_agent/ingestion/queues/consumer.py

"""
Drain loop that hands queued chunks to the downstream processor, gated by a
circuit breaker.
"""

import asyncio
import inspect
import logging
import time
from typing import Any

from ...config.ingestion_config import ConsumerSettings
from ...resilience.circuit_breaker import CircuitBreaker
from ..interfaces.core import Chunk
from ..interfaces.processor import ChunkProcessor, ProcessResult
from ..monitoring.metrics import (
    CHUNKS_DROPPED_TOTAL,
    CIRCUIT_REJECTIONS_TOTAL,
    MetricsCollector,
    record_processing_time,
    record_queue_size,
)
from .chunk_queue import ChunkQueue

logger = logging.getLogger(__name__)


class ChunkConsumer:
    """
    Single owner of the chunk queue and the circuit breaker.

    ``submit`` never blocks: chunks are rejected while the breaker refuses
    work and dropped when the queue is full. The drain task starts on the
    first accepted chunk and exits once the queue is empty.
    """

    def __init__(
        self,
        processor: ChunkProcessor,
        settings: ConsumerSettings | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.processor = processor
        self.settings = settings or ConsumerSettings()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="chunk-consumer")
        self.metrics = metrics or MetricsCollector()
        self.queue = ChunkQueue(max_size=self.settings.max_queue_size)

        self._drain_task: asyncio.Task | None = None
        self._stopped = False

        # Statistics
        self._processed = 0
        self._failed = 0
        self._rejected = 0

    @property
    def draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def submit(self, chunk: Chunk) -> bool:
        """
        Offer a chunk to the consumer.

        Returns:
            True if the chunk was queued, False if it was rejected or dropped
        """
        if self._stopped:
            logger.debug(f"Consumer stopped, ignoring chunk {chunk.chunk_id}")
            return False

        if not self.circuit_breaker.can_execute():
            self._rejected += 1
            self.metrics.increment_counter(CIRCUIT_REJECTIONS_TOTAL)
            logger.warning(
                f"Circuit breaker {self.circuit_breaker.state.value}, "
                f"rejecting chunk {chunk.chunk_id}"
            )
            return False

        if not self.queue.enqueue(chunk):
            self.metrics.increment_counter(CHUNKS_DROPPED_TOTAL)
            record_queue_size(self.metrics, self.queue.size())
            return False

        record_queue_size(self.metrics, self.queue.size())
        self._ensure_draining()
        return True

    async def wait_idle(self) -> None:
        """Wait until the drain loop has emptied the queue."""
        while self.draining:
            await asyncio.wait({self._drain_task})

    async def stop(self) -> None:
        """Cancel the drain loop and discard anything still queued."""
        self._stopped = True
        if self.draining:
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._drain_task = None

        cleared = self.clear()
        logger.info(f"Stopped chunk consumer ({cleared} queued chunks discarded)")

    def clear(self) -> int:
        """Drop every queued chunk and return how many were dropped."""
        cleared = self.queue.clear()
        record_queue_size(self.metrics, 0)
        return cleared

    def get_status(self) -> dict[str, Any]:
        stats = self.queue.get_stats()
        return {
            "queue_size": stats.current_size,
            "max_queue_size": self.queue.max_size,
            "draining": self.draining,
            "total_enqueued": stats.total_enqueued,
            "dropped": stats.dropped_count,
            "processed": self._processed,
            "failed": self._failed,
            "rejected": self._rejected,
            "circuit_breaker": self.circuit_breaker.get_stats(),
        }

    def _ensure_draining(self) -> None:
        if self.draining:
            return
        self._drain_task = asyncio.get_running_loop().create_task(
            self._drain(), name="chunk-consumer-drain"
        )

    async def _drain(self) -> None:
        while True:
            chunk = self.queue.dequeue()
            if chunk is None:
                break
            record_queue_size(self.metrics, self.queue.size())

            await self._process_one(chunk)
            await asyncio.sleep(self.settings.processing_delay)

        logger.debug("Chunk queue drained")

    async def _process_one(self, chunk: Chunk) -> None:
        started = time.perf_counter()
        try:
            result = self.processor.process(chunk)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result = ProcessResult(success=False, error=str(e))
        finally:
            record_processing_time(self.metrics, time.perf_counter() - started)

        if result is not None and result.success:
            self._processed += 1
            self.circuit_breaker.on_success()
            return

        self._failed += 1
        error = result.error if result is not None else "processor returned no result"
        logger.error(f"Processing chunk {chunk.chunk_id} failed: {error}")
        self.circuit_breaker.on_failure()
