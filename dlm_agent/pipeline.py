# dlm_agent/pipeline.py

"""
Wires the collector to the consumer: readers -> chunker -> queue -> processor.
"""

import asyncio
import logging
from typing import Any

from .config.ingestion_config import AppConfig, SourceSpec
from .ingestion.adapters.docker_api import DockerClient
from .ingestion.interfaces import ChunkProcessor, LoggingChunkProcessor, ReaderEvent
from .ingestion.manager import LogCollector
from .ingestion.monitoring.metrics import MetricsCollector
from .ingestion.processor.redactor import Redactor
from .ingestion.queues import ChunkConsumer
from .resilience import CircuitBreaker

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """One collector feeding one consumer, sharing a metrics sink."""

    def __init__(
        self,
        config: AppConfig | None = None,
        processor: ChunkProcessor | None = None,
        metrics: MetricsCollector | None = None,
        docker_client: DockerClient | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.metrics = metrics or MetricsCollector()
        self.processor = processor or LoggingChunkProcessor()

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.circuit_breaker.failure_threshold,
            recovery_timeout=self.config.circuit_breaker.recovery_timeout,
            name="downstream",
        )
        self.consumer = ChunkConsumer(
            self.processor,
            settings=self.config.consumer,
            circuit_breaker=self.circuit_breaker,
            metrics=self.metrics,
        )
        self.collector = LogCollector(
            callback=self.consumer.submit,
            config=self.config,
            metrics=self.metrics,
            docker_client=docker_client,
            on_event=self._on_reader_event,
            redactor=redactor,
        )

    async def start(self, spec: SourceSpec) -> list[str]:
        return await self.collector.start(spec)

    async def stop(self, drain: bool = True) -> None:
        """Stop the readers, optionally let the queue drain, then stop the consumer."""
        await self.collector.stop()
        if drain:
            await self.consumer.wait_idle()
        await self.consumer.stop()

    async def run(self, spec: SourceSpec, stop_event: asyncio.Event | None = None) -> None:
        """
        Run until every source has finished or ``stop_event`` is set.

        Follow-mode and container sources only finish on error, so those runs
        end through ``stop_event``.
        """
        await self.start(spec)

        waiters = [asyncio.create_task(self.collector.wait_finished())]
        if stop_event is not None:
            waiters.append(asyncio.create_task(stop_event.wait()))

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            await self.stop()

    def get_status(self) -> dict[str, Any]:
        return {
            "sources": self.collector.list_sources(),
            "consumer": self.consumer.get_status(),
            "metrics": self.metrics.get_metrics_summary(),
        }

    def _on_reader_event(self, event: ReaderEvent) -> None:
        logger.debug(f"Reader event {event.type.value} from {event.source_id}")
