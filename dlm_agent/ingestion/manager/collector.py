# dlm_agent/ingestion/manager/collector.py

"""
LogCollector builds readers for a source specification and fans their chunks
into a single callback.
"""

import asyncio
from collections.abc import Awaitable, Callable
import inspect
import logging
from typing import Any

from ...config.ingestion_config import AppConfig, SourceKind, SourceSpec
from ..adapters.base import BaseSourceReader
from ..adapters.container import ContainerSourceReader
from ..adapters.docker_api import DockerClient
from ..adapters.file_system import FileSourceReader
from ..adapters.url import URLSourceReader
from ..interfaces import (
    Chunk,
    EventType,
    ReaderEvent,
    SourceAlreadyRunningError,
    SourceHealth,
    SourceNotFoundError,
    SourceType,
)
from ..monitoring.metrics import MetricsCollector
from ..processor.redactor import Redactor

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[Chunk], None] | Callable[[Chunk], Awaitable[None]]
EventCallback = Callable[[ReaderEvent], None] | Callable[[ReaderEvent], Awaitable[None]]


class LogCollector:
    """
    Owns the readers for one source specification.

    Each reader gets a forwarding task that delivers its chunks, in sequence
    order, to ``callback``. Chunks from different readers interleave freely.
    """

    def __init__(
        self,
        callback: ChunkCallback | None = None,
        config: AppConfig | None = None,
        metrics: MetricsCollector | None = None,
        docker_client: DockerClient | None = None,
        on_event: EventCallback | None = None,
        redactor: Redactor | None = None,
    ):
        self.callback = callback
        self.on_event = on_event
        self.config = config or AppConfig()
        self.metrics = metrics or MetricsCollector()
        self.redactor = redactor

        self.readers: dict[str, BaseSourceReader] = {}
        self.tasks: dict[str, asyncio.Task] = {}
        self.running = False
        self.spec: SourceSpec | None = None

        self._docker_client = docker_client
        self._owns_docker_client = docker_client is None
        self._starting = False
        self._stop_requested = False
        self._start_done = asyncio.Event()
        self._start_done.set()
        self._finished: set[str] = set()
        self._all_finished = asyncio.Event()

    async def start(self, spec: SourceSpec) -> list[str]:
        """
        Build and start every reader for ``spec``.

        Returns:
            The source ids that were started

        Raises:
            SourceAlreadyRunningError: If the collector is already running
            LogIngestionError: If any reader fails to start; readers started
                before the failure are stopped again
        """
        if self.running:
            raise SourceAlreadyRunningError("LogCollector is already running")

        self.running = True
        self.spec = spec
        self._finished.clear()
        self._all_finished.clear()

        self._starting = True
        self._stop_requested = False
        self._start_done.clear()
        try:
            for reader in await self._build_readers(spec):
                if self._stop_requested:
                    break
                await reader.start()
                self.readers[reader.source_id] = reader
                self.tasks[reader.source_id] = asyncio.create_task(
                    self._forward_events(reader), name=f"forward:{reader.source_id}"
                )

            if self._stop_requested:
                logger.info("LogCollector stopped while starting")
                await self._teardown()
                return []
        except Exception as e:
            logger.error(f"Failed to start sources for {spec.kind.value}: {e}")
            await self._teardown()
            raise
        finally:
            self._starting = False
            self._start_done.set()

        if not self.readers:
            logger.warning(f"No sources matched {spec.kind.value}")
        if self._finished >= set(self.readers):
            self._all_finished.set()

        logger.info(f"LogCollector started with {len(self.readers)} source(s)")
        return self.list_sources()

    async def stop(self) -> None:
        """
        Stop all readers gracefully. Does nothing when not running.

        A stop issued while ``start()`` is in flight waits for that start to
        wind down; any reader it already started is stopped with the rest.
        """
        if self._starting:
            self._stop_requested = True
            await self._start_done.wait()
        if not self.running:
            return
        await self._teardown()
        logger.info("LogCollector stopped")

    async def wait_finished(self) -> None:
        """Wait until every reader has reported END or ERROR."""
        await self._all_finished.wait()

    def flush_all(self) -> list[Chunk]:
        """Manually flush every reader's pending buffer."""
        chunks = []
        for reader in self.readers.values():
            chunk = reader.flush()
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def get_reader(self, source_id: str) -> BaseSourceReader:
        """Get a specific reader by source id."""
        if source_id not in self.readers:
            raise SourceNotFoundError(f"Source '{source_id}' not found")
        return self.readers[source_id]

    def list_sources(self) -> list[str]:
        """List all source ids."""
        return list(self.readers.keys())

    async def get_health_status(self) -> dict[str, SourceHealth]:
        """Get health status of all sources."""
        health_status = {}
        for source_id, reader in self.readers.items():
            try:
                health_status[source_id] = await reader.health_check()
            except Exception as e:
                health_status[source_id] = SourceHealth(
                    is_healthy=False, last_error=str(e)
                )
        return health_status

    async def get_metrics(self) -> dict[str, Any]:
        """Get collector, per-source and ingestion metrics."""
        return {
            "collector": {
                "running": self.running,
                "source_kind": self.spec.kind.value if self.spec else None,
                "total_sources": len(self.readers),
                "finished_sources": len(self._finished),
            },
            "sources": {
                source_id: reader.get_health_metrics()
                for source_id, reader in self.readers.items()
            },
            "ingestion": self.metrics.get_metrics_summary(),
        }

    async def _build_readers(self, spec: SourceSpec) -> list[BaseSourceReader]:
        kind = spec.kind

        if kind == SourceKind.FILE:
            return [
                FileSourceReader(
                    spec.file,
                    follow=spec.follow,
                    settings=self.config.file,
                    chunker_settings=self.config.chunker_settings_for(
                        SourceType.FILE.value
                    ),
                    metrics=self.metrics,
                    redactor=self.redactor,
                )
            ]

        if kind == SourceKind.URL:
            return [
                URLSourceReader(
                    spec.url,
                    settings=self.config.url,
                    chunker_settings=self.config.chunker_settings_for(
                        SourceType.URL.value
                    ),
                    metrics=self.metrics,
                    redactor=self.redactor,
                )
            ]

        # Containers are discovered once; later arrivals are not picked up
        client = self._get_docker_client()
        labels = spec.labels if kind == SourceKind.CONTAINER_LABELS else None
        containers = await client.list_containers(labels=labels)
        logger.info(f"Discovered {len(containers)} running container(s)")

        chunker_settings = self.config.chunker_settings_for(SourceType.DOCKER.value)
        return [
            ContainerSourceReader(
                client,
                info,
                chunker_settings=chunker_settings,
                metrics=self.metrics,
                redactor=self.redactor,
            )
            for info in containers
        ]

    def _get_docker_client(self) -> DockerClient:
        if self._docker_client is None:
            self._docker_client = DockerClient(self.config.docker)
        return self._docker_client

    async def _forward_events(self, reader: BaseSourceReader) -> None:
        """Deliver one reader's events until its channel closes."""
        logger.debug(f"Starting event forwarding for source '{reader.source_id}'")

        async for event in reader.events():
            if event.type == EventType.CHUNK:
                await self._deliver(self.callback, event.chunk, reader.source_id)
                continue

            if event.type == EventType.ERROR:
                logger.error(f"Source '{reader.source_id}' failed: {event.error}")
            else:
                logger.info(f"Source '{reader.source_id}' ended")

            self._mark_finished(reader.source_id)
            await self._deliver(self.on_event, event, reader.source_id)

    async def _deliver(self, callback: Callable | None, item: Any, source_id: str) -> None:
        if callback is None:
            return
        try:
            result = callback(item)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in callback for source '{source_id}': {e}")

    def _mark_finished(self, source_id: str) -> None:
        self._finished.add(source_id)
        if not self._starting and self._finished >= set(self.readers):
            self._all_finished.set()

    async def _teardown(self) -> None:
        self.running = False

        for source_id, reader in self.readers.items():
            try:
                await reader.stop()
            except Exception as e:
                logger.error(f"Error stopping source '{source_id}': {e}")
                # Its channel may never close, so the forwarder cannot finish
                forwarder = self.tasks.get(source_id)
                if forwarder is not None:
                    forwarder.cancel()

        # Forwarders exit once each channel is closed, after the destroy chunk
        if self.tasks:
            await asyncio.gather(*self.tasks.values(), return_exceptions=True)

        self.readers.clear()
        self.tasks.clear()
        self._all_finished.set()

        if self._owns_docker_client and self._docker_client is not None:
            await self._docker_client.aclose()
            self._docker_client = None
