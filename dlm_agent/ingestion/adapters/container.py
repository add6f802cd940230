# dlm_agent/ingestion/adapters/container.py

"""
Container reader: follows the live log stream of one running Docker container.
"""

import codecs
import logging
from typing import Any

import httpx

from ...config.ingestion_config import ChunkerSettings
from ..interfaces.core import SourceType
from ..interfaces.errors import SourceStreamError
from ..monitoring.metrics import MetricsCollector
from ..processor.redactor import Redactor
from .base import BaseSourceReader, LineSplitter
from .docker_api import STDERR, STDOUT, DockerClient, StreamDemultiplexer

logger = logging.getLogger(__name__)


class ContainerSourceReader(BaseSourceReader):
    """
    Reader for one container's stdout/stderr.

    Stream errors and unexpected ends are surfaced as events; reconnecting is
    left to the owner.
    """

    def __init__(
        self,
        client: DockerClient,
        container_info: dict[str, Any],
        chunker_settings: ChunkerSettings | None = None,
        metrics: MetricsCollector | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        self.full_id = container_info.get("Id") or ""
        self.container_id = self.full_id[:12] or "unknown"
        names = container_info.get("Names") or []
        self.container_name = names[0].lstrip("/") if names else self.container_id
        self.labels: dict[str, str] = container_info.get("Labels") or {}

        super().__init__(
            f"docker:{self.container_id}",
            SourceType.DOCKER,
            chunker_settings=chunker_settings,
            metrics=metrics,
            redactor=redactor,
        )
        self.client = client

        self._response: httpx.Response | None = None
        self._tty = False
        self._demux = StreamDemultiplexer()
        self._splitters = {STDOUT: LineSplitter(), STDERR: LineSplitter()}
        self._decoders = {
            stream: codecs.getincrementaldecoder("utf-8")(errors="replace")
            for stream in self._splitters
        }

    async def _open(self) -> None:
        """Attach to the container's log stream. Attach failures are raised."""
        logger.info(
            f"Attaching to container {self.container_name} ({self.container_id})"
        )
        details = await self.client.inspect_container(self.full_id)
        self._tty = bool((details.get("Config") or {}).get("Tty"))
        self._response = await self.client.open_log_stream(self.full_id)

    async def _close(self) -> None:
        if self._response is not None:
            await self._response.aclose()
            self._response = None
        self._drain_pending()

    async def _read_loop(self) -> None:
        try:
            async for data in self._response.aiter_bytes():
                self.state.bytes_read += len(data)
                if self._tty:
                    # TTY containers send a raw stream with no frame headers
                    self._consume(STDOUT, data)
                    continue
                for stream, payload in self._demux.feed(data):
                    self._consume(stream, payload)
        except httpx.HTTPError as e:
            raise SourceStreamError(
                f"Log stream error for container {self.container_id}: {e}",
                source_id=self.source_id,
            ) from e

        self._drain_pending()
        logger.warning(f"Log stream for container {self.container_id} ended")

    def _consume(self, stream: int, payload: bytes) -> None:
        if stream not in self._splitters:
            logger.debug(f"Ignoring frame for stream {stream} on {self.container_id}")
            return
        text = self._decoders[stream].decode(payload)
        for line in self._splitters[stream].push(text):
            if line.strip():
                self.feed_line(line)

    def _drain_pending(self) -> None:
        for stream, splitter in self._splitters.items():
            tail = self._decoders[stream].decode(b"", final=True)
            for line in splitter.push(tail):
                if line.strip():
                    self.feed_line(line)
            pending = splitter.drain()
            if pending is not None and pending.strip():
                self.feed_line(pending)

    def get_health_metrics(self) -> dict[str, Any]:
        metrics = super().get_health_metrics()
        metrics.update(
            {
                "container_id": self.container_id,
                "container_name": self.container_name,
                "tty": self._tty,
                "bytes_read": self.state.bytes_read,
            }
        )
        return metrics
