# dlm_agent/ingestion/adapters/url.py

"""
HTTP(S) reader for log ingestion.

Streams a remote log resource, transparently gunzipping ``.gz`` paths, and
resumes interrupted transfers with a ``Range`` request from the last byte
consumed.
"""

import codecs
import logging
from typing import Any
import zlib

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from ...config.ingestion_config import ChunkerSettings, UrlReaderSettings
from ..interfaces.core import SourceType
from ..interfaces.errors import ConfigurationError, SourceStreamError
from ..monitoring.metrics import MetricsCollector, record_source_error
from ..processor.redactor import Redactor
from .base import BaseSourceReader, LineSplitter

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429}


def is_transient_error(error: BaseException) -> bool:
    """Network failures, 5xx, 408 and 429 are retried; everything else is not."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status in RETRYABLE_STATUS_CODES
    return isinstance(error, httpx.TransportError)


class URLSourceReader(BaseSourceReader):
    """Reader for a single HTTP(S) resource with ranged resume."""

    def __init__(
        self,
        url: str,
        settings: UrlReaderSettings | None = None,
        chunker_settings: ChunkerSettings | None = None,
        metrics: MetricsCollector | None = None,
        redactor: Redactor | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            f"url:{url}",
            SourceType.URL,
            chunker_settings=chunker_settings,
            metrics=metrics,
            redactor=redactor,
        )
        self.url = url
        self.settings = settings or UrlReaderSettings()

        self._client = client
        self._owns_client = client is None
        self._gzip = False
        self._decompressor: Any = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._splitter = LineSplitter()
        self._attempts = 0

    @property
    def attempts(self) -> int:
        return self._attempts

    async def _open(self) -> None:
        try:
            parsed = httpx.URL(self.url)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid URL {self.url}: {e}") from e

        if parsed.scheme not in ("http", "https"):
            raise ConfigurationError(
                f"Unsupported URL scheme '{parsed.scheme}' in {self.url}"
            )

        self._gzip = parsed.path.endswith(".gz")
        if self._gzip:
            self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout, follow_redirects=True
            )

    async def _close(self) -> None:
        # Interrupted mid-body: keep the partial line for the destroy chunk
        self._drain_pending()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _read_loop(self) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_incrementing(
                start=self.settings.retry_delay, increment=self.settings.retry_delay
            ),
            retry=retry_if_exception(is_transient_error),
            before_sleep=self._before_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._fetch_and_stream()
        except (httpx.HTTPError, zlib.error) as e:
            raise SourceStreamError(
                f"Failed to read {self.url} after {self._attempts} attempt(s): {e}",
                source_id=self.source_id,
            ) from e

        self._finish()
        logger.info(f"Finished reading {self.url} ({self.state.bytes_read} bytes)")

    async def _fetch_and_stream(self) -> None:
        """One request; resumes from ``bytes_read`` when it is non-zero."""
        self._attempts += 1
        offset = self.state.bytes_read
        headers = {"Accept-Encoding": "identity"}
        if offset > 0:
            headers["Range"] = f"bytes={offset}-"

        logger.info(f"Fetching {self.url} (attempt {self._attempts}, offset {offset})")

        async with self._client.stream("GET", self.url, headers=headers) as response:
            if offset > 0 and response.status_code == 416:
                logger.info(f"{self.url} already fully consumed at offset {offset}")
                return
            response.raise_for_status()

            # A server ignoring Range replays the body from byte 0
            skip = offset if offset > 0 and response.status_code != 206 else 0
            if skip:
                logger.warning(
                    f"{self.url} ignored Range request, skipping {skip} bytes"
                )

            async for data in response.aiter_bytes():
                if skip:
                    if len(data) <= skip:
                        skip -= len(data)
                        continue
                    data = data[skip:]
                    skip = 0

                self.state.bytes_read += len(data)
                self._consume(data)

    def _consume(self, data: bytes) -> None:
        if self._decompressor is not None:
            data = self._decompressor.decompress(data)
        for line in self._splitter.push(self._decoder.decode(data)):
            self.feed_line(line)

    def _finish(self) -> None:
        tail = b""
        if self._decompressor is not None:
            tail = self._decompressor.flush()
        self._drain_pending(tail)

    def _drain_pending(self, tail: bytes = b"") -> None:
        """Deliver decoder leftovers and the unterminated last line."""
        for line in self._splitter.push(self._decoder.decode(tail, final=True)):
            self.feed_line(line)
        pending = self._splitter.drain()
        if pending is not None:
            self.feed_line(pending)

    def _before_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        record_source_error(self.metrics, self.source_type.value)
        logger.warning(
            f"Stream error on {self.url} at offset {self.state.bytes_read}: {error}; "
            f"retrying in {delay:.1f}s ({retry_state.attempt_number}/"
            f"{self.settings.max_retries})"
        )

    def get_health_metrics(self) -> dict[str, Any]:
        metrics = super().get_health_metrics()
        metrics.update(
            {
                "url": self.url,
                "bytes_read": self.state.bytes_read,
                "attempts": self._attempts,
                "gzip": self._gzip,
            }
        )
        return metrics
