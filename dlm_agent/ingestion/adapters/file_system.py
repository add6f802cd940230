# dlm_agent/ingestion/adapters/file_system.py

"""
File system reader for log ingestion.

Reads a local file from the start to EOF and, in follow mode, keeps polling
the file metadata to pick up appended bytes and log rotation.
"""

import asyncio
import codecs
import logging
import os
from typing import IO, Any

from ...config.ingestion_config import ChunkerSettings, FileReaderSettings
from ..interfaces.core import SourceType
from ..interfaces.errors import SourceConnectionError, SourceNotFoundError
from ..monitoring.metrics import MetricsCollector
from ..processor.redactor import Redactor
from .base import BaseSourceReader, LineSplitter

logger = logging.getLogger(__name__)


class FileSourceReader(BaseSourceReader):
    """
    Reader for a single local log file, with optional tail -F style follow.

    Rotation is detected on every poll when either the inode changes or the
    size drops below the current offset; reading then restarts at byte 0 of
    the file now at the path. Rotations that complete faster than one poll
    interval can go unnoticed.
    """

    def __init__(
        self,
        file_path: str,
        follow: bool = False,
        settings: FileReaderSettings | None = None,
        chunker_settings: ChunkerSettings | None = None,
        metrics: MetricsCollector | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        self.file_path = os.path.realpath(file_path)
        self.follow = follow
        self.settings = settings or FileReaderSettings()
        super().__init__(
            f"file:{self.file_path}",
            SourceType.FILE,
            chunker_settings=chunker_settings,
            metrics=metrics,
            redactor=redactor,
        )

        self._handle: IO[bytes] | None = None
        self._splitter = LineSplitter()
        self._decoder = self._new_decoder()
        self._rotations = 0

    async def _open(self) -> None:
        """Open the file, failing fast when it is missing or unreadable."""
        if not os.path.exists(self.file_path):
            raise SourceNotFoundError(f"File path does not exist: {self.file_path}")
        if os.path.isdir(self.file_path):
            raise SourceConnectionError(f"File path is a directory: {self.file_path}")

        try:
            self._handle = open(self.file_path, "rb")
        except OSError as e:
            raise SourceConnectionError(
                f"Failed to open {self.file_path}: {e}"
            ) from e

        self.state.inode = os.fstat(self._handle.fileno()).st_ino
        self.state.offset = 0
        logger.info(f"Reading {self.file_path} (follow={self.follow})")

    async def _close(self) -> None:
        # A trailing line without newline is still delivered in the destroy chunk
        self._drain_pending()
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    async def _read_loop(self) -> None:
        await self._read_available()

        if not self.follow:
            self._drain_pending()
            logger.info(f"Finished reading {self.file_path}")
            return

        while self.state.running:
            await asyncio.sleep(self.settings.poll_interval)
            await self._poll()

    async def _poll(self) -> None:
        """One follow-mode tick: detect rotation, then read any growth."""
        try:
            stat = os.stat(self.file_path)
        except FileNotFoundError:
            logger.debug(f"{self.file_path} missing during poll, waiting for it")
            return

        # Truncate-in-place keeps the inode, rename-and-create keeps the size
        rotated = stat.st_ino != self.state.inode or stat.st_size < self.state.offset
        if rotated:
            logger.info(
                f"Log rotation detected for {self.file_path}: "
                f"inode {self.state.inode} -> {stat.st_ino}, "
                f"size {stat.st_size}, previous offset {self.state.offset}"
            )
            try:
                self._reopen()
            except FileNotFoundError:
                logger.debug(f"{self.file_path} vanished while reopening, retrying")
                return

        if stat.st_size > self.state.offset:
            await self._read_available(limit=stat.st_size)

    def _reopen(self) -> None:
        self._drain_pending()
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self.state.inode = None
        self._handle = open(self.file_path, "rb")
        self.state.inode = os.fstat(self._handle.fileno()).st_ino
        self.state.offset = 0
        self._rotations += 1

    async def _read_available(self, limit: int | None = None) -> None:
        """Read from the current offset up to ``limit`` (or EOF) in blocks."""
        if self._handle is None:
            return

        self._handle.seek(self.state.offset)
        while self.state.running:
            block_size = self.settings.read_block_size
            if limit is not None:
                block_size = min(block_size, limit - self.state.offset)
                if block_size <= 0:
                    break

            data = self._handle.read(block_size)
            if not data:
                break

            self.state.offset += len(data)
            for line in self._splitter.push(self._decoder.decode(data)):
                self.feed_line(line)

            # Let other readers and the consumer run between blocks
            await asyncio.sleep(0)

    def _drain_pending(self) -> None:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            for line in self._splitter.push(tail):
                self.feed_line(line)
        pending = self._splitter.drain()
        if pending is not None:
            self.feed_line(pending)
        self._decoder = self._new_decoder()

    def _new_decoder(self) -> codecs.IncrementalDecoder:
        return codecs.getincrementaldecoder(self.settings.encoding)(errors="replace")

    def get_health_metrics(self) -> dict[str, Any]:
        metrics = super().get_health_metrics()
        metrics.update(
            {
                "file_path": self.file_path,
                "follow": self.follow,
                "inode": self.state.inode,
                "offset": self.state.offset,
                "rotations": self._rotations,
            }
        )
        return metrics
