# dlm_agent/ingestion/queues/chunk_queue.py

"""
Bounded in-memory FIFO of chunks awaiting the downstream processor.
"""

from collections import deque
from dataclasses import dataclass, replace
from datetime import UTC, datetime
import logging

from ..interfaces.core import Chunk

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 1000


@dataclass
class QueueStats:
    """Counters describing queue traffic since creation."""

    total_enqueued: int = 0
    total_dequeued: int = 0
    current_size: int = 0
    max_size_reached: int = 0
    dropped_count: int = 0
    last_enqueue_time: datetime | None = None
    last_dequeue_time: datetime | None = None


class ChunkQueue:
    """
    FIFO of chunks with a hard capacity.

    A full queue refuses the incoming chunk instead of evicting an older one,
    and never blocks the producer. The queue is only used from the event loop
    thread.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_QUEUE_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: deque[Chunk] = deque()
        self._stats = QueueStats()

    def enqueue(self, chunk: Chunk) -> bool:
        """
        Append ``chunk`` unless the queue is at capacity.

        Returns:
            True if accepted, False if the chunk was dropped
        """
        if self.is_full():
            self._stats.dropped_count += 1
            logger.warning(
                f"Chunk queue full ({self.max_size}), dropping chunk {chunk.chunk_id}"
            )
            return False

        self._items.append(chunk)
        depth = len(self._items)
        self._stats.total_enqueued += 1
        self._stats.current_size = depth
        if depth > self._stats.max_size_reached:
            self._stats.max_size_reached = depth
        self._stats.last_enqueue_time = datetime.now(UTC)
        return True

    def dequeue(self) -> Chunk | None:
        """Pop the oldest chunk, or None when empty."""
        if not self._items:
            return None

        chunk = self._items.popleft()
        self._stats.total_dequeued += 1
        self._stats.current_size = len(self._items)
        self._stats.last_dequeue_time = datetime.now(UTC)
        return chunk

    def peek(self, count: int = 1) -> list[Chunk]:
        return [chunk for _, chunk in zip(range(count), self._items)]

    def clear(self) -> int:
        """Discard every queued chunk; returns how many were discarded."""
        discarded = len(self._items)
        self._items.clear()
        self._stats.current_size = 0
        if discarded:
            logger.debug(f"Discarded {discarded} queued chunks")
        return discarded

    def get_stats(self) -> QueueStats:
        return replace(self._stats, current_size=len(self._items))

    @property
    def dropped_count(self) -> int:
        return self._stats.dropped_count

    def is_full(self) -> bool:
        return len(self._items) >= self.max_size

    def is_empty(self) -> bool:
        return not self._items

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)
