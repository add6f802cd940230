# dlm_agent/ingestion/queues/__init__.py

"""
Bounded chunk queue and its consumer.
"""

from .chunk_queue import DEFAULT_MAX_QUEUE_SIZE, ChunkQueue, QueueStats
from .consumer import ChunkConsumer

__all__ = [
    "DEFAULT_MAX_QUEUE_SIZE",
    "ChunkConsumer",
    "ChunkQueue",
    "QueueStats",
]
