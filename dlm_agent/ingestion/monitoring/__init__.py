# dlm_agent/ingestion/monitoring/__init__.py

"""
Monitoring components for the log ingestion system.
"""

from .metrics import (
    BYTES_INGESTED_TOTAL,
    CHUNK_PROCESSING_SECONDS,
    CHUNK_QUEUE_SIZE,
    CHUNKS_DROPPED_TOTAL,
    CHUNKS_TOTAL,
    CIRCUIT_REJECTIONS_TOTAL,
    LOG_LINES_TOTAL,
    SOURCE_ERRORS_TOTAL,
    MetricsCollector,
    MetricType,
    MetricValue,
)

__all__ = [
    "BYTES_INGESTED_TOTAL",
    "CHUNK_PROCESSING_SECONDS",
    "CHUNK_QUEUE_SIZE",
    "CHUNKS_DROPPED_TOTAL",
    "CHUNKS_TOTAL",
    "CIRCUIT_REJECTIONS_TOTAL",
    "LOG_LINES_TOTAL",
    "SOURCE_ERRORS_TOTAL",
    "MetricType",
    "MetricValue",
    "MetricsCollector",
]
