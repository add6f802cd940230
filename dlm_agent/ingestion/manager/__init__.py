# dlm_agent/ingestion/manager/__init__.py

"""
Collector that runs the readers for a source specification.
"""

from .collector import LogCollector

__all__ = ["LogCollector"]
