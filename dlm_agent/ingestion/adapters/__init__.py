# dlm_agent/ingestion/adapters/__init__.py

"""
Source readers for the ingestion system.

This module provides readers for:
- Docker containers (Docker Engine API)
- Local files, with follow and rotation handling
- HTTP(S) URLs, with gzip and ranged resume
"""

from .base import BaseSourceReader, LineSplitter
from .container import ContainerSourceReader
from .docker_api import DockerAPIError, DockerClient, StreamDemultiplexer
from .file_system import FileSourceReader
from .url import URLSourceReader, is_transient_error

__all__ = [
    "BaseSourceReader",
    "ContainerSourceReader",
    "DockerAPIError",
    "DockerClient",
    "FileSourceReader",
    "LineSplitter",
    "StreamDemultiplexer",
    "URLSourceReader",
    "is_transient_error",
]
