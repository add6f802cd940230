# dlm_agent/ingestion/adapters/docker_api.py

"""
Minimal async client for the Docker Engine HTTP API, plus the decoder for
its multiplexed log stream format.
"""

import json
import logging
import struct
from typing import Any

import httpx

from ...config.ingestion_config import DockerSettings
from ..interfaces.errors import SourceConnectionError, SourceNotFoundError

logger = logging.getLogger(__name__)

STDIN = 0
STDOUT = 1
STDERR = 2

_FRAME_HEADER = struct.Struct(">BxxxL")


class DockerAPIError(SourceConnectionError):
    """The Docker daemon rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StreamDemultiplexer:
    """
    Splits a non-TTY log stream into (stream, payload) frames.

    Each frame is an 8-byte header ``[stream, 0, 0, 0, size (uint32 BE)]``
    followed by ``size`` payload bytes. Frames may arrive split across reads.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[tuple[int, bytes]]:
        self._buffer.extend(data)
        frames: list[tuple[int, bytes]] = []

        while len(self._buffer) >= _FRAME_HEADER.size:
            stream, size = _FRAME_HEADER.unpack_from(self._buffer)
            end = _FRAME_HEADER.size + size
            if len(self._buffer) < end:
                break
            frames.append((stream, bytes(self._buffer[_FRAME_HEADER.size : end])))
            del self._buffer[:end]

        return frames


class DockerClient:
    """Talks to the Docker daemon over its unix socket (or any transport)."""

    def __init__(
        self,
        settings: DockerSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or DockerSettings()

        if transport is None and self.settings.socket_path:
            transport = httpx.AsyncHTTPTransport(uds=self.settings.socket_path)

        base_url = self.settings.base_url.rstrip("/")
        if self.settings.api_version:
            base_url = f"{base_url}/{self.settings.api_version}"

        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=self.settings.timeout,
        )

    async def list_containers(
        self, labels: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        """List running containers, optionally filtered by ``key=value`` labels."""
        params = {"all": "false"}
        if labels:
            params["filters"] = json.dumps(
                {"label": [f"{key}={value}" for key, value in labels.items()]}
            )

        response = await self._request("GET", "/containers/json", params=params)
        return response.json()

    async def inspect_container(self, container_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"/containers/{container_id}/json")
        return response.json()

    async def open_log_stream(
        self,
        container_id: str,
        follow: bool = True,
        timestamps: bool = True,
        tail: str = "0",
    ) -> httpx.Response:
        """
        Open a streaming logs response for stdout and stderr.

        The caller owns the returned response and must ``aclose()`` it.
        """
        request = self._client.build_request(
            "GET",
            f"/containers/{container_id}/logs",
            params={
                "follow": "1" if follow else "0",
                "stdout": "1",
                "stderr": "1",
                "timestamps": "1" if timestamps else "0",
                "tail": tail,
            },
            # Follow streams stay idle between log lines
            timeout=httpx.Timeout(self.settings.timeout, read=None),
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise DockerAPIError(f"Failed to attach to container {container_id}: {e}") from e

        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            self._raise_for_status(response.status_code, body, container_id)
        return response

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise DockerAPIError(f"Docker API request {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response.status_code, response.content, path)
        return response

    def _raise_for_status(self, status: int, body: bytes, target: str) -> None:
        try:
            message = json.loads(body).get("message", "")
        except (ValueError, AttributeError):
            message = body.decode("utf-8", errors="replace")

        if status == 404:
            raise SourceNotFoundError(f"Docker object not found: {target} ({message})")
        raise DockerAPIError(f"Docker API error {status} for {target}: {message}", status)
