"""
Tests for the LogCollector.

Tests cover:
- Starting from each kind of source specification
- Fan-in to sync and async callbacks
- Lifecycle errors and cleanup after a failed start
- Stop racing an in-flight start, and reader stop failures
"""

import asyncio

import httpx
import pytest

from conftest import ChunkedStream, StalledStream, docker_frame
from dlm_agent.config import AppConfig, ChunkerSettings, DockerSettings, SourceSpec
from dlm_agent.ingestion.adapters import DockerClient
from dlm_agent.ingestion.adapters.docker_api import STDOUT
from dlm_agent.ingestion.interfaces import (
    EventType,
    SourceAlreadyRunningError,
    SourceNotFoundError,
)
from dlm_agent.ingestion.manager import LogCollector

CONTAINERS = [
    {"Id": "aaaaaaaaaaaa1111", "Names": ["/api"], "Labels": {"tier": "backend"}},
    {"Id": "bbbbbbbbbbbb2222", "Names": ["/worker"], "Labels": {"tier": "backend"}},
]


def docker_client(requests=None) -> DockerClient:
    def handler(request):
        if requests is not None:
            requests.append(request)
        path = request.url.path
        if path == "/containers/json":
            return httpx.Response(200, json=CONTAINERS)
        if path.endswith("/json"):
            return httpx.Response(200, json={"Config": {"Tty": False}})
        container_id = path.split("/")[2]
        body = docker_frame(STDOUT, f"log from {container_id[:4]}\n".encode())
        return httpx.Response(200, stream=ChunkedStream([body]))

    return DockerClient(DockerSettings(socket_path=None), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_file_source_delivers_chunks_and_events(tmp_path):
    """Test a one-shot file run delivers its chunk and END event."""
    log_file = tmp_path / "app.log"
    log_file.write_text("first\nsecond\n")
    chunks, events = [], []

    collector = LogCollector(callback=chunks.append, on_event=events.append)
    sources = await collector.start(SourceSpec(file=str(log_file)))
    await asyncio.wait_for(collector.wait_finished(), 5)
    await collector.stop()

    assert len(sources) == 1
    assert "".join(c.content for c in chunks) == "first\nsecond\n"
    assert [e.type for e in events] == [EventType.END]
    assert collector.list_sources() == []


@pytest.mark.asyncio
async def test_async_callback_and_callback_errors(tmp_path):
    """Test a failing callback does not stop later chunks."""
    log_file = tmp_path / "app.log"
    log_file.write_text("aaaaa\nbbbbb\nccccc\n")
    delivered = []

    async def callback(chunk):
        if chunk.sequence == 1:
            raise RuntimeError("downstream hiccup")
        delivered.append(chunk.content)

    config = AppConfig(chunker=ChunkerSettings(max_size=5))
    collector = LogCollector(callback=callback, config=config)
    await collector.start(SourceSpec(file=str(log_file)))
    await asyncio.wait_for(collector.wait_finished(), 5)
    await collector.stop()

    assert delivered == ["bbbbb\n", "ccccc\n"]


@pytest.mark.asyncio
async def test_container_sources_by_label():
    """Test label discovery starts one reader per matching container."""
    requests = []
    chunks = []
    collector = LogCollector(callback=chunks.append, docker_client=docker_client(requests))

    sources = await collector.start(SourceSpec(labels={"tier": "backend"}))
    await asyncio.wait_for(collector.wait_finished(), 5)

    assert sorted(sources) == ["docker:aaaaaaaaaaaa", "docker:bbbbbbbbbbbb"]
    assert collector.get_reader("docker:aaaaaaaaaaaa").container_name == "api"
    assert "filters" in requests[0].url.params

    metrics = await collector.get_metrics()
    assert metrics["collector"]["total_sources"] == 2
    health = await collector.get_health_status()
    assert set(health) == set(sources)

    await collector.stop()
    assert sorted(c.content for c in chunks) == ["log from aaaa\n", "log from bbbb\n"]


@pytest.mark.asyncio
async def test_start_twice_raises(tmp_path):
    """Test a running collector refuses a second start."""
    log_file = tmp_path / "app.log"
    log_file.write_text("x\n")

    collector = LogCollector()
    await collector.start(SourceSpec(file=str(log_file), follow=True))
    try:
        with pytest.raises(SourceAlreadyRunningError):
            await collector.start(SourceSpec(file=str(log_file)))
    finally:
        await collector.stop()


@pytest.mark.asyncio
async def test_stop_when_not_running_is_noop():
    """Test stop() before start() does nothing."""
    collector = LogCollector()
    await collector.stop()
    assert collector.running is False


@pytest.mark.asyncio
async def test_failed_start_resets_state(tmp_path):
    """Test a failed start leaves the collector clean and re-startable."""
    collector = LogCollector()

    with pytest.raises(SourceNotFoundError):
        await collector.start(SourceSpec(file=str(tmp_path / "missing.log")))

    assert collector.running is False
    assert collector.readers == {}

    log_file = tmp_path / "app.log"
    log_file.write_text("ok\n")
    await collector.start(SourceSpec(file=str(log_file)))
    await collector.stop()


@pytest.mark.asyncio
async def test_flush_all_and_get_reader(tmp_path):
    """Test manual flush reaches the callback through the channel."""
    log_file = tmp_path / "app.log"
    log_file.write_text("pending line\n")
    chunks = []

    collector = LogCollector(callback=chunks.append)
    (source_id,) = await collector.start(SourceSpec(file=str(log_file), follow=True))
    reader = collector.get_reader(source_id)

    for _ in range(200):
        if reader.state.offset == 13:
            break
        await asyncio.sleep(0.01)

    flushed = collector.flush_all()
    await asyncio.sleep(0.05)

    assert [c.content for c in flushed] == ["pending line\n"]
    assert [c.content for c in chunks] == ["pending line\n"]

    with pytest.raises(SourceNotFoundError):
        collector.get_reader("file:/nowhere")

    await collector.stop()


@pytest.mark.asyncio
async def test_stop_during_start_leaves_nothing_running():
    """Test a stop issued while a reader is attaching tears that reader down."""
    inspecting = asyncio.Event()
    release = asyncio.Event()
    log_body = StalledStream([docker_frame(STDOUT, b"late\n")])

    async def handler(request):
        path = request.url.path
        if path == "/containers/json":
            return httpx.Response(200, json=CONTAINERS[:1])
        if path.endswith("/json"):
            inspecting.set()
            await release.wait()
            return httpx.Response(200, json={"Config": {"Tty": False}})
        return httpx.Response(200, stream=log_body)

    client = DockerClient(
        DockerSettings(socket_path=None), transport=httpx.MockTransport(handler)
    )
    collector = LogCollector(docker_client=client)

    starting = asyncio.create_task(collector.start(SourceSpec(all_containers=True)))
    await asyncio.wait_for(inspecting.wait(), 5)
    stopping = asyncio.create_task(collector.stop())
    await asyncio.sleep(0.01)
    release.set()

    assert await asyncio.wait_for(starting, 5) == []
    await asyncio.wait_for(stopping, 5)

    assert collector.running is False
    assert collector.readers == {}
    assert collector.tasks == {}
    assert log_body.closed is True
    await client.aclose()


@pytest.mark.asyncio
async def test_stop_continues_past_reader_stop_errors():
    """Test one reader failing to stop does not keep the others running."""
    collector = LogCollector(docker_client=docker_client())
    await collector.start(SourceSpec(all_containers=True))
    first, second = collector.readers.values()
    first_stop = first.stop

    async def broken_stop():
        raise RuntimeError("socket already gone")

    first.stop = broken_stop
    await asyncio.wait_for(collector.stop(), 5)

    assert second.running is False
    assert collector.readers == {}
    assert collector.tasks == {}
    assert collector.running is False

    await first_stop()
