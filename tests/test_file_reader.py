"""
Tests for the file source reader.

Tests cover:
- One-shot reads to EOF, including a trailing partial line
- Follow mode picking up appended lines
- Rotation by rename-and-recreate and by truncation
- Fail-fast errors at start()
"""

import os

import pytest

from conftest import chunk_contents, drain_events, wait_for_event, wait_until
from dlm_agent.config import ChunkerSettings, FileReaderSettings
from dlm_agent.ingestion.adapters import FileSourceReader
from dlm_agent.ingestion.interfaces import (
    EventType,
    FlushReason,
    SourceConnectionError,
    SourceNotFoundError,
)

FAST_POLL = FileReaderSettings(poll_interval=0.02)


@pytest.mark.asyncio
async def test_reads_file_to_end(tmp_path):
    """Test a non-follow reader emits everything, then END."""
    log_file = tmp_path / "app.log"
    log_file.write_text("alpha\nbeta\r\ngamma")

    reader = FileSourceReader(str(log_file))
    await reader.start()
    events = await wait_for_event(reader, EventType.END)
    await reader.stop()
    events += await drain_events(reader)

    assert reader.source_id == f"file:{os.path.realpath(log_file)}"
    assert chunk_contents(events) == "alpha\nbeta\ngamma\n"
    assert [e.chunk.reason for e in events if e.chunk] == [FlushReason.DESTROY]


@pytest.mark.asyncio
async def test_small_max_size_emits_ordered_chunks(tmp_path):
    """Test size flushes arrive in sequence order."""
    log_file = tmp_path / "app.log"
    log_file.write_text("".join(f"line number {i}\n" for i in range(20)))

    reader = FileSourceReader(
        str(log_file), chunker_settings=ChunkerSettings(max_size=40)
    )
    await reader.start()
    events = await wait_for_event(reader, EventType.END)
    await reader.stop()
    events += await drain_events(reader)

    chunks = [e.chunk for e in events if e.type == EventType.CHUNK]
    assert [c.sequence for c in chunks] == list(range(1, len(chunks) + 1))
    assert all(c.reason == FlushReason.SIZE for c in chunks[:-1])
    assert chunk_contents(events) == log_file.read_text()


@pytest.mark.asyncio
async def test_follow_picks_up_appended_lines(tmp_path):
    """Test follow mode reads growth since the last poll."""
    log_file = tmp_path / "app.log"
    log_file.write_text("one\n")

    reader = FileSourceReader(str(log_file), follow=True, settings=FAST_POLL)
    await reader.start()
    await wait_until(lambda: reader.state.offset == 4)

    with open(log_file, "a") as f:
        f.write("two\nthree\n")
    await wait_until(lambda: reader.state.offset == 14)

    await reader.stop()
    events = await drain_events(reader)

    assert chunk_contents(events) == "one\ntwo\nthree\n"
    assert not any(e.type == EventType.END for e in events)


@pytest.mark.asyncio
async def test_rotation_by_new_inode(tmp_path):
    """Test a rename-and-recreate rotation restarts at the new file's start."""
    log_file = tmp_path / "app.log"
    log_file.write_text("old line 1\nold line 2\n")

    reader = FileSourceReader(str(log_file), follow=True, settings=FAST_POLL)
    await reader.start()
    await wait_until(lambda: reader.state.offset == 22)
    old_inode = reader.state.inode

    os.rename(log_file, tmp_path / "app.log.1")
    log_file.write_text("new\n")

    await wait_until(lambda: reader.get_health_metrics()["rotations"] == 1)
    await wait_until(lambda: reader.state.offset == 4)
    assert reader.state.inode != old_inode

    await reader.stop()
    events = await drain_events(reader)

    assert chunk_contents(events) == "old line 1\nold line 2\nnew\n"


@pytest.mark.asyncio
async def test_rotation_by_truncation(tmp_path):
    """Test truncating in place is detected by the size dropping."""
    log_file = tmp_path / "app.log"
    log_file.write_text("a much longer first line\n")

    reader = FileSourceReader(str(log_file), follow=True, settings=FAST_POLL)
    await reader.start()
    await wait_until(lambda: reader.state.offset == 25)

    with open(log_file, "w") as f:
        f.write("short\n")

    await wait_until(lambda: reader.get_health_metrics()["rotations"] >= 1)
    await wait_until(lambda: reader.state.offset == 6)

    await reader.stop()
    events = await drain_events(reader)

    assert chunk_contents(events) == "a much longer first line\nshort\n"


@pytest.mark.asyncio
async def test_missing_file_fails_at_start(tmp_path):
    """Test a missing path raises before any task is spawned."""
    reader = FileSourceReader(str(tmp_path / "nope.log"))

    with pytest.raises(SourceNotFoundError):
        await reader.start()
    assert not reader.running


@pytest.mark.asyncio
async def test_directory_fails_at_start(tmp_path):
    """Test a directory path is rejected."""
    reader = FileSourceReader(str(tmp_path))

    with pytest.raises(SourceConnectionError):
        await reader.start()


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(tmp_path):
    """Test repeated lifecycle calls are harmless."""
    log_file = tmp_path / "app.log"
    log_file.write_text("x\n")

    reader = FileSourceReader(str(log_file), follow=True, settings=FAST_POLL)
    await reader.start()
    await reader.start()
    await wait_until(lambda: reader.state.offset == 2)
    await reader.stop()
    await reader.stop()

    events = await drain_events(reader)
    assert chunk_contents(events) == "x\n"

    health = await reader.health_check()
    assert health.is_healthy is False
    assert health.error_count == 0
