import asyncio
import logging

import pytest

from bridge.execution.progress import ProgressReporter, ProgressSink
from shared.models import ProgressData, ProgressStatus


def _event(command_id: str, status: str, progress: int) -> ProgressData:
    return ProgressData(
        command_id=command_id,
        command_type="scan_nodes",
        status=status,
        progress=progress,
        timestamp=1,
    )


@pytest.mark.asyncio
async def test_reporter_validates_range_and_fields():
    emitted = []

    async def _emit(event):
        emitted.append(event)

    reporter = ProgressReporter(_emit, command_id="c1", command_type="scan_nodes")
    with pytest.raises(ValueError, match="between 0 and 100"):
        await reporter.update(101)
    with pytest.raises(ValueError):
        await reporter.update(-1)
    with pytest.raises(ValueError, match="Missing required"):
        ProgressReporter(_emit, command_id="", command_type="scan_nodes")
    assert emitted == []


@pytest.mark.asyncio
async def test_reporter_extracts_chunk_metadata():
    emitted = []

    async def _emit(event):
        emitted.append(event)

    reporter = ProgressReporter(_emit, command_id="c1", command_type="scan_nodes")
    event = await reporter.update(
        30,
        "chunk 2/5",
        payload={"currentChunk": 2, "totalChunks": 5, "chunkSize": 10},
    )

    assert event.current_chunk == 2
    assert event.total_chunks == 5
    assert event.chunk_size == 10
    assert event.payload == {"currentChunk": 2, "totalChunks": 5, "chunkSize": 10}
    assert event.timestamp > 0
    dumped = event.model_dump(by_alias=True, exclude_none=True)
    assert dumped["currentChunk"] == 2
    assert dumped["commandId"] == "c1"


@pytest.mark.asyncio
async def test_failed_keeps_last_progress():
    emitted = []

    async def _emit(event):
        emitted.append(event)

    reporter = ProgressReporter(_emit, command_id="c1", command_type="scan_nodes")
    await reporter.update(40)
    event = await reporter.failed("lost selection")
    assert event.status == ProgressStatus.error
    assert event.progress == 40
    assert event.finished


@pytest.mark.asyncio
async def test_send_nowait_schedules_emission():
    emitted = []

    async def _emit(event):
        emitted.append(event)

    reporter = ProgressReporter(_emit, command_id="c1", command_type="scan_nodes")
    task = reporter.send_nowait(status="started", progress=0)
    await task
    assert emitted[0].status == ProgressStatus.started


@pytest.mark.asyncio
async def test_sink_listener_failure_is_logged(caplog):
    sink = ProgressSink()
    received = []

    def _broken(event):
        raise RuntimeError("listener exploded")

    async def _async_listener(event):
        received.append(event)

    sink.add_listener(_broken)
    sink.add_listener(_async_listener)
    await sink.publish(_event("c1", "in_progress", 10))

    assert len(received) == 1
    assert "Progress listener failed" in caplog.text

    sink.remove_listener(_async_listener)
    await sink.publish(_event("c1", "in_progress", 20))
    assert len(received) == 1


@pytest.mark.asyncio
async def test_watch_ends_after_completion():
    sink = ProgressSink()
    collected = []

    async def _consume():
        async for event in sink.watch("c1"):
            collected.append(event.progress)

    consumer = asyncio.create_task(_consume())
    await asyncio.sleep(0)
    assert sink.watcher_count("c1") == 1

    await sink.publish(_event("c1", "started", 0))
    await sink.publish(_event("other", "in_progress", 50))
    await sink.publish(_event("c1", "in_progress", 60))
    await sink.publish(_event("c1", "completed", 100))
    await asyncio.wait_for(consumer, timeout=0.5)

    assert collected == [0, 60, 100]
    assert sink.watcher_count("c1") == 0


@pytest.mark.asyncio
async def test_publish_logs_at_info(caplog):
    caplog.set_level(logging.INFO)
    await ProgressSink().publish(_event("c1", "in_progress", 10))
    assert "Progress update for scan_nodes (c1): 10%" in caplog.text
