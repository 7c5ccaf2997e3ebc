import asyncio

import pytest

from bridge.network.errors import NotConnected, RemoteError, RequestTimeout
from bridge.network.pending import PendingRequestTable


@pytest.mark.asyncio
async def test_resolve_settles_once_and_removes_entry():
    table = PendingRequestTable(timeout=1.0)
    entry = table.register("noop", request_id="r1")
    assert "r1" in table

    assert table.resolve("r1", {"ok": True}) is True
    assert await entry.future == {"ok": True}
    assert "r1" not in table
    assert table.resolve("r1", {"ok": False}) is False
    assert table.was_retired("r1")


@pytest.mark.asyncio
async def test_generated_ids_are_unique():
    table = PendingRequestTable(timeout=1.0)
    first = table.register("a")
    second = table.register("b")
    assert first.id != second.id
    assert len(first.id) == 32
    table.reject_all(NotConnected("done"))
    for entry in (first, second):
        with pytest.raises(NotConnected):
            await entry.future


@pytest.mark.asyncio
async def test_duplicate_request_id_is_refused():
    table = PendingRequestTable(timeout=1.0)
    table.register("a", request_id="dup")
    with pytest.raises(ValueError):
        table.register("b", request_id="dup")
    table.discard("dup")


@pytest.mark.asyncio
async def test_settle_with_error_rejects_with_remote_error():
    table = PendingRequestTable(timeout=1.0)
    entry = table.register("explode", request_id="r1")
    table.settle("r1", error="node not found")
    with pytest.raises(RemoteError) as excinfo:
        await entry.future
    assert str(excinfo.value) == "node not found"
    assert excinfo.value.request_id == "r1"


@pytest.mark.asyncio
async def test_timeout_rejects_and_late_response_is_ignored():
    table = PendingRequestTable(timeout=0.02)
    entry = table.register("slow", request_id="r2")
    with pytest.raises(RequestTimeout):
        await entry.future
    assert "r2" not in table
    assert table.settle("r2", result={"ok": True}) is False
    assert table.was_retired("r2")


@pytest.mark.asyncio
async def test_caller_cancellation_retires_entry():
    table = PendingRequestTable(timeout=1.0)
    entry = table.register("slow", request_id="r3")

    async def _await():
        return await entry.future

    task = asyncio.create_task(_await())
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)
    assert "r3" not in table
    assert entry.timeout_handle.cancelled()


@pytest.mark.asyncio
async def test_reject_all_counts_settled_entries():
    table = PendingRequestTable(timeout=1.0)
    futures = [table.register("cmd").future for _ in range(3)]
    assert table.reject_all(NotConnected("gone")) == 3
    assert len(table) == 0
    results = await asyncio.gather(*futures, return_exceptions=True)
    assert all(isinstance(result, NotConnected) for result in results)


@pytest.mark.asyncio
async def test_retired_index_is_bounded():
    table = PendingRequestTable(timeout=1.0)
    for index in range(600):
        table.register("cmd", request_id=f"id-{index}")
        table.resolve(f"id-{index}", None)
    assert not table.was_retired("id-0")
    assert table.was_retired("id-599")
