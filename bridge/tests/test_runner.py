import asyncio
import threading

import pytest

from bridge.execution import CommandContext, CommandRegistry, CommandRunner, DuplicateCommand
from bridge.network.errors import UnknownCommand


def _registry(**handlers) -> CommandRegistry:
    registry = CommandRegistry()
    for name, handler in handlers.items():
        registry.register(name, handler)
    return registry


def test_registry_lookup_and_duplicates():
    registry = CommandRegistry()

    @registry.command()
    def create_rectangle(params, context):
        return params

    assert "create_rectangle" in registry
    assert registry.names() == ["create_rectangle"]
    with pytest.raises(ValueError):
        registry.register("create_rectangle", create_rectangle)
    registry.register("create_rectangle", create_rectangle, replace=True)
    registry.unregister("create_rectangle")
    with pytest.raises(UnknownCommand, match="Unknown command: create_rectangle"):
        registry.resolve("create_rectangle")


@pytest.mark.asyncio
async def test_auto_mode_runs_sync_handlers_in_a_thread():
    seen = {}

    def sync_handler(params, context: CommandContext):
        seen["thread"] = threading.get_ident()
        return {"echo": params["value"], "command": context.command}

    async def async_handler(params, context: CommandContext):
        seen["loop_thread"] = threading.get_ident()
        return "async"

    runner = CommandRunner(_registry(sync_cmd=sync_handler, async_cmd=async_handler))

    assert await runner.execute("sync_cmd", {"value": 7}, command_id="a") == {"echo": 7, "command": "sync_cmd"}
    assert await runner.execute("async_cmd", {}, command_id="b") == "async"
    assert seen["thread"] != threading.get_ident()
    assert seen["loop_thread"] == threading.get_ident()


@pytest.mark.asyncio
async def test_inline_mode_runs_on_the_loop():
    seen = {}

    def sync_handler(params, context):
        seen["thread"] = threading.get_ident()
        return "inline"

    runner = CommandRunner(_registry(cmd=sync_handler), default_exec_mode="inline")
    assert await runner.execute("cmd", {}) == "inline"
    assert seen["thread"] == threading.get_ident()


@pytest.mark.asyncio
async def test_descriptor_exec_mode_overrides_default():
    seen = {}
    registry = CommandRegistry()

    def handler(params, context):
        seen["thread"] = threading.get_ident()

    registry.register("cmd", handler, exec_mode="loop")
    runner = CommandRunner(registry, default_exec_mode="thread")
    await runner.execute("cmd", {})
    assert seen["thread"] == threading.get_ident()


@pytest.mark.asyncio
async def test_unknown_command_raises():
    runner = CommandRunner(CommandRegistry())
    with pytest.raises(UnknownCommand):
        await runner.execute("missing", {})


@pytest.mark.asyncio
async def test_duplicate_inflight_id_is_rejected():
    release = asyncio.Event()

    async def slow(params, context):
        await release.wait()
        return "done"

    runner = CommandRunner(_registry(slow=slow))
    first = asyncio.create_task(runner.execute("slow", {}, command_id="same"))
    await asyncio.sleep(0)
    assert runner.inflight() == 1

    with pytest.raises(DuplicateCommand):
        await runner.execute("slow", {}, command_id="same")

    release.set()
    assert await first == "done"
    assert runner.inflight() == 0


@pytest.mark.asyncio
async def test_max_inflight_serialises_execution():
    active = 0
    peak = 0

    async def work(params, context):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return params["n"]

    runner = CommandRunner(_registry(work=work), max_inflight=1)
    results = await asyncio.gather(*(runner.execute("work", {"n": n}, command_id=f"w{n}") for n in range(3)))
    assert results == [0, 1, 2]
    assert peak == 1


@pytest.mark.asyncio
async def test_handler_exceptions_propagate():
    async def explode(params, context):
        raise RuntimeError("no selection")

    runner = CommandRunner(_registry(explode=explode))
    with pytest.raises(RuntimeError, match="no selection"):
        await runner.execute("explode", {}, command_id="x")
    assert runner.inflight() == 0


@pytest.mark.asyncio
async def test_reporter_is_bound_only_with_an_emitter():
    contexts = []

    async def capture(params, context):
        contexts.append(context)

    runner = CommandRunner(_registry(capture=capture))
    await runner.execute("capture", {}, command_id="c1")
    assert contexts[-1].progress is None

    async def _emit(event):
        return None

    runner.bind_progress(_emit)
    await runner.execute("capture", {"k": 1}, command_id="c2")
    assert contexts[-1].progress is not None
    assert contexts[-1].progress.command_id == "c2"
    assert contexts[-1].param("k") == 1
