import asyncio
import contextlib

import pytest

from bridge import bootstrap
from bridge.config import BridgeSettings
from bridge.network.state import ConnectionStatus


@pytest.mark.asyncio
async def test_setup_connects_and_answers_ping():
    settings = BridgeSettings(transport="dummy", channel="ab12cd34")
    channel = await bootstrap.setup(settings)
    try:
        assert channel.status == ConnectionStatus.CONNECTED
        assert channel.channel == "ab12cd34"
        assert "ping" in channel.registry

        result = await channel.executor.execute("ping", {"echo": "hi"}, command_id="p1")
        assert result["pong"] is True
        assert result["echo"] == "hi"
    finally:
        await channel.close()


@pytest.mark.asyncio
async def test_serve_forever_disconnects_on_cancel():
    settings = BridgeSettings(transport="dummy")
    task = asyncio.create_task(bootstrap.serve_forever(settings))
    await asyncio.sleep(0.05)
    channel = bootstrap._channel
    assert channel is not None and channel.is_connected

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    assert channel.status == ConnectionStatus.DISCONNECTED
