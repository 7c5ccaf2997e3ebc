"""Bridge bootstrap entrypoint for channel wiring."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from bridge.config import BridgeSettings, get_settings
from bridge.execution import CommandContext, CommandRegistry, CommandRunner
from bridge.network.client import CommandChannel
from shared.protocol import now_ms

LOGGER = logging.getLogger(__name__)
_channel: CommandChannel | None = None


async def _ping(params: Dict[str, Any], context: CommandContext) -> Dict[str, Any]:
    return {"pong": True, "echo": params.get("echo"), "timestamp": now_ms()}


def register_builtin_commands(registry: CommandRegistry) -> None:
    registry.register("ping", _ping, replace=True)


async def setup(settings: Optional[BridgeSettings] = None) -> CommandChannel:
    """Construct, wire and connect the command channel."""

    global _channel
    settings = settings or get_settings()
    registry = CommandRegistry()
    register_builtin_commands(registry)
    runner = CommandRunner(
        registry,
        default_exec_mode=settings.command_exec_mode,
        max_inflight=settings.command_max_inflight,
    )
    channel = CommandChannel(settings=settings, registry=registry, executor=runner)
    LOGGER.debug("Initialising bridge channel via %s transport", settings.transport)

    def _log_status(previous, current) -> None:
        LOGGER.info("Channel status: %s", current.value)

    channel.add_status_listener(_log_status)
    channel.add_error_listener(lambda exc: LOGGER.warning("Channel error: %s", exc))
    _channel = channel
    await channel.connect()
    return channel


async def serve_forever(settings: Optional[BridgeSettings] = None) -> None:
    """Connect the bridge and keep the process alive."""

    await setup(settings)
    try:
        await asyncio.Future()  # block until cancelled
    except asyncio.CancelledError:
        LOGGER.info("Bridge shutdown requested")
        raise
    finally:
        if _channel:
            await _channel.close()
