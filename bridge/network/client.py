"""Command channel facade: connection + pending table + router."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bridge.config import BridgeSettings
from bridge.execution.progress import ProgressReporter, ProgressSink
from bridge.execution.registry import CommandRegistry
from bridge.execution.runner import CommandExecutor, CommandRunner
from bridge.network.connection import Connection, ErrorListener, StatusListener
from bridge.network.errors import NotConnected
from bridge.network.pending import PendingRequestTable
from bridge.network.router import MessageRouter
from bridge.network.state import ConnectionStatus
from bridge.network.transport.base import BaseTransport
from bridge.network.transport.dummy import DummyTransport
from bridge.network.transport.websocket import WebSocketTransport
from shared.models import ProgressData
from shared.protocol import build_command_frame, build_progress_frame

LOGGER = logging.getLogger(__name__)


def default_transport_factory(settings: BridgeSettings, endpoint: str) -> BaseTransport:
    if settings.transport == "dummy":
        return DummyTransport(settings, endpoint)
    return WebSocketTransport(settings, endpoint)


@dataclass
class CommandChannel:
    """Wires the connection, request table and router for one session."""

    settings: BridgeSettings
    transport_factory: Callable[[BridgeSettings, str], BaseTransport] = default_transport_factory
    registry: Optional[CommandRegistry] = None
    executor: Optional[CommandExecutor] = None
    progress_sink: ProgressSink = field(default_factory=ProgressSink)

    connection: Optional[Connection] = field(default=None, init=False, repr=False)
    pending: Optional[PendingRequestTable] = field(default=None, init=False, repr=False)
    router: Optional[MessageRouter] = field(default=None, init=False, repr=False)
    _disconnect_hooks: List[Callable[[Exception], Awaitable[None] | None]] = field(
        default_factory=list, init=False, repr=False
    )

    def _ensure_layers(self) -> None:
        if self.executor is None and self.registry is not None:
            self.executor = CommandRunner(
                self.registry,
                default_exec_mode=self.settings.command_exec_mode,
                max_inflight=self.settings.command_max_inflight,
            )
        if isinstance(self.executor, CommandRunner):
            self.executor.bind_progress(self.emit_progress)
        if self.pending is None:
            self.pending = PendingRequestTable(timeout=self.settings.request_timeout_seconds)
        if self.connection is None:
            self.connection = Connection(self.settings, self.transport_factory)
            self.connection.add_disconnect_hook(self._on_connection_lost)
        if self.router is None:
            self.router = MessageRouter(
                self.connection,
                self.pending,
                progress_sink=self.progress_sink,
                executor=self.executor,
            )
            self.connection.set_frame_handler(self.router.handle_raw)

    # -- observable state -------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        self._ensure_layers()
        assert self.connection is not None
        return self.connection.status

    @property
    def channel(self) -> Optional[str]:
        return self.connection.channel if self.connection is not None else None

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.is_connected

    def seconds_until_reconnect(self) -> Optional[float]:
        if self.connection is None:
            return None
        return self.connection.seconds_until_reconnect()

    def add_status_listener(self, listener: StatusListener) -> None:
        self._ensure_layers()
        assert self.connection is not None
        self.connection.add_status_listener(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._ensure_layers()
        assert self.connection is not None
        self.connection.add_error_listener(listener)

    def add_disconnect_hook(self, hook: Callable[[Exception], Awaitable[None] | None]) -> None:
        """Register a hook invoked after pending requests are rejected on connection loss."""
        self._disconnect_hooks.append(hook)

    # -- lifecycle ----------------------------------------------------------

    async def connect(self, endpoint: Optional[str] = None, *, channel: Optional[str] = None) -> str:
        self._ensure_layers()
        assert self.connection is not None
        return await self.connection.connect(endpoint, channel=channel)

    async def join(self, channel: str) -> str:
        self._ensure_layers()
        assert self.connection is not None
        return await self.connection.join(channel)

    async def disconnect(self) -> None:
        if self.connection is None:
            return
        await self.connection.disconnect()

    async def close(self) -> None:
        if self.router is not None:
            await self.router.cancel_tasks()
        if self.connection is not None:
            await self.connection.close()

    def set_auto_reconnect(self, enabled: bool) -> None:
        self._ensure_layers()
        assert self.connection is not None
        self.connection.set_auto_reconnect(enabled)

    # -- requests -----------------------------------------------------------

    async def send_command(
        self,
        command: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        request_id: Optional[str] = None,
    ) -> Any:
        """Send ``command`` to the peer and wait for its result.

        Raises ``NotConnected`` before anything is written when the channel is
        not joined, ``RequestTimeout`` when no response arrives in time and
        ``RemoteError`` when the peer reports a failure.
        """

        self._ensure_layers()
        assert self.connection is not None and self.pending is not None
        if not self.connection.is_connected:
            raise NotConnected("Not connected to server")
        entry = self.pending.register(command, request_id=request_id)
        frame = build_command_frame(entry.id, self.connection.channel, command, params)
        try:
            await self.connection.send_frame(frame)
        except BaseException:
            self.pending.discard(entry.id)
            raise
        LOGGER.debug("Sent command %s id=%s", command, entry.id)
        return await entry.future

    # -- progress -----------------------------------------------------------

    async def emit_progress(self, event: ProgressData) -> None:
        """Publish a locally produced progress event to the sink and the peer."""

        await self.progress_sink.publish(event)
        if self.connection is None or not self.connection.is_connected:
            LOGGER.debug("Not connected; progress for %s kept local", event.command_id)
            return
        frame = build_progress_frame(event, self.connection.channel)
        try:
            await self.connection.send_frame(frame)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to send progress for %s: %s", event.command_id, exc)

    def progress_reporter(self, command_id: str, command_type: str) -> ProgressReporter:
        return ProgressReporter(self.emit_progress, command_id=command_id, command_type=command_type)

    # -- internals ----------------------------------------------------------

    async def _on_connection_lost(self, exc: Exception) -> None:
        assert self.pending is not None
        rejected = self.pending.reject_all(exc)
        if rejected:
            LOGGER.warning("Rejected %s pending request(s): %s", rejected, exc)
        await self._run_hooks(self._disconnect_hooks, exc)

    async def _run_hooks(self, hooks: List[Callable], *args: Any) -> None:
        for hook in list(hooks):
            try:
                result = hook(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                LOGGER.exception("Channel hook failed: %s", hook)
