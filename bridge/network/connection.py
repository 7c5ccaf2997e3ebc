"""Connection wrapper that owns the transport, channel join and reconnection."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from bridge.config import BridgeSettings
from bridge.network.backoff import reconnect_delay_ms
from bridge.network.errors import (
    AlreadyJoined,
    ChannelError,
    JoinRejected,
    NotConnected,
    ReconnectExhausted,
    TransportError,
)
from bridge.network.state import ConnectionStatus, StatusTracker
from bridge.network.transport.base import (
    ABNORMAL_CLOSURE,
    JOIN_FAILED_CLOSURE,
    NORMAL_CLOSURE,
    SERVER_ERROR_CLOSURE,
    BaseTransport,
    TransportClosed,
)
from shared.models import SystemFrame
from shared.protocol import build_join_frame, generate_channel_name

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[BridgeSettings, str], BaseTransport]
FrameHandler = Callable[[Any], Awaitable[None]]
StatusListener = Callable[[ConnectionStatus, ConnectionStatus], Awaitable[None] | None]
ErrorListener = Callable[[Exception], Awaitable[None] | None]

_MAX_CLOSE_REASON = 120


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class Connection:
    """Single logical connection: one live transport, one joined channel."""

    def __init__(
        self,
        settings: BridgeSettings,
        transport_factory: TransportFactory,
        *,
        on_frame: Optional[FrameHandler] = None,
        endpoint: Optional[str] = None,
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory
        self._on_frame = on_frame
        self._endpoint = endpoint or settings.resolve_endpoint()
        self._preferred_channel: Optional[str] = settings.channel
        self._transport: Optional[BaseTransport] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._reconnect_deadline: Optional[float] = None
        self._join_waiter: Optional[asyncio.Future[str]] = None
        self._joining_channel: Optional[str] = None
        self._channel: Optional[str] = None
        self._tracker = StatusTracker()
        self._auto_reconnect = bool(settings.auto_reconnect)
        self.max_reconnect_attempts = int(settings.max_reconnect_attempts)
        self.reconnect_attempts = 0
        self._closed = False
        self._status_listeners: List[StatusListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._disconnect_hooks: List[Callable[[Exception], Awaitable[None] | None]] = []

    # -- observable state -------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._tracker.state

    @property
    def channel(self) -> Optional[str]:
        return self._channel

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED and self._transport is not None

    @property
    def auto_reconnect(self) -> bool:
        return self._auto_reconnect

    @auto_reconnect.setter
    def auto_reconnect(self, enabled: bool) -> None:
        self.set_auto_reconnect(enabled)

    def seconds_until_reconnect(self) -> Optional[float]:
        """Countdown to the scheduled reconnect, or ``None`` when nothing is scheduled."""

        if self._reconnect_deadline is None:
            return None
        return max(0.0, self._reconnect_deadline - asyncio.get_running_loop().time())

    def set_frame_handler(self, handler: FrameHandler) -> None:
        self._on_frame = handler

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def add_disconnect_hook(self, hook: Callable[[Exception], Awaitable[None] | None]) -> None:
        """Register a hook invoked whenever the live transport is lost or dropped."""
        self._disconnect_hooks.append(hook)

    # -- lifecycle ----------------------------------------------------------

    async def connect(self, endpoint: Optional[str] = None, *, channel: Optional[str] = None) -> str:
        """Open the socket and join a channel; returns the server-confirmed channel."""

        if self._closed:
            raise ChannelError("Connection has been closed")
        if self.status == ConnectionStatus.CONNECTED and self._channel:
            LOGGER.info("Already connected to %s in channel %s", self._endpoint, self._channel)
            return self._channel
        if endpoint:
            self._endpoint = endpoint
        if channel:
            self._preferred_channel = channel
        waiter = self._join_waiter
        if self.status == ConnectionStatus.CONNECTING and waiter is not None and not waiter.done():
            return await asyncio.shield(waiter)
        if self.status == ConnectionStatus.FAILED:
            self.reconnect_attempts = 0
        self._cancel_reconnect()
        return await self._open()

    async def join(self, channel: str) -> str:
        """Join ``channel``; a second join during a live session is refused."""

        if self.status == ConnectionStatus.CONNECTED:
            raise AlreadyJoined(f"Already joined channel {self._channel}; disconnect before joining {channel}")
        return await self.connect(channel=channel)

    async def disconnect(self) -> None:
        """Intentionally close the socket; never triggers a reconnect."""

        self._cancel_reconnect()
        self.reconnect_attempts = 0
        transport = self._detach()
        error = NotConnected("Disconnected from server")
        self._fail_waiter(error)
        await self._transition(ConnectionStatus.DISCONNECTED)
        if transport is not None:
            LOGGER.info("Disconnecting from %s", self._endpoint)
            try:
                await transport.close(NORMAL_CLOSURE, "User initiated disconnect")
            except Exception:  # noqa: BLE001
                LOGGER.debug("Suppress transport close error", exc_info=True)
        await self._run_hooks(self._disconnect_hooks, error)

    async def close(self) -> None:
        """Tear the connection down for good."""

        await self.disconnect()
        self._closed = True
        self._status_listeners.clear()
        self._error_listeners.clear()
        self._disconnect_hooks.clear()

    def set_auto_reconnect(self, enabled: bool) -> None:
        self._auto_reconnect = bool(enabled)
        if not enabled:
            # Only a still-waiting timer is cancelled; an attempt already opening runs to completion.
            if self._reconnect_deadline is not None:
                self._cancel_reconnect()
            self.reconnect_attempts = 0
            LOGGER.info("Auto-reconnect disabled")

    async def send_frame(self, frame: dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise NotConnected("Not connected to server")
        try:
            await transport.send(frame)
        except TransportClosed as exc:
            raise TransportError(str(exc), code=exc.code) from exc

    # -- inbound control frames ---------------------------------------------

    async def handle_join_ack(self, frame: SystemFrame) -> None:
        waiter = self._join_waiter
        transport = self._transport
        if self.status != ConnectionStatus.CONNECTING or waiter is None or waiter.done() or transport is None:
            LOGGER.warning("Ignoring unexpected join acknowledgement for channel %s (status=%s)", frame.channel, self.status.value)
            return
        if not frame.succeeded:
            error = JoinRejected(
                f"Server rejected join of channel {self._joining_channel}",
                code=JOIN_FAILED_CLOSURE,
            )
            LOGGER.error("%s", error)
            self._fail_waiter(error)
            await self._notify_error(error)
            await self._handle_close(transport, JOIN_FAILED_CLOSURE, "join rejected")
            return
        channel = frame.channel or self._joining_channel
        self._channel = channel
        self._joining_channel = None
        self.reconnect_attempts = 0
        await self._transition(ConnectionStatus.CONNECTED)
        if not waiter.done():
            waiter.set_result(channel)
        LOGGER.info("Connected to %s in channel %s", self._endpoint, channel)

    async def handle_server_error(self, message: Any) -> None:
        transport = self._transport
        error = TransportError(f"Server error: {message}", code=SERVER_ERROR_CLOSURE)
        LOGGER.error("%s", error)
        await self._notify_error(error)
        if transport is not None:
            await self._handle_close(transport, SERVER_ERROR_CLOSURE, str(message))

    # -- internals ----------------------------------------------------------

    async def _open(self) -> str:
        await self._discard_transport()
        await self._transition(ConnectionStatus.CONNECTING)
        transport = self._transport_factory(self._settings, self._endpoint)
        self._transport = transport
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        waiter.add_done_callback(_mark_retrieved)
        self._join_waiter = waiter
        try:
            try:
                await asyncio.wait_for(transport.connect(), timeout=self._settings.open_timeout_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                await self._fail_open(transport, f"Failed to open {self._endpoint}: {exc or type(exc).__name__}", exc)

            channel = self._preferred_channel or generate_channel_name(self._settings.channel_length)
            self._joining_channel = channel
            self._receive_task = asyncio.create_task(self._receive_loop(transport), name="channel-recv")
            try:
                await transport.send(build_join_frame(channel))
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                await self._fail_open(transport, f"Failed to send join for channel {channel}: {exc}", exc)
            LOGGER.info("Joining channel %s", channel)

            try:
                return await asyncio.wait_for(asyncio.shield(waiter), timeout=self._settings.join_timeout_seconds)
            except asyncio.TimeoutError as exc:
                error = TransportError(f"Timed out waiting for join of channel {channel}", code=JOIN_FAILED_CLOSURE)
                self._fail_waiter(error)
                await self._notify_error(error)
                await self._handle_close(transport, JOIN_FAILED_CLOSURE, "join timed out")
                raise error from exc
        except asyncio.CancelledError:
            if self._transport is transport:
                self._detach()
                self._fail_waiter(NotConnected("Connect cancelled"))
                with contextlib.suppress(Exception):
                    await transport.close(NORMAL_CLOSURE, "connect cancelled")
                await self._transition(ConnectionStatus.DISCONNECTED)
            raise

    async def _fail_open(self, transport: BaseTransport, message: str, exc: BaseException) -> None:
        error = TransportError(message, code=ABNORMAL_CLOSURE)
        LOGGER.warning("%s", message)
        self._fail_waiter(error)
        await self._notify_error(error)
        await self._handle_close(transport, ABNORMAL_CLOSURE, message)
        raise error from exc

    async def _receive_loop(self, transport: BaseTransport) -> None:
        try:
            while self._transport is transport:
                raw = await transport.receive()
                if self._on_frame is None:
                    LOGGER.debug("No frame handler registered; dropping frame")
                    continue
                try:
                    await self._on_frame(raw)
                except asyncio.CancelledError:
                    raise
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Frame handler failed")
        except asyncio.CancelledError:
            raise
        except TransportClosed as exc:
            LOGGER.info("WebSocket closed with code %s (%s)", exc.code, exc.reason or "no reason provided")
            await self._handle_close(transport, exc.code, exc.reason)
        except Exception as exc:  # noqa: BLE001
            error = TransportError(f"Receive loop error: {exc}", code=ABNORMAL_CLOSURE)
            LOGGER.warning("%s", error)
            await self._notify_error(error)
            await self._handle_close(transport, ABNORMAL_CLOSURE, str(exc))

    async def _handle_close(self, transport: BaseTransport, code: int, reason: str = "") -> None:
        if transport is not self._transport:
            LOGGER.debug("Ignoring close of stale transport (code=%s)", code)
            return
        self._detach()
        error = TransportError(f"Connection closed with code {code}", code=code)
        self._fail_waiter(error)

        # The status follows the detach before anything else is awaited.
        exhausted: Optional[ReconnectExhausted] = None
        delay_ms: Optional[float] = None
        if code == NORMAL_CLOSURE or not self._auto_reconnect:
            await self._transition(ConnectionStatus.DISCONNECTED)
        elif self.status != ConnectionStatus.FAILED:
            if self.reconnect_attempts >= self.max_reconnect_attempts:
                exhausted = ReconnectExhausted(self.reconnect_attempts)
                await self._transition(ConnectionStatus.FAILED)
            else:
                self.reconnect_attempts += 1
                delay_ms = reconnect_delay_ms(
                    self.reconnect_attempts,
                    base_ms=self._settings.reconnect_base_delay_ms,
                    factor=self._settings.reconnect_growth_factor,
                    max_ms=self._settings.reconnect_max_delay_ms,
                )
                await self._transition(ConnectionStatus.RECONNECTING)

        try:
            await transport.close(code, reason[:_MAX_CLOSE_REASON])
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress transport close error", exc_info=True)
        await self._run_hooks(self._disconnect_hooks, error)

        if exhausted is not None:
            LOGGER.error("%s; manual reconnect required", exhausted)
            await self._notify_error(exhausted)
        elif delay_ms is not None and self._auto_reconnect and self.status == ConnectionStatus.RECONNECTING:
            self._schedule_reconnect(delay_ms / 1000.0)

    def _schedule_reconnect(self, delay: float) -> None:
        self._cancel_reconnect()
        self._reconnect_deadline = asyncio.get_running_loop().time() + delay
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay), name="channel-reconnect")
        LOGGER.warning(
            "Connection lost. Reconnecting in %.1fs (attempt %s/%s)",
            delay,
            self.reconnect_attempts,
            self.max_reconnect_attempts,
        )

    async def _reconnect_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            self._reconnect_deadline = None
            LOGGER.info(
                "Attempting to reconnect (attempt %s/%s)",
                self.reconnect_attempts,
                self.max_reconnect_attempts,
            )
            await self._open()
        except asyncio.CancelledError:
            raise
        except ChannelError as exc:
            LOGGER.warning("Reconnect attempt %s failed: %s", self.reconnect_attempts, exc)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None
                self._reconnect_deadline = None

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        self._reconnect_deadline = None
        if task and task is not asyncio.current_task() and not task.done():
            LOGGER.debug("Cancelling scheduled reconnect")
            task.cancel()

    def _detach(self) -> Optional[BaseTransport]:
        """Forget the live transport so its late events are treated as stale."""

        transport = self._transport
        self._transport = None
        self._channel = None
        self._joining_channel = None
        task = self._receive_task
        self._receive_task = None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()
        return transport

    async def _discard_transport(self) -> None:
        transport = self._detach()
        if transport is None:
            return
        LOGGER.debug("Discarding previous transport")
        try:
            await transport.close(NORMAL_CLOSURE, "replaced")
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress transport close error", exc_info=True)

    def _fail_waiter(self, error: Exception) -> None:
        waiter = self._join_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    async def _transition(self, state: ConnectionStatus) -> None:
        previous = self._tracker.transition(state)
        if previous == state:
            return
        LOGGER.info("Connection status %s → %s", previous.value, state.value)
        await self._run_hooks(self._status_listeners, previous, state)

    async def _notify_error(self, error: Exception) -> None:
        await self._run_hooks(self._error_listeners, error)

    async def _run_hooks(self, hooks: List[Callable], *args: Any) -> None:
        for hook in list(hooks):
            try:
                result = hook(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                LOGGER.exception("Connection listener failed: %s", hook)
