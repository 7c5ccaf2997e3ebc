"""Inbound frame classification and dispatch."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Set

from pydantic import ValidationError

from bridge.network.connection import Connection
from bridge.network.errors import ChannelError, MalformedFrame
from bridge.network.pending import PendingRequestTable
from shared.models import CommandMessage, FrameType, ProgressData, ResponseMessage, SystemFrame
from shared.protocol import (
    FrameDecodeError,
    build_error_frame,
    build_response_frame,
    decode_frame,
    encode_frame,
)

if TYPE_CHECKING:
    from bridge.execution.progress import ProgressSink
    from bridge.execution.runner import CommandExecutor

LOGGER = logging.getLogger(__name__)

_ENVELOPE_KEYS = frozenset({"type", "channel", "id"})

FrameRoute = Callable[[Dict[str, Any]], Awaitable[None]]


class MessageRouter:
    """Classifies inbound frames and hands them to the owning component.

    Nothing raised while routing a frame escapes :meth:`handle_raw`; a bad
    frame is logged and dropped so the receive loop keeps going.
    """

    def __init__(
        self,
        connection: Connection,
        pending: PendingRequestTable,
        *,
        progress_sink: Optional["ProgressSink"] = None,
        executor: Optional["CommandExecutor"] = None,
    ) -> None:
        self._connection = connection
        self._pending = pending
        self._progress_sink = progress_sink
        self._executor = executor
        self._tasks: Set[asyncio.Task[None]] = set()
        self._routes: Dict[str, FrameRoute] = {
            FrameType.system.value: self._on_system,
            FrameType.error.value: self._on_error,
            FrameType.message.value: self._on_message,
            FrameType.progress_update.value: self._on_progress,
            FrameType.command_progress.value: self._on_progress,
        }

    @property
    def active_commands(self) -> int:
        return len(self._tasks)

    async def handle_raw(self, raw: str | bytes) -> None:
        try:
            frame = decode_frame(raw)
        except FrameDecodeError as exc:
            LOGGER.warning("Dropping malformed frame: %s", exc)
            return
        LOGGER.debug("Received frame: %s", frame)
        try:
            await self.route(frame)
        except MalformedFrame as exc:
            LOGGER.warning("Dropping frame: %s", exc)
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to route frame of type %s", frame.get("type"))

    async def route(self, frame: Dict[str, Any]) -> None:
        frame_type = frame.get("type")
        if frame_type is None:
            if frame.get("id") is not None and ("result" in frame or "error" in frame):
                self._settle(frame["id"], frame)
                return
            raise MalformedFrame(f"untyped frame without a response payload: {frame}")
        handler = self._routes.get(frame_type)
        if handler is None:
            raise MalformedFrame(f"unknown frame type {frame_type!r}")
        await handler(frame)

    async def cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # -- routes -------------------------------------------------------------

    async def _on_system(self, frame: Dict[str, Any]) -> None:
        await self._connection.handle_join_ack(SystemFrame.model_validate(frame))

    async def _on_error(self, frame: Dict[str, Any]) -> None:
        message = frame.get("message", frame.get("error"))
        request_id = frame.get("id")
        if request_id is not None and request_id in self._pending:
            self._pending.settle(request_id, error=str(message))
            return
        await self._connection.handle_server_error(message)

    async def _on_message(self, frame: Dict[str, Any]) -> None:
        payload = frame.get("message")
        if not isinstance(payload, dict):
            raise MalformedFrame("message frame without an object payload")
        request_id = payload.get("id", frame.get("id"))
        if request_id is None:
            raise MalformedFrame("message frame without an id")
        if "result" in payload or "error" in payload:
            self._settle(request_id, payload)
            return
        if "command" in payload:
            if request_id in self._pending:
                LOGGER.debug("Ignoring echo of outbound command %s", request_id)
                return
            self._dispatch_command(payload)
            return
        raise MalformedFrame(f"message frame {request_id} has neither a command nor a result")

    async def _on_progress(self, frame: Dict[str, Any]) -> None:
        message = frame.get("message")
        data = message.get("data") if isinstance(message, dict) else None
        if data is None:
            data = frame.get("data")
        if data is None and "commandId" in frame:
            # Flat shape: progress fields sit at the top level of the frame.
            data = {key: value for key, value in frame.items() if key not in _ENVELOPE_KEYS}
        if not isinstance(data, dict):
            raise MalformedFrame("progress frame without data")
        try:
            event = ProgressData.model_validate(data)
        except ValidationError as exc:
            LOGGER.warning("Dropping invalid progress update: %s", exc)
            return
        if self._progress_sink is None:
            LOGGER.debug("No progress sink; dropping update for %s", event.command_id)
            return
        await self._progress_sink.publish(event)

    # -- helpers ------------------------------------------------------------

    def _settle(self, request_id: Any, payload: Dict[str, Any]) -> None:
        try:
            response = ResponseMessage.model_validate({**payload, "id": str(request_id)})
        except ValidationError as exc:
            raise MalformedFrame(f"invalid response payload: {exc}") from exc
        request_id = response.id
        settled = self._pending.settle(request_id, result=response.result, error=response.error)
        if settled:
            return
        if self._pending.was_retired(request_id):
            LOGGER.debug("Dropping late response for request %s", request_id)
        else:
            LOGGER.warning("Dropping response for unknown request %s", request_id)

    def _dispatch_command(self, payload: Dict[str, Any]) -> None:
        try:
            command = CommandMessage.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning("Dropping invalid command payload: %s", exc)
            return
        if self._executor is None:
            LOGGER.warning("No executor registered; rejecting command %s", command.command)
            task = asyncio.create_task(
                self._reply_error(command.id, f"Unknown command: {command.command}"),
                name=f"command-{command.id}",
            )
        else:
            task = asyncio.create_task(self._run_command(command), name=f"command-{command.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_command(self, command: CommandMessage) -> None:
        assert self._executor is not None
        try:
            result = await self._executor.execute(command.command, command.params, command_id=command.id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, ChannelError):
                LOGGER.warning("Command %s (%s) failed: %s", command.command, command.id, exc)
            else:
                LOGGER.exception("Command %s (%s) raised", command.command, command.id)
            await self._reply_error(command.id, str(exc) or type(exc).__name__)
            return
        try:
            frame = build_response_frame(command.id, self._connection.channel, result)
            encode_frame(frame)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Result of command %s is not serialisable: %s", command.id, exc)
            await self._reply_error(command.id, f"Result is not serialisable: {exc}")
            return
        await self._send(frame, command.id)

    async def _reply_error(self, request_id: str, message: str) -> None:
        await self._send(build_error_frame(request_id, message), request_id)

    async def _send(self, frame: Dict[str, Any], request_id: str) -> None:
        try:
            await self._connection.send_frame(frame)
        except ChannelError as exc:
            LOGGER.warning("Could not deliver reply for command %s: %s", request_id, exc)
