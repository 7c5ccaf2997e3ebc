"""Progress events: the local sink and the reporter handed to command handlers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from shared.models import ProgressData, ProgressStatus
from shared.protocol import now_ms

LOGGER = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressData], Awaitable[None] | None]
ProgressEmitter = Callable[[ProgressData], Awaitable[None]]


class ProgressSink:
    """Fans progress events out to listeners and per-command watchers.

    Events are not stored; a watcher only sees events published after it
    started watching.
    """

    def __init__(self) -> None:
        self._listeners: List[ProgressListener] = []
        self._watchers: Dict[str, List[asyncio.Queue[ProgressData]]] = defaultdict(list)

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: ProgressData) -> None:
        LOGGER.info(
            "Progress update for %s (%s): %s%% - %s",
            event.command_type,
            event.command_id,
            event.progress,
            event.message or event.status.value,
        )
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                LOGGER.exception("Progress listener failed: %s", listener)
        for queue in list(self._watchers.get(event.command_id, ())):
            queue.put_nowait(event)

    async def watch(self, command_id: str) -> AsyncIterator[ProgressData]:
        """Yield events for ``command_id`` until it completes or errors."""

        queue: asyncio.Queue[ProgressData] = asyncio.Queue()
        self._watchers[command_id].append(queue)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.finished:
                    return
        finally:
            watchers = self._watchers.get(command_id)
            if watchers is not None:
                if queue in watchers:
                    watchers.remove(queue)
                if not watchers:
                    self._watchers.pop(command_id, None)

    def watcher_count(self, command_id: str) -> int:
        return len(self._watchers.get(command_id, ()))


class ProgressReporter:
    """Publishes progress for one command.

    Handlers obtain an instance via ``CommandContext.progress`` and may call
    :meth:`send` (awaitable), :meth:`send_nowait` (fire-and-forget on the
    loop) or :meth:`send_threadsafe` (from a handler running in a worker
    thread).
    """

    def __init__(
        self,
        emitter: ProgressEmitter,
        *,
        command_id: str,
        command_type: str,
    ) -> None:
        if not command_id or not command_type:
            raise ValueError("Missing required parameters for progress update")
        self._emitter = emitter
        self.command_id = command_id
        self.command_type = command_type
        self._last_progress = 0
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:  # pragma: no cover - fallback for sync contexts
            self._loop = asyncio.get_event_loop()

    def build(
        self,
        *,
        status: ProgressStatus | str,
        progress: int,
        total_items: Optional[int] = None,
        processed_items: Optional[int] = None,
        message: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ProgressData:
        if not status:
            raise ValueError("Missing required parameters for progress update")
        if progress < 0 or progress > 100:
            raise ValueError("Progress must be between 0 and 100")
        chunk: Dict[str, Any] = {}
        if payload and payload.get("currentChunk") is not None and payload.get("totalChunks") is not None:
            chunk = {
                "current_chunk": payload.get("currentChunk"),
                "total_chunks": payload.get("totalChunks"),
                "chunk_size": payload.get("chunkSize"),
            }
        return ProgressData(
            command_id=self.command_id,
            command_type=self.command_type,
            status=ProgressStatus(status),
            progress=int(progress),
            total_items=total_items,
            processed_items=processed_items,
            message=message,
            payload=payload,
            timestamp=now_ms(),
            **chunk,
        )

    async def send(self, **kwargs: Any) -> ProgressData:
        """Build and emit a progress event; keyword arguments mirror :meth:`build`."""

        event = self.build(**kwargs)
        self._last_progress = event.progress
        await self._emitter(event)
        return event

    def send_nowait(self, **kwargs: Any) -> asyncio.Task[ProgressData]:
        return self._loop.create_task(self.send(**kwargs))

    def send_threadsafe(self, **kwargs: Any) -> ProgressData:
        """Emit from a worker thread and wait for the event to be published."""

        future = asyncio.run_coroutine_threadsafe(self.send(**kwargs), self._loop)
        return future.result()

    async def started(self, message: Optional[str] = None, *, total_items: Optional[int] = None) -> ProgressData:
        return await self.send(
            status=ProgressStatus.started,
            progress=0,
            total_items=total_items,
            processed_items=0 if total_items is not None else None,
            message=message,
        )

    async def update(
        self,
        progress: int,
        message: Optional[str] = None,
        *,
        processed_items: Optional[int] = None,
        total_items: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ProgressData:
        return await self.send(
            status=ProgressStatus.in_progress,
            progress=progress,
            total_items=total_items,
            processed_items=processed_items,
            message=message,
            payload=payload,
        )

    async def completed(self, message: Optional[str] = None, *, total_items: Optional[int] = None) -> ProgressData:
        return await self.send(
            status=ProgressStatus.completed,
            progress=100,
            total_items=total_items,
            processed_items=total_items,
            message=message,
        )

    async def failed(self, message: str) -> ProgressData:
        return await self.send(status=ProgressStatus.error, progress=self._last_progress, message=message)
