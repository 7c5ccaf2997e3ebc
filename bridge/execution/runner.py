"""Command execution runner leveraging the handler registry."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Dict, Optional, Protocol, Set

from bridge.network.errors import ChannelError

from .context import CommandContext
from .progress import ProgressEmitter, ProgressReporter
from .registry import CommandRegistry

LOGGER = logging.getLogger(__name__)


EXEC_MODE_AUTO = "auto"
EXEC_MODE_INLINE = "inline"
EXEC_MODE_THREAD = "thread"
EXEC_MODE_ALIASES = {
    "async": EXEC_MODE_INLINE,
    "event_loop": EXEC_MODE_INLINE,
    "loop": EXEC_MODE_INLINE,
}


class DuplicateCommand(ChannelError):
    """Raised when a command id is already executing."""


class CommandExecutor(Protocol):
    async def execute(
        self,
        command: str,
        params: Dict[str, Any],
        *,
        command_id: Optional[str] = None,
    ) -> Any: ...


class CommandRunner:
    """Delegates inbound commands to registered handlers."""

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        default_exec_mode: str = EXEC_MODE_AUTO,
        max_inflight: int = 0,
        progress_emitter: Optional[ProgressEmitter] = None,
    ) -> None:
        self._registry = registry
        self._default_exec_mode = self._normalize_exec_mode(default_exec_mode) or EXEC_MODE_AUTO
        self._progress_emitter = progress_emitter
        self._inflight: Set[str] = set()
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_inflight) if max_inflight > 0 else None
        )

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    def bind_progress(self, emitter: Optional[ProgressEmitter]) -> None:
        self._progress_emitter = emitter

    def inflight(self) -> int:
        return len(self._inflight)

    async def execute(
        self,
        command: str,
        params: Dict[str, Any],
        *,
        command_id: Optional[str] = None,
    ) -> Any:
        descriptor = self._registry.resolve(command)
        if command_id and command_id in self._inflight:
            raise DuplicateCommand(f"Command {command_id} is already running")
        key = command_id or ""
        if key:
            self._inflight.add(key)
        try:
            if self._semaphore is None:
                return await self._invoke(descriptor, command, params or {}, command_id)
            async with self._semaphore:
                return await self._invoke(descriptor, command, params or {}, command_id)
        finally:
            if key:
                self._inflight.discard(key)

    async def _invoke(self, descriptor, command: str, params: Dict[str, Any], command_id: Optional[str]) -> Any:
        context = CommandContext(
            command_id=command_id or "",
            command=command,
            params=params,
            progress=self._build_reporter(command, command_id),
        )
        exec_mode = self._normalize_exec_mode(descriptor.exec_mode) or self._default_exec_mode
        LOGGER.debug("Executing command %s id=%s mode=%s", command, command_id, exec_mode)
        handler = descriptor.callable
        if exec_mode == EXEC_MODE_THREAD:
            return await self._execute_in_thread(handler, params, context)
        if exec_mode == EXEC_MODE_INLINE:
            return await self._execute_inline(handler, params, context)
        return await self._execute_auto(handler, params, context)

    def _build_reporter(self, command: str, command_id: Optional[str]) -> Optional[ProgressReporter]:
        if self._progress_emitter is None or not command_id:
            return None
        return ProgressReporter(self._progress_emitter, command_id=command_id, command_type=command)

    @staticmethod
    def _normalize_exec_mode(value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized in {EXEC_MODE_AUTO, EXEC_MODE_INLINE, EXEC_MODE_THREAD}:
            return normalized
        return EXEC_MODE_ALIASES.get(normalized)

    async def _execute_inline(self, handler, params, context):
        result = handler(params, context)
        return await self._maybe_await(result)

    async def _execute_auto(self, handler, params, context):
        if inspect.iscoroutinefunction(handler):
            return await handler(params, context)
        result = await asyncio.to_thread(handler, params, context)
        return await self._maybe_await(result)

    async def _execute_in_thread(self, handler, params, context):
        if inspect.iscoroutinefunction(handler):
            LOGGER.debug("exec_mode=thread requested for async handler; running inline")
            return await handler(params, context)
        result = await asyncio.to_thread(handler, params, context)
        if hasattr(result, "__await__"):
            LOGGER.warning("Threaded handler returned awaitable; running inline")
            return await result
        return result

    @staticmethod
    async def _maybe_await(value: Any) -> Any:
        if hasattr(value, "__await__"):
            return await value
        return value
