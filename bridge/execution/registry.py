"""Name → handler table for inbound commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from bridge.network.errors import UnknownCommand

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[..., Any]


@dataclass(frozen=True)
class HandlerDescriptor:
    name: str
    callable: CommandHandler
    exec_mode: Optional[str] = None


class CommandRegistry:
    """Registered command handlers, looked up by command name."""

    def __init__(self) -> None:
        self._handlers: Dict[str, HandlerDescriptor] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        *,
        exec_mode: Optional[str] = None,
        replace: bool = False,
    ) -> HandlerDescriptor:
        if not name:
            raise ValueError("command name must be a non-empty string")
        if name in self._handlers and not replace:
            raise ValueError(f"command {name!r} is already registered")
        descriptor = HandlerDescriptor(name=name, callable=handler, exec_mode=exec_mode)
        self._handlers[name] = descriptor
        LOGGER.debug("Registered command handler %s: %s", name, handler)
        return descriptor

    def command(self, name: Optional[str] = None, *, exec_mode: Optional[str] = None):
        """Decorator form of :meth:`register`; defaults to the function name."""

        def decorator(func: CommandHandler) -> CommandHandler:
            self.register(name or func.__name__, func, exec_mode=exec_mode)
            return func

        return decorator

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def resolve(self, name: str) -> HandlerDescriptor:
        descriptor = self._handlers.get(name)
        if descriptor is None:
            raise UnknownCommand(f"Unknown command: {name}")
        return descriptor

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[HandlerDescriptor]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)
