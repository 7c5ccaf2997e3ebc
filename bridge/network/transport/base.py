"""Transport abstractions for the command channel."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
# Application-range codes used when this side tears the socket down itself.
JOIN_FAILED_CLOSURE = 4001
SERVER_ERROR_CLOSURE = 4002


class TransportClosed(Exception):
    """Raised by ``receive``/``send`` once the socket is closed."""

    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        super().__init__(f"transport closed with code {code}" + (f": {reason}" if reason else ""))
        self.code = code
        self.reason = reason


class BaseTransport(ABC):
    """Abstract WebSocket-like transport owned by a single Connection."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def receive(self) -> str | bytes:
        """Return the next raw frame or raise :class:`TransportClosed`."""

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        ...
