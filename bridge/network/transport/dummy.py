"""In-memory transport for offline runs and tests."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from .base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)


class _Closed:
    def __init__(self, code: int, reason: str) -> None:
        self.code = code
        self.reason = reason


class DummyTransport(BaseTransport):
    """Loopback transport: records outbound frames, replays fed inbound frames.

    With ``auto_join_ack`` enabled every ``join`` frame is answered by a
    successful ``system`` ack for the same channel, which is enough to run the
    bridge without a relay server.
    """

    def __init__(
        self,
        settings=None,
        endpoint: str = "memory://",
        *,
        auto_join_ack: bool = True,
        ack_channel: Optional[str] = None,
        connect_error: Optional[BaseException] = None,
    ) -> None:
        self._settings = settings
        self.endpoint = endpoint
        self.auto_join_ack = auto_join_ack
        self.ack_channel = ack_channel
        self.connect_error = connect_error
        self.sent: list[dict[str, Any]] = []
        self.connected = False
        self.closed_with: Optional[tuple[int, str]] = None
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    async def connect(self) -> None:
        LOGGER.debug("Dummy transport connect(%s)", self.endpoint)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def send(self, message: dict[str, Any]) -> None:
        if not self.connected or self.closed_with is not None:
            raise TransportClosed(ABNORMAL_CLOSURE, "dummy transport not connected")
        LOGGER.debug("Dummy transport send(): %s", message)
        self.sent.append(message)
        if self.auto_join_ack and message.get("type") == "join":
            self.feed(
                {
                    "type": "system",
                    "channel": self.ack_channel or message.get("channel"),
                    "message": {"result": True},
                }
            )

    async def receive(self) -> str | bytes:
        item = await self._inbound.get()
        if isinstance(item, _Closed):
            raise TransportClosed(item.code, item.reason)
        return item

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        LOGGER.debug("Dummy transport close(%s)", code)
        if self.closed_with is None:
            self.closed_with = (code, reason)
            self._inbound.put_nowait(_Closed(code, reason))
        self.connected = False

    def feed(self, frame: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame; dicts are JSON-encoded first."""

        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def drop(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        """Simulate the peer closing the socket with ``code``."""

        self.connected = False
        self._inbound.put_nowait(_Closed(code, reason))

    def frames(self, frame_type: Optional[str] = None) -> list[dict[str, Any]]:
        if frame_type is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame.get("type") == frame_type]
