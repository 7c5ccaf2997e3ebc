"""WebSocket transport implementation."""

from __future__ import annotations

import logging
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from bridge.config import BridgeSettings
from bridge.network.transport.base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, BaseTransport, TransportClosed
from shared.protocol import encode_frame

LOGGER = logging.getLogger(__name__)

# Codes that may be reported locally but never sent in a close frame.
_RESERVED_CODES = {1005, 1006, 1015}
_INTERNAL_ERROR = 1011


def _close_code(exc: ConnectionClosed) -> tuple[int, str]:
    if exc.rcvd is not None:
        return exc.rcvd.code, exc.rcvd.reason
    if exc.sent is not None:
        return exc.sent.code, exc.sent.reason
    return ABNORMAL_CLOSURE, ""


class WebSocketTransport(BaseTransport):
    """``websockets``-backed transport for the relay server."""

    def __init__(self, settings: BridgeSettings, endpoint: str) -> None:
        self._settings = settings
        self._endpoint = endpoint
        self._ws: Optional[ClientConnection] = None

    async def connect(self) -> None:
        LOGGER.info("Connecting to relay WebSocket at %s", self._endpoint)
        self._ws = await connect(self._endpoint, open_timeout=self._settings.open_timeout_seconds)

    async def send(self, message: dict[str, Any]) -> None:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "WebSocket transport not connected")
        payload = encode_frame(message)
        LOGGER.debug("WebSocket send: %s", payload)
        try:
            await self._ws.send(payload)
        except ConnectionClosed as exc:
            raise TransportClosed(*_close_code(exc)) from exc

    async def receive(self) -> str | bytes:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "WebSocket transport not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportClosed(*_close_code(exc)) from exc
        LOGGER.debug("WebSocket receive: %s", raw)
        return raw

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport (code=%s)", code)
            ws = self._ws
            self._ws = None
            if code in _RESERVED_CODES:
                code = _INTERNAL_ERROR
            await ws.close(code=code, reason=reason)
