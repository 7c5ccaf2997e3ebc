"""Transport implementations for the command channel."""

from .base import (
    ABNORMAL_CLOSURE,
    JOIN_FAILED_CLOSURE,
    NORMAL_CLOSURE,
    SERVER_ERROR_CLOSURE,
    BaseTransport,
    TransportClosed,
)
from .dummy import DummyTransport
from .websocket import WebSocketTransport

__all__ = [
    "ABNORMAL_CLOSURE",
    "JOIN_FAILED_CLOSURE",
    "NORMAL_CLOSURE",
    "SERVER_ERROR_CLOSURE",
    "BaseTransport",
    "TransportClosed",
    "DummyTransport",
    "WebSocketTransport",
]
