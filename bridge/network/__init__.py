"""Network stack (transport/connection/router) for the command channel."""

from bridge.network.backoff import reconnect_delay_ms
from bridge.network.connection import Connection
from bridge.network.errors import (
    AlreadyJoined,
    ChannelError,
    JoinRejected,
    MalformedFrame,
    NotConnected,
    ReconnectExhausted,
    RemoteError,
    RequestTimeout,
    TransportError,
    UnknownCommand,
)
from bridge.network.pending import PendingRequest, PendingRequestTable
from bridge.network.router import MessageRouter
from bridge.network.state import ConnectionStatus, StatusTracker
from bridge.network.transport.base import BaseTransport
from bridge.network.transport.dummy import DummyTransport
from bridge.network.transport.websocket import WebSocketTransport

__all__ = [
    "AlreadyJoined",
    "BaseTransport",
    "ChannelError",
    "Connection",
    "ConnectionStatus",
    "DummyTransport",
    "JoinRejected",
    "MalformedFrame",
    "MessageRouter",
    "NotConnected",
    "PendingRequest",
    "PendingRequestTable",
    "ReconnectExhausted",
    "RemoteError",
    "RequestTimeout",
    "StatusTracker",
    "TransportError",
    "UnknownCommand",
    "WebSocketTransport",
    "reconnect_delay_ms",
]
