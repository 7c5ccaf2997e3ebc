"""Error taxonomy for the command channel."""

from __future__ import annotations

from typing import Optional


class ChannelError(RuntimeError):
    """Base class for command channel failures."""


class NotConnected(ChannelError):
    """Raised when a request is attempted while the channel is not joined."""


class RequestTimeout(ChannelError):
    """Raised when no response arrives before the request deadline."""

    def __init__(self, request_id: str, timeout: float) -> None:
        super().__init__(f"Request {request_id} timed out after {timeout:g}s")
        self.request_id = request_id
        self.timeout = timeout


class RemoteError(ChannelError):
    """Raised when the remote executor reports a failure for a request."""

    def __init__(self, message: str, *, request_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class TransportError(ChannelError):
    """Raised on socket-level failures (open, write, abnormal close)."""

    def __init__(self, message: str, *, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class JoinRejected(TransportError):
    """Raised when the server refuses the channel join."""


class ReconnectExhausted(ChannelError):
    """Raised (and broadcast) once the reconnect attempt cap is reached."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Gave up reconnecting after {attempts} attempt(s)")
        self.attempts = attempts


class MalformedFrame(ChannelError):
    """Raised for unparseable or unrecognised inbound frames."""


class AlreadyJoined(ChannelError):
    """Raised when a join is requested while a channel is already joined."""


class UnknownCommand(ChannelError):
    """Raised when no handler is registered for an inbound command."""


__all__ = [
    "ChannelError",
    "NotConnected",
    "RequestTimeout",
    "RemoteError",
    "TransportError",
    "JoinRejected",
    "ReconnectExhausted",
    "MalformedFrame",
    "AlreadyJoined",
    "UnknownCommand",
]
