"""Status tracking for the command channel connection."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


class ConnectionStatus(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


_ALLOWED: dict[ConnectionStatus, set[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.FAILED,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.CONNECTED: {
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.FAILED,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.RECONNECTING: {
        ConnectionStatus.CONNECTING,
        ConnectionStatus.FAILED,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.FAILED: {ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED},
}


@dataclass
class StatusTracker:
    """In-memory connection status with validated transitions."""

    state: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def transition(self, next_state: ConnectionStatus) -> ConnectionStatus:
        """Move into ``next_state`` and return the previous state."""

        previous = self.state
        if previous == next_state:
            return previous
        if next_state not in _ALLOWED.get(previous, set()):
            raise ValueError(f"Invalid transition {previous.value} → {next_state.value}")
        self.state = next_state
        self.last_transition_at = datetime.now(tz=timezone.utc)
        return previous
