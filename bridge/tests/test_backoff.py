import pytest

from bridge.network.backoff import reconnect_delay_ms
from bridge.network.state import ConnectionStatus, StatusTracker


@pytest.mark.parametrize("attempt, expected", [(0, 1000.0), (1, 1500.0), (2, 2250.0), (3, 3375.0)])
def test_delay_grows_geometrically(attempt, expected):
    assert reconnect_delay_ms(attempt) == pytest.approx(expected)


def test_delay_is_monotone_and_capped():
    delays = [reconnect_delay_ms(n) for n in range(40)]
    assert delays == sorted(delays)
    assert max(delays) == 30000.0
    assert reconnect_delay_ms(10_000) == 30000.0


def test_negative_attempt_is_clamped():
    assert reconnect_delay_ms(-3) == 1000.0


def test_custom_policy():
    assert reconnect_delay_ms(2, base_ms=10, factor=2, max_ms=35) == 35.0
    assert reconnect_delay_ms(1, base_ms=10, factor=2, max_ms=35) == 20.0


def test_status_tracker_rejects_illegal_transition():
    tracker = StatusTracker()
    with pytest.raises(ValueError):
        tracker.transition(ConnectionStatus.CONNECTED)
    assert tracker.transition(ConnectionStatus.CONNECTING) == ConnectionStatus.DISCONNECTED
    assert tracker.transition(ConnectionStatus.CONNECTING) == ConnectionStatus.CONNECTING
    tracker.transition(ConnectionStatus.RECONNECTING)
    tracker.transition(ConnectionStatus.FAILED)
    with pytest.raises(ValueError):
        tracker.transition(ConnectionStatus.RECONNECTING)
    tracker.transition(ConnectionStatus.CONNECTING)
    assert tracker.state == ConnectionStatus.CONNECTING
