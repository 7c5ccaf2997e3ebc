"""Reconnect backoff policy."""

from __future__ import annotations

BASE_DELAY_MS = 1000
GROWTH_FACTOR = 1.5
MAX_DELAY_MS = 30000


def reconnect_delay_ms(
    attempt: int,
    *,
    base_ms: float = BASE_DELAY_MS,
    factor: float = GROWTH_FACTOR,
    max_ms: float = MAX_DELAY_MS,
) -> float:
    """Delay before reconnect ``attempt``: ``min(base * factor**attempt, max)``."""

    attempt = max(0, int(attempt))
    try:
        delay = base_ms * (factor**attempt)
    except OverflowError:
        return float(max_ms)
    return float(min(delay, max_ms))
