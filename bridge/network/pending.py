"""Correlation of outbound requests with inbound responses."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Optional, Set

from shared.protocol import generate_request_id

from .errors import RemoteError, RequestTimeout

LOGGER = logging.getLogger(__name__)

_RETIRED_MAX = 512


@dataclass
class PendingRequest:
    id: str
    command: str
    future: asyncio.Future
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    timeout_handle: Optional[asyncio.TimerHandle] = None


class PendingRequestTable:
    """Tracks in-flight requests by id; each entry settles exactly once."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        id_factory: Callable[[], str] = generate_request_id,
    ) -> None:
        self._timeout = float(timeout)
        self._id_factory = id_factory
        self._entries: Dict[str, PendingRequest] = {}
        self._retired: Deque[str] = deque()
        self._retired_index: Set[str] = set()

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def timeout(self) -> float:
        return self._timeout

    def register(self, command: str, *, request_id: Optional[str] = None) -> PendingRequest:
        """Create an entry with a fresh id and arm its timeout."""

        loop = asyncio.get_running_loop()
        request_id = request_id or self._id_factory()
        if request_id in self._entries:
            raise ValueError(f"Request id {request_id} is already pending")
        entry = PendingRequest(id=request_id, command=command, future=loop.create_future())
        entry.timeout_handle = loop.call_later(self._timeout, self._expire, request_id)
        # A caller abandoning its await must not leave the entry behind.
        entry.future.add_done_callback(lambda fut, rid=request_id: self._on_future_done(rid, fut))
        self._entries[request_id] = entry
        LOGGER.debug("Registered request id=%s command=%s", request_id, command)
        return entry

    def resolve(self, request_id: str, result: Any) -> bool:
        entry = self._retire(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(result)
        return True

    def reject(self, request_id: str, exc: BaseException) -> bool:
        entry = self._retire(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def settle(self, request_id: str, *, result: Any = None, error: Optional[str] = None) -> bool:
        """Apply an inbound response payload to the matching entry."""

        if error is not None:
            return self.reject(request_id, RemoteError(str(error), request_id=request_id))
        return self.resolve(request_id, result)

    def discard(self, request_id: str) -> None:
        """Drop an entry without settling it (e.g. the wire write failed)."""

        entry = self._retire(request_id)
        if entry is not None and not entry.future.done():
            entry.future.cancel()

    def reject_all(self, exc: BaseException) -> int:
        """Reject every pending entry with ``exc``; returns how many were settled."""

        request_ids = list(self._entries)
        if request_ids:
            LOGGER.debug("Rejecting %s pending request(s): %s", len(request_ids), exc)
        settled = 0
        for request_id in request_ids:
            if self.reject(request_id, exc):
                settled += 1
        return settled

    def was_retired(self, request_id: str) -> bool:
        """Whether ``request_id`` recently settled (used to quiet late frames)."""

        return request_id in self._retired_index

    def _expire(self, request_id: str) -> None:
        entry = self._entries.get(request_id)
        if entry is None:
            return
        LOGGER.warning("Request %s (%s) timed out after %.1fs", request_id, entry.command, self._timeout)
        self.reject(request_id, RequestTimeout(request_id, self._timeout))

    def _on_future_done(self, request_id: str, future: asyncio.Future) -> None:
        if future.cancelled() and request_id in self._entries:
            LOGGER.debug("Request %s cancelled by caller", request_id)
            self._retire(request_id)

    def _retire(self, request_id: str) -> Optional[PendingRequest]:
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return None
        if entry.timeout_handle is not None:
            entry.timeout_handle.cancel()
        self._track_retired(request_id)
        return entry

    def _track_retired(self, request_id: str) -> None:
        if request_id in self._retired_index:
            return
        self._retired.append(request_id)
        self._retired_index.add(request_id)
        if len(self._retired) > _RETIRED_MAX:
            oldest = self._retired.popleft()
            self._retired_index.discard(oldest)
