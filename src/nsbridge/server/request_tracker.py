import time
import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass
class InFlightRequest:
    """Bookkeeping for one accepted request.

    `server_id` is the caller's key and may repeat across concurrent
    requests; `request_id` is unique per accepted request.
    """

    server_id: int
    type: str | None
    opcode: int
    extras: dict[str, Any]
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    accepted_at: float = field(default_factory=time.monotonic)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class RequestTracker:
    """Tracks requests between acceptance and handler completion.

    Several requests may share a server id. Lookups by server id resolve to
    the most recently accepted one still in flight; completion removes only
    the finishing request's own record.
    """

    def __init__(self):
        self._requests: dict[str, InFlightRequest] = {}
        self._by_server: dict[int, list[str]] = {}

    def track(self, request: InFlightRequest) -> None:
        self._requests[request.request_id] = request
        self._by_server.setdefault(request.server_id, []).append(request.request_id)

    def untrack(self, request_id: str) -> InFlightRequest | None:
        """Stop tracking a request.

        Returns:
            The record if it was tracked, None otherwise.
        """
        request = self._requests.pop(request_id, None)
        if request is None:
            return None

        ids = self._by_server.get(request.server_id, [])
        if request_id in ids:
            ids.remove(request_id)
        if not ids:
            self._by_server.pop(request.server_id, None)
        return request

    def get(self, request_id: str) -> InFlightRequest | None:
        return self._requests.get(request_id)

    def latest_for_server(self, server_id: int) -> InFlightRequest | None:
        """Most recently accepted in-flight request for a server id."""
        ids = self._by_server.get(server_id)
        if not ids:
            return None
        return self._requests.get(ids[-1])

    def for_server(self, server_id: int) -> list[InFlightRequest]:
        """All in-flight requests for a server id, oldest first."""
        return [self._requests[i] for i in self._by_server.get(server_id, [])]

    def count(self) -> int:
        return len(self._requests)

    def clear(self) -> None:
        self._requests.clear()
        self._by_server.clear()
