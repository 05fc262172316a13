import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from dice_bridge.errors import RequestCancelledError, RequestTimeoutError


@dataclass
class PendingRequest:
    request_id: str
    created_at: float
    deadline: float
    on_resolve: Callable[[Any], None]
    on_reject: Callable[[Exception], None]
    timer: Optional[asyncio.TimerHandle] = None
    resolved: bool = False


def roll_request_key(roll_id: str) -> str:
    return f"roll:{roll_id}"


def availability_request_key(request_id: str) -> str:
    return f"availability:{request_id}"


class RequestRegistry:
    """Outstanding caller-side requests keyed by correlation id.

    Every entry settles exactly once: through resolve(), reject(), its own
    timeout or cancel_all(). Later signals for the same id are ignored.
    One registry belongs to one owner and must be used from its event loop.
    """

    def __init__(self):
        self.pending: Dict[str, PendingRequest] = {}

    def register(
        self,
        request_id: str,
        on_resolve: Callable[[Any], None],
        on_reject: Callable[[Exception], None],
        timeout: float,
    ) -> None:
        """Track a request and schedule its timeout

        Args:
            request_id (str): Correlation id, unique among pending requests
            on_resolve (Callable[[Any], None]): Called once with the matching value
            on_reject (Callable[[Exception], None]): Called once with a timeout or cancellation error
            timeout (float): Seconds before the request is rejected with RequestTimeoutError

        Raises:
            ValueError: The id is already pending
        """
        if request_id in self.pending:
            raise ValueError(f"Request {request_id} is already pending")
        loop = asyncio.get_running_loop()
        now = time.monotonic()
        entry = PendingRequest(
            request_id=request_id,
            created_at=now,
            deadline=now + timeout,
            on_resolve=on_resolve,
            on_reject=on_reject,
        )
        entry.timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self.pending[request_id] = entry

    def wait_for(self, request_id: str, timeout: float) -> asyncio.Future:
        """Register a request and expose its outcome as a future.

        Cancelling the future drops the entry without invoking anything.
        """
        future = asyncio.get_running_loop().create_future()

        def on_resolve(value: Any) -> None:
            if not future.done():
                future.set_result(value)

        def on_reject(error: Exception) -> None:
            if not future.done():
                future.set_exception(error)

        self.register(request_id, on_resolve, on_reject, timeout)
        future.add_done_callback(
            lambda f: self.discard(request_id) if f.cancelled() else None
        )
        return future

    def resolve(self, request_id: str, value: Any) -> bool:
        """Settle a request successfully. Returns False if it is not pending."""
        entry = self._take(request_id)
        if entry is None:
            return False
        self._call(entry.on_resolve, value, request_id)
        return True

    def reject(self, request_id: str, error: Exception) -> bool:
        """Settle a request with an error. Returns False if it is not pending."""
        entry = self._take(request_id)
        if entry is None:
            return False
        self._call(entry.on_reject, error, request_id)
        return True

    def discard(self, request_id: str) -> None:
        self._take(request_id)

    def cancel_all(self) -> None:
        """Reject every outstanding request so no caller waits past teardown"""
        for request_id in list(self.pending.keys()):
            self.reject(request_id, RequestCancelledError(request_id))

    def is_pending(self, request_id: str) -> bool:
        return request_id in self.pending

    def __len__(self) -> int:
        return len(self.pending)

    def _take(self, request_id: str) -> Optional[PendingRequest]:
        entry = self.pending.pop(request_id, None)
        if entry is None or entry.resolved:
            return None
        entry.resolved = True
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        return entry

    def _expire(self, request_id: str, timeout: float) -> None:
        entry = self._take(request_id)
        if entry is None:
            return
        logging.info(f"Request {request_id} timed out after {timeout}s")
        self._call(entry.on_reject, RequestTimeoutError(request_id, timeout), request_id)

    def _call(self, callback: Callable[[Any], None], value: Any, request_id: str) -> None:
        try:
            callback(value)
        except Exception as e:
            logging.error(f"Continuation for request {request_id} failed: {e}")
