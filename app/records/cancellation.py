from __future__ import annotations

import threading
import uuid
from typing import Dict, Optional

from .error_codes import ErrorCode
from .logging_utils import _records_event

REASON_USER = "user_request"
REASON_DISCONNECT = "client_disconnect"
REASON_OUTAGE = "outage_detected"


class FetchCancelled(Exception):
    """Raised at a fetch check point once its cancel signal has fired."""

    error_code = ErrorCode.CANCELLED

    def __init__(self, signal: "CancelSignal") -> None:
        super().__init__(f"cancelled ({signal.reason or 'unknown'})")
        self.signal = signal


class CancelSignal:
    """
    One-shot cancellation flag shared by a batch and all of its fetches.

    The first ``cancel`` call wins; its reason is kept so the batch can tell
    a user request apart from an outage abort.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = REASON_USER) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FetchCancelled(self)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class CancellationRegistry:
    """Active batch signals, keyed by request id, for the cancel-all action.

    Owned by the service layer. Entries are inserted when a batch starts and
    removed when it ends, whatever the outcome.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._signals: Dict[str, CancelSignal] = {}

    def register(self, signal: CancelSignal, request_id: Optional[str] = None) -> str:
        request_id = request_id or uuid.uuid4().hex[:12]
        with self._lock:
            self._signals[request_id] = signal
        return request_id

    def unregister(self, request_id: str) -> None:
        with self._lock:
            self._signals.pop(request_id, None)

    def cancel_all(self, reason: str = REASON_USER) -> int:
        with self._lock:
            entries = list(self._signals.items())
            self._signals.clear()
        for request_id, signal in entries:
            signal.cancel(reason)
            _records_event("state", phase="cancel", kind="cancel_all", request_id=request_id, reason=reason)
        return len(entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._signals)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._signals


__all__ = [
    "CancelSignal",
    "CancellationRegistry",
    "FetchCancelled",
    "REASON_USER",
    "REASON_DISCONNECT",
    "REASON_OUTAGE",
]
