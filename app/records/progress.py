"""Progress reporting between the batch controller and the push channel.

The controller calls a ``ProgressSink`` after every settled attempt. The
service layer turns those calls into ``ProgressEvent`` objects and delivers
them as server-sent events.
"""

from __future__ import annotations

import json
import queue
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterator, Optional

ProgressSink = Callable[[int, int, bool], None]

KIND_PROGRESS = "progress"
KIND_WARNING = "connectivity-warning"
KIND_DONE = "done"

OUTCOME_SUCCESS = "success"
OUTCOME_EMPTY = "empty"
OUTCOME_OUTAGE = "outage_detected"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_ERROR = "error"

CONNECTIVITY_WARNING_MESSAGE = "Falha de conexão com o servidor da Prefeitura."


def percent_complete(completed: int, total: int) -> int:
    if total <= 0:
        return 100
    return max(0, min(100, round(completed * 100 / total)))


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    percent: Optional[int] = None
    outcome: Optional[str] = None
    record_count: Optional[int] = None
    file: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def to_sse(self) -> str:
        return format_sse(self.kind, self.to_dict())

    @classmethod
    def progress(cls, completed: int, total: int) -> "ProgressEvent":
        return cls(KIND_PROGRESS, percent=percent_complete(completed, total))

    @classmethod
    def warning(cls) -> "ProgressEvent":
        return cls(KIND_WARNING, message=CONNECTIVITY_WARNING_MESSAGE)

    @classmethod
    def done(
        cls,
        outcome: str,
        *,
        record_count: Optional[int] = None,
        file: Optional[str] = None,
        message: Optional[str] = None,
    ) -> "ProgressEvent":
        return cls(KIND_DONE, outcome=outcome, record_count=record_count, file=file, message=message)


def format_sse(event: str, data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False)
    return f"event: {event}\ndata: {payload}\n\n"


class EventQueueSink:
    """
    ``ProgressSink`` that hands events to another thread through a queue.

    ``put`` on an unbounded queue never blocks, so the controller is never
    stalled by a slow consumer.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue()

    def __call__(self, completed: int, total: int, connectivity_warning: bool) -> None:
        if connectivity_warning:
            self._queue.put(ProgressEvent.warning())
        else:
            self._queue.put(ProgressEvent.progress(completed, total))

    def publish(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def events(self, keepalive_seconds: float) -> Iterator[Optional[ProgressEvent]]:
        """Yield queued events until ``done``; ``None`` marks a keep-alive tick."""

        while True:
            try:
                event = self._queue.get(timeout=keepalive_seconds)
            except queue.Empty:
                yield None
                continue
            yield event
            if event.kind == KIND_DONE:
                return


__all__ = [
    "ProgressSink",
    "ProgressEvent",
    "EventQueueSink",
    "format_sse",
    "percent_complete",
    "KIND_PROGRESS",
    "KIND_WARNING",
    "KIND_DONE",
    "OUTCOME_SUCCESS",
    "OUTCOME_EMPTY",
    "OUTCOME_OUTAGE",
    "OUTCOME_CANCELLED",
    "OUTCOME_ERROR",
]
