import json

import pytest

from app.records.progress import (
    CONNECTIVITY_WARNING_MESSAGE,
    KIND_DONE,
    KIND_PROGRESS,
    KIND_WARNING,
    OUTCOME_SUCCESS,
    EventQueueSink,
    ProgressEvent,
    format_sse,
    percent_complete,
)


@pytest.mark.parametrize(
    "completed, total, expected",
    [(0, 10, 0), (1, 3, 33), (2, 3, 67), (5, 5, 100), (0, 0, 100)],
)
def test_percent_complete(completed: int, total: int, expected: int) -> None:
    assert percent_complete(completed, total) == expected


def test_sink_maps_reports_to_events() -> None:
    sink = EventQueueSink()
    sink(1, 4, False)
    sink(2, 4, True)
    sink.publish(ProgressEvent.done(OUTCOME_SUCCESS, record_count=3, file="/exports/a.xlsx"))
    sink(3, 4, False)

    events = list(sink.events(keepalive_seconds=0.01))

    assert [event.kind for event in events] == [KIND_PROGRESS, KIND_WARNING, KIND_DONE]
    assert events[0].percent == 25
    assert events[1].message == CONNECTIVITY_WARNING_MESSAGE
    assert events[2].to_dict() == {
        "kind": "done",
        "outcome": "success",
        "record_count": 3,
        "file": "/exports/a.xlsx",
    }


def test_events_yield_keepalive_ticks_while_idle() -> None:
    sink = EventQueueSink()
    stream = sink.events(keepalive_seconds=0.01)

    assert next(stream) is None

    sink.publish(ProgressEvent.done("cancelled"))
    assert next(stream).kind == KIND_DONE
    with pytest.raises(StopIteration):
        next(stream)


def test_sse_framing() -> None:
    frame = ProgressEvent.progress(1, 2).to_sse()

    assert frame.startswith("event: progress\n")
    assert frame.endswith("\n\n")
    data_line = frame.splitlines()[1]
    assert json.loads(data_line[len("data: "):]) == {"kind": "progress", "percent": 50}
    assert format_sse("done", {"message": "ação"}) == 'event: done\ndata: {"message": "ação"}\n\n'
