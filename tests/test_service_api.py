from __future__ import annotations

import importlib
import json
import sys
import threading
from pathlib import Path

import pytest

from app.records import config
from app.records.cancellation import REASON_DISCONNECT, CancelSignal
from app.records.fetcher import FetchOutcome, OutcomeKind
from app.records.identifiers import ProcessIdentifier, canonicalize


def _reload_main_module():
    if "app.main" in sys.modules:
        del sys.modules["app.main"]
    return importlib.import_module("app.main")


def _record(process: str, *, interessado: str = "Maria", setor: str = "PROTOCOLO") -> dict[str, str]:
    return {
        "Número do Processo": process,
        "Interessado": interessado,
        "Requerente": "",
        "Setor Origem": setor,
    }


def _events(body: str) -> list[tuple[str, dict]]:
    events = []
    for frame in body.split("\n\n"):
        lines = [line for line in frame.splitlines() if line and not line.startswith(":")]
        if not lines:
            continue
        name = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        events.append((name, data))
    return events


@pytest.fixture
def main(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "SSE_KEEPALIVE_SECONDS", 0.05)
    return _reload_main_module()


@pytest.fixture
def client(main):
    return main.app.test_client()


def _patch_fetch(monkeypatch: pytest.MonkeyPatch, main, script: dict | None = None) -> None:
    script = script or {}

    def _fetch(identifier, first_only=False, signal=None):  # noqa: ANN001
        if isinstance(identifier, ProcessIdentifier):
            sequence, process = identifier.sequence, identifier.canonical
        else:
            process = canonicalize(identifier)
            sequence = int(process.split("/")[1])
        kind = script.get(sequence, OutcomeKind.SUCCESS)
        if kind is OutcomeKind.SUCCESS:
            interessado = "Empresa Alfa" if sequence % 2 else "Maria"
            return FetchOutcome(kind, process, records=(_record(process, interessado=interessado),))
        return FetchOutcome(kind, process)

    monkeypatch.setattr(main, "fetch_process", _fetch)


def test_single_lookup_requires_number(client) -> None:  # noqa: ANN001
    resp = client.get("/api/process")
    assert resp.status_code == 400

    resp = client.get("/api/process?numero=abc")
    assert resp.status_code == 400


def test_single_lookup_exports(monkeypatch: pytest.MonkeyPatch, main, client) -> None:  # noqa: ANN001
    _patch_fetch(monkeypatch, main)

    resp = client.get("/api/process?numero=0180000042025&firstOnly=true")

    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["success"] is True
    assert payload["file"] == "/exports/018_000004_2025.xlsx"
    assert (Path(config.EXPORTS_DIR) / "018_000004_2025.xlsx").is_file()

    download = client.get(payload["file"])
    assert download.status_code == 200
    download.close()


@pytest.mark.parametrize(
    "kind, status",
    [(OutcomeKind.CONNECTION_ERROR, 503), (OutcomeKind.EMPTY, 404)],
)
def test_single_lookup_failures(monkeypatch, main, client, kind, status) -> None:  # noqa: ANN001
    _patch_fetch(monkeypatch, main, {4: kind})

    resp = client.get("/api/process?numero=018/000004/2025")

    assert resp.status_code == status


def test_batch_stream_success(monkeypatch, main, client) -> None:  # noqa: ANN001
    _patch_fetch(monkeypatch, main)

    resp = client.get("/api/process/batch?prefix=18&start=1&end=4&year=2025")

    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    events = _events(resp.get_data(as_text=True))
    progress = [data["percent"] for name, data in events if name == "progress"]
    assert progress == [25, 50, 75, 100]
    name, done = events[-1]
    assert name == "done"
    assert done["outcome"] == "success"
    assert done["record_count"] == 4
    assert done["file"] == "/exports/018_2025.xlsx"
    assert len(main.ACTIVE_BATCHES) == 0


def test_batch_stream_reports_outage(monkeypatch, main, client) -> None:  # noqa: ANN001
    _patch_fetch(
        monkeypatch,
        main,
        {n: OutcomeKind.CONNECTION_ERROR for n in range(1, 30)},
    )
    monkeypatch.setattr(config, "BATCH_CONCURRENCY", 1)

    resp = client.get("/api/process/batch?prefix=18&start=1&end=20&year=2025")

    events = _events(resp.get_data(as_text=True))
    assert [name for name, _ in events].count("connectivity-warning") == 3
    assert events[-1][1]["outcome"] == "outage_detected"


def test_batch_stream_department_filter_can_empty_results(monkeypatch, main, client) -> None:  # noqa: ANN001
    _patch_fetch(monkeypatch, main)

    resp = client.get("/api/process/batch?prefix=18&start=1&end=3&year=2025&setores=arquivo")

    done = _events(resp.get_data(as_text=True))[-1][1]
    assert done["outcome"] == "empty"
    assert done["record_count"] == 0


def test_search_by_name(monkeypatch, main, client) -> None:  # noqa: ANN001
    _patch_fetch(monkeypatch, main)

    resp = client.get("/api/process/searchByName?prefix=18&start=1&end=4&year=2025&nome=alfa")

    done = _events(resp.get_data(as_text=True))[-1][1]
    assert done["outcome"] == "success"
    assert done["record_count"] == 2
    assert done["file"] == "/exports/018_2025_nome.xlsx"


def test_batch_stream_rejects_bad_range(client) -> None:  # noqa: ANN001
    assert client.get("/api/process/batch?start=1&end=3&year=2025").status_code == 400
    assert client.get("/api/process/batch?prefix=18&start=5&end=3&year=2025").status_code == 400


def _patch_blocking_fetch(monkeypatch: pytest.MonkeyPatch, main) -> tuple[threading.Event, list[CancelSignal]]:  # noqa: ANN001
    started = threading.Event()
    seen: list[CancelSignal] = []

    def _fetch(identifier, first_only=False, signal=None):  # noqa: ANN001
        seen.append(signal)
        started.set()
        signal.wait(5)
        return FetchOutcome(OutcomeKind.CANCELLED, identifier.canonical)

    monkeypatch.setattr(main, "fetch_process", _fetch)
    return started, seen


def test_cancel_request_ends_running_stream_as_cancelled(monkeypatch, main, client) -> None:  # noqa: ANN001
    started, _ = _patch_blocking_fetch(monkeypatch, main)
    cancel_responses: list[dict] = []

    def _cancel_when_running() -> None:
        assert started.wait(5)
        cancel_responses.append(main.app.test_client().post("/api/cancel").get_json())

    canceller = threading.Thread(target=_cancel_when_running)
    canceller.start()
    resp = client.get("/api/process/batch?prefix=18&start=1&end=3&year=2025")
    events = _events(resp.get_data(as_text=True))
    canceller.join(5)

    assert cancel_responses == [{"success": True, "cancelled": 1}]
    name, done = events[-1]
    assert name == "done"
    assert done["outcome"] == "cancelled"
    assert [n for n, _ in events].count("progress") == 0
    assert len(main.ACTIVE_BATCHES) == 0


def test_client_disconnect_cancels_the_batch(monkeypatch, main, client) -> None:  # noqa: ANN001
    started, seen = _patch_blocking_fetch(monkeypatch, main)

    resp = client.get("/api/process/batch?prefix=18&start=1&end=3&year=2025", buffered=False)
    assert started.wait(5)
    assert len(main.ACTIVE_BATCHES) == 1

    first_chunk = next(iter(resp.response))
    assert first_chunk.startswith(b": keep-alive")
    resp.close()

    signal = seen[0]
    assert signal.cancelled
    assert signal.reason == REASON_DISCONNECT
    assert len(main.ACTIVE_BATCHES) == 0


def test_cancel_all(main, client) -> None:  # noqa: ANN001
    signals = [CancelSignal(), CancelSignal()]
    for signal in signals:
        main.ACTIVE_BATCHES.register(signal)

    resp = client.post("/api/cancel")

    assert resp.get_json() == {"success": True, "cancelled": 2}
    assert all(signal.cancelled for signal in signals)
    assert len(main.ACTIVE_BATCHES) == 0


def test_health(client) -> None:  # noqa: ANN001
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True
