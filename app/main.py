from __future__ import annotations

import os
import threading
from typing import Any, Generator, Optional, Sequence

from flask import Flask, Response, jsonify, request, send_from_directory
from flask.typing import ResponseReturnValue

from app.records import config
from app.records.batch import BatchController, OutageDetected
from app.records.cancellation import (
    REASON_DISCONNECT,
    REASON_USER,
    CancellationRegistry,
    CancelSignal,
)
from app.records.config_validation import validate_runtime_config
from app.records.export_excel import export_records_to_excel
from app.records.fetcher import OutcomeKind, fetch_process
from app.records.filters import apply_filters, parse_department_list
from app.records.healthcheck import run_health_checks
from app.records.identifiers import IdentifierRange, InvalidIdentifierError, build_range, canonicalize
from app.records.logging_utils import _records_event
from app.records.progress import (
    KIND_DONE,
    OUTCOME_CANCELLED,
    OUTCOME_EMPTY,
    OUTCOME_ERROR,
    OUTCOME_OUTAGE,
    OUTCOME_SUCCESS,
    EventQueueSink,
    ProgressEvent,
)
from app.records.utils import ensure_dirs, log_line

app = Flask(__name__)

# Directories must exist before the first export is served.
ensure_dirs()

ACTIVE_BATCHES = CancellationRegistry()

MSG_OFFLINE = "Falha de conexão com o servidor da Prefeitura."
MSG_CANCELLED = "Busca cancelada pelo usuário."
MSG_NOT_FOUND = "Nenhum processo encontrado."
MSG_NOT_FOUND_FILTERS = "Nenhum processo encontrado com esses filtros."


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() == "true"


def _export_url(path) -> str:
    return f"/exports/{os.path.basename(str(path))}"


def _batch_done_event(
    id_range: IdentifierRange,
    *,
    first_only: bool,
    departments: Sequence[str],
    name: Optional[str],
    export_name: str,
    empty_message: str,
    sink: EventQueueSink,
    signal: CancelSignal,
    request_id: str,
) -> ProgressEvent:
    """Run one batch to completion and return its terminal ``done`` event."""

    try:
        controller = BatchController(fetch=fetch_process)
        result = controller.run(id_range, first_only=first_only, progress=sink, signal=signal)
    except OutageDetected as exc:
        log_line(f"[BATCH] Portal offline ({request_id}): {exc}")
        return ProgressEvent.done(OUTCOME_OUTAGE, message=MSG_OFFLINE)

    if result.cancelled:
        log_line(f"[BATCH] Cancelled ({request_id}, reason={signal.reason})")
        return ProgressEvent.done(OUTCOME_CANCELLED, message=MSG_CANCELLED)

    records = apply_filters(result.records, departments=departments, name=name)
    if not records:
        return ProgressEvent.done(OUTCOME_EMPTY, record_count=0, message=empty_message)

    path = export_records_to_excel(records, export_name)
    log_line(f"[BATCH] Finished {request_id} with {len(records)} records")
    return ProgressEvent.done(OUTCOME_SUCCESS, record_count=len(records), file=_export_url(path))


def _run_batch_job(*, sink: EventQueueSink, request_id: str, **batch: Any) -> None:
    """Worker thread body: run the batch, leave the registry, then publish ``done``."""

    try:
        done = _batch_done_event(sink=sink, request_id=request_id, **batch)
    except Exception as exc:  # noqa: BLE001
        _records_event("error", phase="batch", context="service", request_id=request_id, error=repr(exc))
        done = ProgressEvent.done(OUTCOME_ERROR, message=str(exc))
    finally:
        # Leave the registry first so a client that sees ``done`` never finds it listed.
        ACTIVE_BATCHES.unregister(request_id)
    sink.publish(done)


def _event_stream(
    sink: EventQueueSink, signal: CancelSignal, request_id: str
) -> Generator[str, None, None]:
    """Yield Server-Sent Events until the batch publishes ``done``."""

    finished = False
    try:
        for event in sink.events(config.SSE_KEEPALIVE_SECONDS):
            if event is None:
                yield ": keep-alive\n\n"
                continue
            if event.kind == KIND_DONE:
                finished = True
            yield event.to_sse()
    finally:
        if not finished:
            # Client went away before the batch finished.
            signal.cancel(REASON_DISCONNECT)
            log_line(f"[SSE] Client disconnected ({request_id})")
            ACTIVE_BATCHES.unregister(request_id)


def _start_batch_stream(
    *, name: Optional[str], export_suffix: str, empty_message: str
) -> ResponseReturnValue:
    try:
        id_range = build_range(
            request.args.get("prefix", ""),
            request.args.get("start"),
            request.args.get("end"),
            request.args.get("year", ""),
            default_start=config.DEFAULT_RANGE_START,
            default_end=config.DEFAULT_RANGE_END,
        )
    except InvalidIdentifierError as exc:
        return jsonify({"error": str(exc)}), 400

    first_only = _flag("firstOnly")
    departments = parse_department_list(request.args.get("setores"))
    export_name = f"{id_range.prefix}_{id_range.year}{export_suffix}{'_firstOnly' if first_only else ''}"

    signal = CancelSignal()
    sink = EventQueueSink()
    request_id = ACTIVE_BATCHES.register(signal)
    log_line(
        f"[BATCH] Starting {request_id}: {id_range.prefix} ({id_range.start}-{id_range.end})/{id_range.year}"
    )

    worker = threading.Thread(
        target=_run_batch_job,
        kwargs={
            "id_range": id_range,
            "first_only": first_only,
            "departments": departments,
            "name": name,
            "export_name": export_name,
            "empty_message": empty_message,
            "sink": sink,
            "signal": signal,
            "request_id": request_id,
        },
        daemon=True,
    )
    worker.start()

    response = Response(_event_stream(sink, signal, request_id), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@app.get("/api/process")
def api_process() -> ResponseReturnValue:
    """Fetch a single process and export its movements."""

    numero = (request.args.get("numero") or "").strip()
    if not numero:
        return jsonify({"error": "Número do processo é obrigatório."}), 400

    try:
        process = canonicalize(numero)
    except InvalidIdentifierError as exc:
        return jsonify({"error": str(exc)}), 400

    first_only = _flag("firstOnly")
    try:
        outcome = fetch_process(process, first_only)
        if outcome.kind is OutcomeKind.CONNECTION_ERROR:
            return jsonify({"error": MSG_OFFLINE}), 503
        if not outcome.records:
            return jsonify({"error": "Nenhum dado encontrado."}), 404

        path = export_records_to_excel(list(outcome.records), process)
    except Exception as exc:  # noqa: BLE001
        _records_event("error", phase="single", context="service", process=process, error=repr(exc))
        return jsonify({"error": "Erro ao processar requisição."}), 500

    return jsonify({"success": True, "file": _export_url(path), "records": len(outcome.records)})


@app.get("/api/process/batch")
def api_process_batch() -> ResponseReturnValue:
    """Stream progress for a range lookup filtered by origin department."""

    return _start_batch_stream(name=None, export_suffix="", empty_message=MSG_NOT_FOUND)


@app.get("/api/process/searchByName")
def api_process_search_by_name() -> ResponseReturnValue:
    """Stream progress for a range lookup filtered by party name."""

    name = (request.args.get("nome") or "").strip() or None
    return _start_batch_stream(name=name, export_suffix="_nome", empty_message=MSG_NOT_FOUND_FILTERS)


@app.post("/api/cancel")
def api_cancel() -> Response:
    """Cancel every running batch."""

    cancelled = ACTIVE_BATCHES.cancel_all(REASON_USER)
    log_line(f"[BATCH] Cancelled {cancelled} running batch(es) on request")
    return jsonify({"success": True, "cancelled": cancelled})


@app.get("/exports/<path:filename>")
def download_export(filename: str) -> Response:
    """Serve a generated workbook from the exports directory."""

    return send_from_directory(config.EXPORTS_DIR, filename, as_attachment=True)


@app.get("/api/health")
def api_health() -> ResponseReturnValue:
    """Return a JSON health summary for configuration and exports storage."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


if __name__ == "__main__":
    validate_runtime_config("ui")
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 8080)), threaded=True)
