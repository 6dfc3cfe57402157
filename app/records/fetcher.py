"""Single-process lookup against the public-records portal.

Each lookup opens its own ``requests.Session``: a GET on the form page hands
out the session cookie, then a POST with the process number returns the
detail fragment that ``parser.parse_process_page`` understands. Nothing is
shared between lookups, so any number of them can run side by side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import requests

from . import config
from .cancellation import CancelSignal
from .classifier import classify_failure
from .error_codes import ErrorCode
from .identifiers import ProcessIdentifier, canonicalize
from .logging_utils import _records_event
from .parser import ProcessRecord, parse_process_page
from .utils import log_line

SessionFactory = Callable[[], requests.Session]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    CONNECTION_ERROR = "connection_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FetchOutcome:
    kind: OutcomeKind
    process: str
    records: tuple[ProcessRecord, ...] = field(default_factory=tuple)
    # Set when an unexpected failure was folded into an empty result.
    error_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_connection_error(self) -> bool:
        return self.kind is OutcomeKind.CONNECTION_ERROR

    @property
    def is_cancelled(self) -> bool:
        return self.kind is OutcomeKind.CANCELLED


def failure_outcome(
    process: str, error: BaseException, signal: Optional[CancelSignal] = None
) -> FetchOutcome:
    """Classify ``error`` and fold it into an outcome for ``process``."""

    kind = classify_failure(error, signal, process=process)
    if kind == ErrorCode.CANCELLED:
        return FetchOutcome(OutcomeKind.CANCELLED, process, error_code=kind)
    if kind == ErrorCode.CONNECTION:
        log_line(f"[FETCH] Connection failure for {process}: {error}")
        return FetchOutcome(OutcomeKind.CONNECTION_ERROR, process, error_code=kind, error=str(error))
    log_line(f"[FETCH] Unexpected failure for {process}: {error!r}")
    return FetchOutcome(OutcomeKind.EMPTY, process, error_code=kind, error=str(error))


def _checkpoint(signal: Optional[CancelSignal]) -> None:
    if signal is not None:
        signal.raise_if_cancelled()


def _open_session(session: requests.Session) -> None:
    response = session.get(
        config.session_url(),
        headers=config.PORTAL_HEADERS,
        timeout=config.SESSION_TIMEOUT_SECONDS,
    )
    response.raise_for_status()


def _submit_query(session: requests.Session, process: str) -> str:
    form = {
        "NUM_PROCESSO": process,
        "class": config.QUERY_FORM_CLASS,
        "method": config.QUERY_FORM_METHOD,
    }
    response = session.post(
        config.query_url(),
        data=form,
        headers=config.PORTAL_HEADERS,
        timeout=config.QUERY_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.text or ""


def fetch_process(
    identifier: str | ProcessIdentifier,
    first_only: bool = False,
    signal: Optional[CancelSignal] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
) -> FetchOutcome:
    """Fetch and parse one process.

    Network and parse failures never escape: they are classified and
    returned as an outcome. Only a malformed ``identifier`` raises
    (``InvalidIdentifierError``), before any request is made.
    """

    if isinstance(identifier, ProcessIdentifier):
        process = identifier.canonical
    else:
        process = canonicalize(identifier)

    log_line(f"[FETCH] Looking up {process} (first_only={first_only})")

    try:
        _checkpoint(signal)
        with (session_factory or requests.Session)() as session:
            _open_session(session)
            _checkpoint(signal)
            html = _submit_query(session, process)
        _checkpoint(signal)
        records = parse_process_page(html, process, first_only=first_only)
    except Exception as exc:  # noqa: BLE001
        return failure_outcome(process, exc, signal)

    if records is None:
        _records_event("state", phase="fetch", kind="empty", process=process)
        return FetchOutcome(OutcomeKind.EMPTY, process)

    _records_event("state", phase="fetch", kind="success", process=process, records=len(records))
    return FetchOutcome(OutcomeKind.SUCCESS, process, records=tuple(records))


__all__ = ["FetchOutcome", "OutcomeKind", "failure_outcome", "fetch_process"]
