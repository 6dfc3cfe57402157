"""Batch controller: a sliding window of process lookups over a sequence range.

All batch bookkeeping (in-flight set, counters, accumulated records, circuit
state) lives on the thread that calls ``BatchController.run``. Worker threads
only execute ``fetch_process`` and hand back a ``FetchOutcome``; they never
touch the batch state. That keeps the window and the outage breaker free of
locks.
"""
from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from . import config
from .cancellation import REASON_OUTAGE, CancelSignal
from .error_codes import ErrorCode
from .fetcher import FetchOutcome, failure_outcome, fetch_process
from .identifiers import IdentifierRange, ProcessIdentifier, build_range
from .logging_utils import _records_event
from .parser import ProcessRecord
from .progress import ProgressSink
from .utils import log_line

FetchFn = Callable[[ProcessIdentifier, bool, CancelSignal], FetchOutcome]

STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
REASON_ABORTED = "controller_aborted"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class OutageDetected(Exception):
    """Raised when consecutive connection failures declare the portal offline."""

    error_code = ErrorCode.OUTAGE

    def __init__(
        self,
        process: str,
        consecutive_errors: int,
        *,
        completed: int,
        total: int,
        records: List[ProcessRecord],
    ) -> None:
        super().__init__(
            f"portal unreachable: {consecutive_errors} consecutive connection failures (last {process})"
        )
        self.process = process
        self.consecutive_errors = consecutive_errors
        self.completed = completed
        self.total = total
        self.records = records


@dataclass
class BatchState:
    total: int
    concurrency: int
    in_flight: Dict[Future, ProcessIdentifier] = field(default_factory=dict)
    completed: int = 0
    consecutive_connection_errors: int = 0
    records: List[ProcessRecord] = field(default_factory=list)
    aborted: bool = False
    circuit: CircuitState = CircuitState.CLOSED
    peak_in_flight: int = 0
    last_failed: Optional[str] = None

    @property
    def has_capacity(self) -> bool:
        return len(self.in_flight) < self.concurrency

    def admit(self, future: Future, identifier: ProcessIdentifier) -> None:
        self.in_flight[future] = identifier
        self.peak_in_flight = max(self.peak_in_flight, len(self.in_flight))

    def record_connection_error(self, process: str, threshold: int) -> bool:
        """Count a connection failure; return True when the circuit opens."""

        self.completed += 1
        self.consecutive_connection_errors += 1
        self.last_failed = process
        if self.consecutive_connection_errors >= threshold and self.circuit is CircuitState.CLOSED:
            self.circuit = CircuitState.OPEN
            self.aborted = True
            return True
        return False

    def record_settled(self, records: tuple[ProcessRecord, ...]) -> None:
        self.completed += 1
        self.consecutive_connection_errors = 0
        self.records.extend(records)


@dataclass(frozen=True)
class BatchResult:
    status: str
    records: List[ProcessRecord]
    completed: int
    total: int
    peak_in_flight: int = 0

    @property
    def cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED


class BatchController:
    """Drive ``fetch`` across an identifier range with bounded concurrency."""

    def __init__(
        self,
        *,
        fetch: FetchFn = fetch_process,
        concurrency: Optional[int] = None,
        outage_threshold: Optional[int] = None,
    ) -> None:
        self._fetch = fetch
        self._concurrency = max(1, concurrency if concurrency is not None else config.BATCH_CONCURRENCY)
        self._threshold = max(1, outage_threshold if outage_threshold is not None else config.OUTAGE_THRESHOLD)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def run(
        self,
        id_range: IdentifierRange,
        *,
        first_only: bool = False,
        progress: Optional[ProgressSink] = None,
        signal: Optional[CancelSignal] = None,
    ) -> BatchResult:
        signal = signal or CancelSignal()
        state = BatchState(total=id_range.total, concurrency=self._concurrency)
        pending = iter(id_range)
        exhausted = False

        _records_event(
            "batch",
            phase="start",
            prefix=id_range.prefix,
            start=id_range.start,
            end=id_range.end,
            year=id_range.year,
            total=state.total,
            concurrency=self._concurrency,
            first_only=first_only,
        )

        executor = ThreadPoolExecutor(max_workers=self._concurrency, thread_name_prefix="records-fetch")
        try:
            while True:
                while not exhausted and state.has_capacity and not (state.aborted or signal.cancelled):
                    identifier = next(pending, None)
                    if identifier is None:
                        exhausted = True
                        break
                    state.admit(executor.submit(self._fetch, identifier, first_only, signal), identifier)

                if not state.in_flight:
                    break

                done, _ = wait(list(state.in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    identifier = state.in_flight.pop(future)
                    # Work that settles after an abort is drained, never merged.
                    if state.aborted or signal.cancelled:
                        continue
                    self._settle(state, identifier, self._outcome(future, identifier, signal), progress, signal)
        except BaseException:
            signal.cancel(REASON_ABORTED)
            raise
        finally:
            executor.shutdown(wait=True)

        self._log_summary(state, signal)

        if state.circuit is CircuitState.OPEN:
            raise OutageDetected(
                state.last_failed or "",
                state.consecutive_connection_errors,
                completed=state.completed,
                total=state.total,
                records=state.records,
            )

        status = STATUS_CANCELLED if signal.cancelled else STATUS_COMPLETED
        return BatchResult(
            status=status,
            records=state.records,
            completed=state.completed,
            total=state.total,
            peak_in_flight=state.peak_in_flight,
        )

    @staticmethod
    def _outcome(future: Future, identifier: ProcessIdentifier, signal: CancelSignal) -> FetchOutcome:
        try:
            return future.result()
        except Exception as exc:  # noqa: BLE001
            return failure_outcome(identifier.canonical, exc, signal)

    def _settle(
        self,
        state: BatchState,
        identifier: ProcessIdentifier,
        outcome: FetchOutcome,
        progress: Optional[ProgressSink],
        signal: CancelSignal,
    ) -> None:
        if outcome.is_cancelled:
            return

        if outcome.is_connection_error:
            opened = state.record_connection_error(identifier.canonical, self._threshold)
            _notify(progress, state, connectivity_warning=True)
            if opened:
                _records_event(
                    "error",
                    phase="circuit",
                    kind="open",
                    process=identifier.canonical,
                    consecutive_errors=state.consecutive_connection_errors,
                    completed=state.completed,
                    in_flight=len(state.in_flight),
                )
                signal.cancel(REASON_OUTAGE)
            return

        state.record_settled(outcome.records)
        _notify(progress, state, connectivity_warning=False)

    @staticmethod
    def _log_summary(state: BatchState, signal: CancelSignal) -> None:
        _records_event(
            "batch",
            phase="summary",
            completed=state.completed,
            total=state.total,
            records=len(state.records),
            circuit=state.circuit.value,
            cancelled=signal.cancelled,
            cancel_reason=signal.reason,
            peak_in_flight=state.peak_in_flight,
        )


def _notify(progress: Optional[ProgressSink], state: BatchState, *, connectivity_warning: bool) -> None:
    if progress is None:
        return
    try:
        progress(state.completed, state.total, connectivity_warning)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[BATCH] Progress sink failed: {exc!r}")


def run_batch(
    prefix: str,
    start: int | str | None,
    end: int | str | None,
    year: str,
    *,
    first_only: bool = False,
    concurrency: Optional[int] = None,
    progress: Optional[ProgressSink] = None,
    signal: Optional[CancelSignal] = None,
    fetch: FetchFn = fetch_process,
) -> BatchResult:
    """Validate the range and run one batch.

    Raises ``InvalidIdentifierError`` before any request for bad input and
    ``OutageDetected`` when the portal is declared offline.
    """

    id_range = build_range(
        prefix,
        start,
        end,
        year,
        default_start=config.DEFAULT_RANGE_START,
        default_end=config.DEFAULT_RANGE_END,
    )
    controller = BatchController(fetch=fetch, concurrency=concurrency)
    return controller.run(id_range, first_only=first_only, progress=progress, signal=signal)


__all__ = [
    "BatchController",
    "BatchResult",
    "BatchState",
    "CircuitState",
    "OutageDetected",
    "run_batch",
    "STATUS_COMPLETED",
    "STATUS_CANCELLED",
]
