from __future__ import annotations

"""Error code taxonomy for per-identifier and batch-level failures.

Codes appear in structured log lines and in ``FetchOutcome.error_code`` so the
batch summary can explain why an identifier produced no records.
"""


class ErrorCode:
    CANCELLED = "cancelled"
    CONNECTION = "connection_error"
    OUTAGE = "outage_detected"
    UNEXPECTED = "unexpected_error"
    VALIDATION = "validation_error"
    MALFORMED_ROW = "malformed_row"


__all__ = ["ErrorCode"]
