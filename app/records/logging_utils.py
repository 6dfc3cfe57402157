from __future__ import annotations

from typing import Any

from .utils import log_line

# Rendered right after the label so a grep for one process reads in order.
_LEADING_FIELDS = ("phase", "process")


def _records_event(label: str, *, phase: str | None = None, **fields: Any) -> None:
    """Log a structured crawler event as ``[RECORDS][LABEL] phase=... process=... k=v``.

    Fields set to ``None`` are left out. Formatting or handler failures are
    swallowed so a logging problem never aborts a lookup or a batch.
    """

    fields["phase"] = phase
    present = {key: value for key, value in fields.items() if value is not None}
    ordered = [key for key in _LEADING_FIELDS if key in present]
    ordered += sorted(key for key in present if key not in _LEADING_FIELDS)
    try:
        payload = " ".join(f"{key}={present[key]!r}" for key in ordered)
        log_line(f"[RECORDS][{label.upper()}] {payload}".rstrip())
    except Exception:  # noqa: BLE001
        return


__all__ = ["_records_event"]
