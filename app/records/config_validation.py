from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _records_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _records_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _clamp(field: str, value: int, adjusted: int, *, entrypoint: Entrypoint) -> None:
    _records_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field} < 1; clamping to {adjusted}.")
    setattr(config, field, adjusted)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate crawler configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal adjustments (the concurrency window) are logged and applied.
    """

    if config.BATCH_CONCURRENCY < 1:
        _clamp("BATCH_CONCURRENCY", config.BATCH_CONCURRENCY, 1, entrypoint=entrypoint)

    if config.OUTAGE_THRESHOLD < 1:
        _raise_config_error(
            "OUTAGE_THRESHOLD must be at least 1.",
            entrypoint=entrypoint,
            error="outage_threshold_invalid",
        )

    for field_name in ("SESSION_TIMEOUT_SECONDS", "QUERY_TIMEOUT_SECONDS"):
        if getattr(config, field_name) <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    if config.DEFAULT_RANGE_START < 1 or config.DEFAULT_RANGE_END < config.DEFAULT_RANGE_START:
        _raise_config_error(
            "Default sequence range is empty or starts below 1.",
            entrypoint=entrypoint,
            error="default_range_invalid",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
