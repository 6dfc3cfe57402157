from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .parser import ProcessRecord

DEPARTMENT_FIELD = "Setor Origem"
NAME_FIELDS = ("Interessado", "Requerente")


def parse_department_list(raw: Optional[str]) -> list[str]:
    """Split a comma-separated department list into lower-cased names."""

    if not raw:
        return []
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def filter_by_department(
    records: Iterable[ProcessRecord], departments: Sequence[str]
) -> list[ProcessRecord]:
    """Keep records whose origin department exactly matches one of ``departments``."""

    wanted = {name.strip().lower() for name in departments if name and name.strip()}
    if not wanted:
        return list(records)
    return [
        record
        for record in records
        if (record.get(DEPARTMENT_FIELD) or "").strip().lower() in wanted
    ]


def filter_by_name(records: Iterable[ProcessRecord], name: Optional[str]) -> list[ProcessRecord]:
    """Keep records whose interested party or requester contains ``name``."""

    needle = (name or "").strip().lower()
    if not needle:
        return list(records)
    return [
        record
        for record in records
        if any(needle in (record.get(field) or "").lower() for field in NAME_FIELDS)
    ]


def apply_filters(
    records: Iterable[ProcessRecord],
    *,
    departments: Sequence[str] = (),
    name: Optional[str] = None,
) -> list[ProcessRecord]:
    return filter_by_department(filter_by_name(records, name), departments)


__all__ = [
    "parse_department_list",
    "filter_by_department",
    "filter_by_name",
    "apply_filters",
]
