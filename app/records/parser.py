"""HTML parsing for the portal's process detail response."""
from __future__ import annotations

from typing import Optional

from bs4 import BeautifulSoup

from . import config
from .error_codes import ErrorCode
from .logging_utils import _records_event
from .utils import log_line

ProcessRecord = dict[str, str]

PROCESS_NUMBER_FIELD = "Número do Processo"

# (record field, tag, form field name)
HEADER_FIELDS: list[tuple[str, str, str]] = [
    ("Data Abertura", "input", "DAT_PROCESSO"),
    ("Interessado", "input", "NOM_INTERESSADO"),
    ("Requerente", "input", "NOM_REQUERENTE"),
    ("Assunto", "input", "fk_COD_ASSUNTO_DES_ASSUNTO"),
    ("Complemento do Assunto", "input", "compl_assunto"),
    ("Situação", "input", "fk_COD_SITUACAO_DES_SITUACAO"),
    ("Observação", "textarea", "OBS_PROCESSO"),
]

# Column 0 holds the row action icon; movement data starts at column 1.
MOVEMENT_COLUMNS: list[str] = [
    "Data Envio",
    "Secretaria Origem",
    "Setor Origem",
    "Data Recebimento",
    "Secretaria Destino",
    "Setor Destino",
]
EXPECTED_COLUMN_COUNT = len(MOVEMENT_COLUMNS) + 1


class MalformedRowError(ValueError):
    error_code = ErrorCode.MALFORMED_ROW


def _field_value(soup: BeautifulSoup, tag: str, name: str) -> str:
    node = soup.find(tag, attrs={"name": name})
    if node is None:
        return ""
    if tag == "textarea":
        return node.get_text().strip()
    return str(node.get("value") or "").strip()


def extract_header(soup: BeautifulSoup, process_number: str) -> ProcessRecord:
    """Return the header attributes shared by every movement of a process."""

    header: ProcessRecord = {PROCESS_NUMBER_FIELD: process_number}
    for field, tag, name in HEADER_FIELDS:
        header[field] = _field_value(soup, tag, name)
    return header


def movement_record(header: ProcessRecord, cells: list[str]) -> ProcessRecord:
    """Merge one movement row into a copy of ``header``."""

    if len(cells) < EXPECTED_COLUMN_COUNT:
        raise MalformedRowError(
            f"expected {EXPECTED_COLUMN_COUNT} columns, found {len(cells)}"
        )
    record = dict(header)
    for offset, field in enumerate(MOVEMENT_COLUMNS, start=1):
        record[field] = cells[offset]
    return record


def parse_process_page(
    html: str, process_number: str, *, first_only: bool = False
) -> Optional[list[ProcessRecord]]:
    """Parse a portal response into flat records.

    Returns ``None`` when the movements table is missing, which is how the
    portal answers for a process that does not exist. A table without data
    rows, or with only malformed rows, yields a single header-only record. With
    ``first_only`` only the most recent movement (the last table row) is kept.
    """

    soup = BeautifulSoup(html or "", "html5lib")
    table = soup.find("table", id=config.RESULTS_TABLE_ID)
    if table is None:
        log_line(f"[PARSE] No movements table for {process_number}")
        return None

    header = extract_header(soup, process_number)
    rows = table.select("tbody tr")
    if not rows:
        return [header]

    if first_only:
        rows = rows[-1:]

    records: list[ProcessRecord] = []
    for index, row in enumerate(rows):
        cells = [td.get_text(strip=True) for td in row.find_all("td")]
        try:
            records.append(movement_record(header, cells))
        except MalformedRowError as exc:
            _records_event(
                "state",
                phase="parse",
                kind="row_skipped",
                process=process_number,
                row=index,
                error_code=exc.error_code,
                error=str(exc),
            )
    if not records:
        # Rows were present but none parsed; keep the process itself visible.
        return [header]
    return records


__all__ = [
    "ProcessRecord",
    "PROCESS_NUMBER_FIELD",
    "HEADER_FIELDS",
    "MOVEMENT_COLUMNS",
    "MalformedRowError",
    "extract_header",
    "movement_record",
    "parse_process_page",
]
