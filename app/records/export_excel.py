"""Excel export for batch results."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd
from openpyxl.styles import Font, PatternFill

from . import config
from .parser import ProcessRecord
from .utils import log_line, sanitize_export_name

SHEET_NAME = "Processos"
EMPTY_MESSAGE = "Nenhum resultado encontrado"
MIN_COLUMN_WIDTH = 12
MAX_COLUMN_WIDTH = 40

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF2E75B6")


def _records_frame(records: Sequence[ProcessRecord]) -> pd.DataFrame:
    """Return a frame whose columns follow the first record's field order."""

    if not records:
        return pd.DataFrame([[EMPTY_MESSAGE]])

    columns = list(records[0].keys())
    rows = [
        ["" if record.get(column) is None else str(record.get(column)).strip() for column in columns]
        for record in records
    ]
    return pd.DataFrame(rows, columns=columns)


def _style_sheet(sheet, columns: Sequence[str]) -> None:
    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    for index, column in enumerate(columns, start=1):
        letter = sheet.cell(row=1, column=index).column_letter
        width = len(str(column)) or 15
        sheet.column_dimensions[letter].width = min(MAX_COLUMN_WIDTH, max(MIN_COLUMN_WIDTH, width))


def export_records_to_excel(
    records: Sequence[ProcessRecord],
    name: str = "resultados",
    *,
    dest_dir: Optional[Path] = None,
) -> Path:
    """Write ``records`` to ``<dest_dir>/<name>.xlsx`` and return the path."""

    target_dir = Path(dest_dir or config.EXPORTS_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    dest_path = target_dir / f"{sanitize_export_name(name)}.xlsx"

    frame = _records_frame(records)
    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        if records:
            frame.to_excel(writer, index=False, sheet_name=SHEET_NAME)
            _style_sheet(writer.sheets[SHEET_NAME], list(frame.columns))
        else:
            frame.to_excel(writer, index=False, header=False, sheet_name=SHEET_NAME)

    log_line(f"[EXPORT] Wrote {len(records)} records to {dest_path}")
    prune_old_exports(target_dir)
    return dest_path


def prune_old_exports(directory: Optional[Path] = None, keep: Optional[int] = None) -> None:
    """Delete the oldest workbooks beyond ``keep`` in ``directory``."""

    directory = Path(directory or config.EXPORTS_DIR)
    keep = config.EXPORTS_KEEP_MAX if keep is None else keep
    if not directory.is_dir():
        return
    files = sorted(
        (path for path in directory.iterdir() if path.suffix == ".xlsx"),
        key=lambda path: path.stat().st_mtime,
    )
    while len(files) > max(1, keep):
        old = files.pop(0)
        try:
            os.remove(old)
        except OSError:  # noqa: PERF203
            continue


__all__ = ["export_records_to_excel", "prune_old_exports", "SHEET_NAME", "EMPTY_MESSAGE"]
