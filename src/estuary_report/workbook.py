"""Excel companion workbook — every group summary table in one file."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from estuary_report import __version__
from estuary_report.config import VARIABLES, Estuary

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="1F4E79")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)

NOTE_FILL = PatternFill(start_color="DDEBF7", end_color="DDEBF7", fill_type="solid")

VALUE_FMT = "0.000"
INT_FMT = "#,##0"

# Column-name → format mapping for table sheets
_COL_FORMATS: dict[str, str] = {
    "count": INT_FMT,
    "min": VALUE_FMT,
    "median": VALUE_FMT,
    "max": VALUE_FMT,
}

_AUTO_WIDTH_SAMPLE_ROWS = 300


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 30)


def _apply_number_formats(ws: Worksheet, col_names: list[str]) -> None:
    if ws.max_row < 2:
        return
    for c_idx, name in enumerate(col_names, 1):
        fmt = _COL_FORMATS.get(name.lower())
        if fmt:
            for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=c_idx, max_col=c_idx):
                for cell in row:
                    cell.number_format = fmt


def _sanitize_table_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not re.match(r"^[A-Za-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return cleaned[:255]


def _existing_table_names(ws: Worksheet) -> set[str]:
    existing: set[str] = set()
    parent = ws.parent
    if parent is not None:
        for sheet in parent.worksheets:
            existing.update(cast(Iterable[str], sheet.tables.keys()))
    return existing


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int) -> None:
    if nrows < 1 or ncols < 1:
        return
    table_name = _sanitize_table_name(name)
    if table_name in _existing_table_names(ws):
        table_name = f"{table_name[:250]}_{len(_existing_table_names(ws))}"
    table = Table(displayName=table_name, ref=f"A1:{get_column_letter(ncols)}{nrows + 1}")
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium2", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val
    item = getattr(val, "item", None)
    if callable(item):
        return item()
    return val


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> None:
    ws = wb.create_sheet(title=name)
    col_names = list(df.columns)

    if df.empty:
        ws.cell(row=1, column=1, value="No current-period data").font = VALUE_FONT
        ws.column_dimensions["A"].width = 28
        return

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    _apply_number_formats(ws, col_names)
    ws.freeze_panes = "A2"
    _auto_width(ws)
    _add_excel_table(ws, name, len(col_names), len(df))


def _write_notes(
    wb: Workbook,
    estuary: Estuary,
    reporting_year: int,
    tables: Mapping[str, pd.DataFrame],
    source: Path | None,
) -> None:
    ws = wb.create_sheet(title="Notes")
    ws.cell(row=1, column=1, value=f"{estuary.name} estuary summary tables").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(
        row=2, column=1, value=f"Generated {generated} by estuary-report v{__version__}"
    ).font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    row = 4
    facts = [
        ("Reporting period", f"1 Jun {reporting_year - 1} - 31 May {reporting_year}"),
        ("Source", source.name if source else "N/A"),
    ]
    for label, value in facts:
        ws.cell(row=row, column=1, value=label).font = LABEL_FONT
        ws.cell(row=row, column=2, value=value).font = VALUE_FONT
        row += 1

    row += 1
    ws.cell(row=row, column=1, value="Group").font = LABEL_FONT
    ws.cell(row=row, column=2, value="Variables").font = LABEL_FONT
    ws.cell(row=row, column=3, value="Rows").font = LABEL_FONT
    for c in range(1, 4):
        ws.cell(row=row, column=c).fill = NOTE_FILL
    row += 1
    for group in estuary.groups:
        labels = ", ".join(VARIABLES[code].label for code in group.variables)
        if group.extra_zone:
            labels += f" (+ {group.extra_zone} zone)"
        ws.cell(row=row, column=1, value=group.name)
        ws.cell(row=row, column=2, value=labels)
        ws.cell(row=row, column=3, value=len(tables.get(group.name, ())))
        row += 1

    ws.column_dimensions["A"].width = 20
    ws.column_dimensions["B"].width = 60
    ws.column_dimensions["C"].width = 10


# ── Public API ───────────────────────────────────────────────────


def workbook_filename(code: str, reporting_year: int) -> str:
    return f"{code}_summary_tables_{reporting_year}.xlsx"


def write_summary_workbook(
    out_dir: Path,
    estuary: Estuary,
    reporting_year: int,
    tables: Mapping[str, pd.DataFrame],
    source: Path | None = None,
) -> Path:
    """Write one sheet per variable group plus a Notes sheet; return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / workbook_filename(estuary.code, reporting_year)

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)

    _write_notes(wb, estuary, reporting_year, tables, source)
    for group in estuary.groups:
        _df_to_sheet(wb, group.name, tables.get(group.name, pd.DataFrame()))

    tmp_path = out_dir / f"{path.stem}.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(path)
    return path
