"""Quotation workbook writer: internal and client views of a stored quotation."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from margin_desk import TAX_RATE
from margin_desk.engine import round_half_up
from margin_desk.models import StoredQuotation
from margin_desk.quotation import QuotationBreakdown, breakdown

ReportView = Literal["internal", "client"]

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="667EEA", end_color="667EEA", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="667EEA")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
TOTAL_FONT = Font(name="Calibri", bold=True, size=12, color="667EEA")
AT_COST_FONT = Font(name="Calibri", bold=True, size=10, color="16A34A")
NOTE_FONT = Font(name="Calibri", italic=True, size=9, color="94A3B8")

TOTALS_FILL = PatternFill(start_color="F8FAFC", end_color="F8FAFC", fill_type="solid")
BAND_FILLS: dict[str, PatternFill] = {
    "high": PatternFill(start_color="DCFCE7", end_color="DCFCE7", fill_type="solid"),
    "medium": PatternFill(start_color="FEF9C3", end_color="FEF9C3", fill_type="solid"),
    "low": PatternFill(start_color="FEE2E2", end_color="FEE2E2", fill_type="solid"),
}

LOCAL_FMT = '#,##0'
REF_FMT = '#,##0.00'
# Margin is passed in as percent-points (e.g., 48.3), not a 0..1 fraction.
PCT_FMT = '0"%"'

AT_COST_LABEL = "(at cost)"
VALIDITY_NOTE = "Quotation valid for 15 days. Prices subject to stock availability."

_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, row: int, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=row, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet, min_row: int = 1) -> None:
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=min_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 48)


def _excel_value(val: Any) -> Any:
    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"
    return val


def _quote_date(quotation: StoredQuotation) -> str:
    if quotation.created_at:
        return quotation.created_at[:10]
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _write_title(ws: Worksheet, title: str, quote_date: str, ncols: int) -> None:
    end = get_column_letter(ncols)
    ws.cell(row=1, column=1, value=title).font = TITLE_FONT
    ws.merge_cells(f"A1:{end}1")
    ws.cell(row=2, column=1, value=f"Date: {quote_date}").font = SUBTITLE_FONT
    ws.merge_cells(f"A2:{end}2")


def _write_table(
    ws: Worksheet, start_row: int, headers: list[str], rows: list[list[Any]], formats: list[str | None]
) -> int:
    """Write a header + body block at *start_row*; return the next free row."""
    for c_idx, header in enumerate(headers, 1):
        ws.cell(row=start_row, column=c_idx, value=header)
    _style_header(ws, start_row, len(headers))

    row = start_row + 1
    for values in rows:
        for c_idx, (val, fmt) in enumerate(zip(values, formats), 1):
            cell = ws.cell(row=row, column=c_idx, value=_excel_value(val))
            cell.font = VALUE_FONT
            if fmt:
                cell.number_format = fmt
                cell.alignment = Alignment(horizontal="right")
        row += 1
    return row


def _write_totals(
    ws: Worksheet, start_row: int, totals: list[tuple[str, Any, str | None]], ncols: int
) -> int:
    row = start_row
    for label, value, fmt in totals:
        lbl_cell = ws.cell(row=row, column=ncols - 1, value=label)
        lbl_cell.font = LABEL_FONT
        val_cell = ws.cell(row=row, column=ncols, value=value)
        val_cell.font = VALUE_FONT
        if fmt:
            val_cell.number_format = fmt
            val_cell.alignment = Alignment(horizontal="right")
        for c in range(1, ncols + 1):
            ws.cell(row=row, column=c).fill = TOTALS_FILL
        row += 1
    ws.cell(row=row - 1, column=ncols - 1).font = TOTAL_FONT
    ws.cell(row=row - 1, column=ncols).font = TOTAL_FONT
    return row


def _tax_label(tax_rate: float) -> str:
    return f"Tax ({tax_rate * 100:g}%)"


# ── Views ────────────────────────────────────────────────────────


def _write_internal(
    ws: Worksheet, quotation: StoredQuotation, figures: QuotationBreakdown, tax_rate: float
) -> None:
    headers = ["Product", "Qty", "Unit cost (USD)", "Line cost (local)"]
    _write_title(ws, "Internal quotation", _quote_date(quotation), len(headers))

    rows = [
        [
            f"{line.name} {AT_COST_LABEL}" if line.at_cost else line.name,
            line.qty,
            line.unit_cost_ref,
            round_half_up(line.unit_cost * line.qty),
        ]
        for line in figures.lines
    ]
    row = _write_table(ws, 4, headers, rows, [None, LOCAL_FMT, REF_FMT, LOCAL_FMT])
    for r_idx, line in enumerate(figures.lines, 5):
        if line.at_cost:
            ws.cell(row=r_idx, column=1).font = AT_COST_FONT

    row = _write_totals(
        ws,
        row + 1,
        [
            ("Total cost (local)", round_half_up(figures.total_cost), LOCAL_FMT),
            ("Subtotal (net)", figures.subtotal, LOCAL_FMT),
            (_tax_label(tax_rate), figures.tax, LOCAL_FMT),
            ("Total (with tax)", figures.total, LOCAL_FMT),
        ],
        len(headers),
    )

    row += 1
    band_fill = BAND_FILLS[figures.margin_band]
    ws.cell(row=row, column=1, value="Gross margin (items with profit only)").font = LABEL_FONT
    margin_cell = ws.cell(row=row, column=2, value=round_half_up(figures.margin_percent))
    margin_cell.number_format = PCT_FMT
    margin_cell.font = TOTAL_FONT
    for c in range(1, len(headers) + 1):
        ws.cell(row=row, column=c).fill = band_fill


def _write_client(
    ws: Worksheet, quotation: StoredQuotation, figures: QuotationBreakdown, tax_rate: float
) -> None:
    headers = ["Product", "Qty", "Unit price (net)", "Total (net)"]
    _write_title(ws, "Quotation", _quote_date(quotation), len(headers))

    rows = [
        [line.name, line.qty, round_half_up(line.unit_price), round_half_up(line.line_total)]
        for line in figures.lines
    ]
    row = _write_table(ws, 4, headers, rows, [None, LOCAL_FMT, LOCAL_FMT, LOCAL_FMT])

    row = _write_totals(
        ws,
        row + 1,
        [
            ("Net", figures.subtotal, LOCAL_FMT),
            (_tax_label(tax_rate), figures.tax, LOCAL_FMT),
            ("Total", figures.total, LOCAL_FMT),
        ],
        len(headers),
    )
    ws.cell(row=row + 1, column=1, value=VALIDITY_NOTE).font = NOTE_FONT


# ── Public API ───────────────────────────────────────────────────


def write_quotation_report(
    out_dir: Path,
    quotation: StoredQuotation,
    *,
    view: ReportView = "internal",
    tax_rate: float = TAX_RATE,
) -> Path:
    """Write ``quotation-<view>-<date>.xlsx`` and return the path."""
    if view not in ("internal", "client"):
        raise ValueError(f"Unknown report view: {view!r}. Use internal or client.")

    figures = breakdown(quotation, tax_rate=tax_rate)

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / f"quotation-{view}-{_quote_date(quotation)}.xlsx"

    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet()
    ws.title = "Quotation"

    if view == "internal":
        _write_internal(ws, quotation, figures, tax_rate)
    else:
        _write_client(ws, quotation, figures, tax_rate)
    _auto_width(ws, min_row=4)

    tmp_path = out_dir / f"{report_path.stem}.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
