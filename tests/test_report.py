from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import load_workbook

from margin_desk.models import LineSummary, StoredQuotation
from margin_desk.report import AT_COST_LABEL, VALIDITY_NOTE, write_quotation_report


def _quotation(**overrides: object) -> StoredQuotation:
    data: dict[str, object] = {
        "sale_price": 150_000,
        "exchange_rate": 1000,
        "total_cost_ref": 100,
        "total_cost_local": 100_000,
        "margin_percent": 50,
        "net_profit": 50_000,
        "items": (
            LineSummary(name="Implante", qty=1, unit_cost=50),
            LineSummary(name="Item Especial Flete", qty=1, unit_cost=50),
        ),
        "id": "q-1",
        "created_at": "2024-05-02T10:00:00Z",
    }
    data.update(overrides)
    return StoredQuotation(**data)  # type: ignore[arg-type]


def _column(ws, col: int) -> list[object]:  # type: ignore[no-untyped-def]
    return [ws.cell(row=r, column=col).value for r in range(1, ws.max_row + 1)]


def test_internal_report_lists_costs_and_margin(tmp_path: Path) -> None:
    path = write_quotation_report(tmp_path, _quotation(), view="internal", tax_rate=0.19)

    assert path == tmp_path / "quotation-internal-2024-05-02.xlsx"
    wb = load_workbook(path)
    ws = wb["Quotation"]

    assert ws["A1"].value == "Internal quotation"
    assert ws["A2"].value == "Date: 2024-05-02"
    assert [ws.cell(row=4, column=c).value for c in range(1, 5)] == [
        "Product",
        "Qty",
        "Unit cost (USD)",
        "Line cost (local)",
    ]
    assert ws["A5"].value == "Implante"
    assert ws["A6"].value == f"Item Especial Flete {AT_COST_LABEL}"
    assert ws["D5"].value == 50_000

    labels = _column(ws, 3)
    values = _column(ws, 4)
    totals = {label: values[i] for i, label in enumerate(labels) if isinstance(label, str)}
    assert totals["Total cost (local)"] == 100_000
    assert totals["Subtotal (net)"] == 150_000
    assert totals["Tax (19%)"] == 28_500
    assert totals["Total (with tax)"] == 178_500

    margin_row = next(r for r in range(1, ws.max_row + 1) if str(ws.cell(row=r, column=1).value).startswith("Gross margin"))
    assert ws.cell(row=margin_row, column=2).value == 50
    assert ws.cell(row=margin_row, column=1).fill.start_color.rgb.endswith("DCFCE7")
    assert not list(tmp_path.glob("*.tmp.xlsx"))


def test_client_report_shows_prices_not_costs(tmp_path: Path) -> None:
    path = write_quotation_report(tmp_path, _quotation(), view="client", tax_rate=0.19)

    wb = load_workbook(path)
    ws = wb["Quotation"]

    assert path.name == "quotation-client-2024-05-02.xlsx"
    assert ws["A1"].value == "Quotation"
    assert ws["C4"].value == "Unit price (net)"
    assert [ws["A5"].value, ws["C5"].value, ws["D5"].value] == ["Implante", 100_000, 100_000]
    assert [ws["A6"].value, ws["C6"].value] == ["Item Especial Flete", 50_000]
    all_values = {ws.cell(row=r, column=c).value for r in range(1, ws.max_row + 1) for c in range(1, 5)}
    assert VALIDITY_NOTE in all_values
    assert "Total cost (local)" not in all_values
    assert 178_500 in all_values


def test_report_escapes_formula_like_names(tmp_path: Path) -> None:
    quotation = _quotation(items=(LineSummary(name="=SUM(A1:A2)", qty=1, unit_cost=100),))

    path = write_quotation_report(tmp_path, quotation, view="client")

    ws = load_workbook(path)["Quotation"]
    assert ws["A5"].value == "'=SUM(A1:A2)"


def test_report_rejects_unknown_view(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unknown report view"):
        write_quotation_report(tmp_path, _quotation(), view="summary")  # type: ignore[arg-type]
