from __future__ import annotations

import pytest

from margin_desk import DEFAULT_CATEGORY
from margin_desk.models import DecodedTable, ProductCandidate
from margin_desk.pipeline import (
    assign_identities,
    build_catalog,
    coerce_number,
    dedupe,
    find_label,
    normalize_text,
    resolve_row,
)


def _candidate(name: str, sku: str = "", cost: float = 1.0) -> ProductCandidate:
    return ProductCandidate(sku=sku, name=name, category=DEFAULT_CATEGORY, cost=cost)


def test_normalize_text_folds_case_accents_and_whitespace() -> None:
    assert normalize_text("  Código ") == "codigo"
    assert normalize_text("CAFÉ") == "cafe"


@pytest.mark.parametrize(
    ("field_name", "label"),
    [
        ("sku", "SKU"),
        ("sku", "sku "),
        ("sku", "Código"),
        ("sku", "CODIGO interno"),
        ("sku", "Cod."),
        ("name", "Nombre"),
        ("name", "NAME"),
        ("name", "Artículo"),
        ("name", "Item description"),
        ("cost", "Precio"),
        ("cost", "Price"),
        ("cost", "Costo Unitario"),
        ("cost", "Precio USD"),
        ("category", "Categoría"),
        ("category", "Familia"),
        ("category", "Tipo"),
    ],
)
def test_find_label_accepts_header_variants(field_name: str, label: str) -> None:
    assert find_label(["unrelated", label], field_name) == label


def test_header_variants_resolve_to_same_candidate() -> None:
    spanish = {"Código": "A-1", "Nombre": "Implante", "Categoría": "Implantes", "Precio": "45,5"}
    english = {"SKU": "A-1", "Name": "Implante", "Category": "Implantes", "Cost": "45,5"}

    left, _ = resolve_row(spanish)
    right, _ = resolve_row(english)

    assert left == right
    assert left == ProductCandidate(
        sku="A-1", name="Implante", category="Implantes", cost=45.5, suggested_price=0.0
    )


def test_first_matching_label_wins() -> None:
    candidate, _ = resolve_row({"Nombre": "X", "Precio lista": "10", "Costo": "5"})

    assert candidate is not None
    assert candidate.cost == 10.0


def test_positional_fallback_skips_sku_for_first_row() -> None:
    rows = [
        {"A": "X1", "B": "Widget", "C": "Tools", "D": "12"},
        {"A": "X2", "B": "Gadget", "C": "", "D": "7,5"},
    ]

    candidates, _report = build_catalog(DecodedTable(rows=rows, source_format="csv"), token="t")

    assert [c.sku for c in candidates] == ["", "X2"]
    assert [c.name for c in candidates] == ["Widget", "Gadget"]
    assert [c.cost for c in candidates] == [12.0, 7.5]
    assert all(c.category == DEFAULT_CATEGORY for c in candidates)


def test_blank_labelled_value_falls_back_to_column_position() -> None:
    row = {"Codigo": "C-9", "Descripcion": "Pinza", "Nombre": "", "Precio": "3"}

    candidate, _ = resolve_row(row)

    assert candidate is not None
    assert candidate.name == "Pinza"


def test_rows_without_name_or_sku_are_discarded() -> None:
    candidate, unparseable = resolve_row({"SKU": "", "Nombre": "", "Precio": "99"})

    assert candidate is None
    assert unparseable is False


def test_integral_float_codes_render_without_decimal() -> None:
    candidate, _ = resolve_row({"SKU": 1001.0, "Nombre": "Broca", "Precio": 2})

    assert candidate is not None
    assert candidate.sku == "1001"
    assert candidate.cost == 2.0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1.234,56", 1234.56),
        ("12.5", 12.5),
        ("USD 45", 45.0),
        ("1.234.567", 1234567.0),
        ("7,5", 7.5),
        ("", 0.0),
        (None, 0.0),
        ("abc", 0.0),
        (7, 7.0),
        (3.25, 3.25),
    ],
)
def test_coerce_number(raw: object, expected: float) -> None:
    assert coerce_number(raw) == pytest.approx(expected)


def test_dedupe_keeps_first_by_normalized_name() -> None:
    candidates = [
        _candidate("Widget", cost=1),
        _candidate("WIDGET ", cost=2),
        _candidate("Café", cost=3),
        _candidate("cafe", cost=4),
        _candidate("Other", cost=5),
    ]

    unique = dedupe(candidates)

    assert [(c.name, c.cost) for c in unique] == [("Widget", 1), ("Café", 3), ("Other", 5)]


def test_dedupe_sku_only_candidates_key_on_sku() -> None:
    unique = dedupe([_candidate("", sku="K1"), _candidate("", sku="k1"), _candidate("", sku="K2")])

    assert [c.sku for c in unique] == ["K1", "K2"]


def test_assign_identities_uses_unique_sku_else_generated_id() -> None:
    products = assign_identities(
        [_candidate("A", sku="S1"), _candidate("B", sku="S1"), _candidate("C")],
        token="tok",
    )

    assert [p.id for p in products] == ["S1", "upl-tok-1", "upl-tok-2"]


def test_build_catalog_reports_row_accounting() -> None:
    table = DecodedTable(
        rows=[
            {"SKU": "A", "Nombre": "Widget", "Precio": "10"},
            {"SKU": "", "Nombre": "", "Precio": ""},
            {"SKU": "B", "Nombre": "widget", "Precio": "11"},
            {"SKU": "C", "Nombre": "Gadget", "Precio": "n/a"},
        ],
        source_format="csv",
    )

    products, report = build_catalog(table, token="t")

    assert [p.name for p in products] == ["Widget", "Gadget"]
    assert report.rows_in == 4
    assert report.rows_out == 2
    assert report.dropped_rows == 1
    assert report.duplicate_rows == 1
    assert "Coerced 1 unparseable cost value to 0" in report.warnings


def test_build_catalog_warns_when_read_by_position() -> None:
    table = DecodedTable(rows=[{"a": "1", "b": "Widget", "c": "", "d": "5"}], source_format="csv")

    products, report = build_catalog(table, token="t")

    assert products[0].name == "Widget"
    assert report.warnings[0].startswith("No header matched sku, name, cost")


def test_build_catalog_flags_empty_result() -> None:
    table = DecodedTable(rows=[{"SKU": "", "Nombre": ""}], source_format="csv")

    products, report = build_catalog(table)

    assert products == []
    assert "Catalog is empty: no usable rows remain" in report.warnings


def test_build_catalog_is_deterministic_for_same_rows() -> None:
    table = DecodedTable(
        rows=[{"SKU": "A", "Nombre": "Widget", "Precio": "1,5"}, {"SKU": "", "Nombre": "Extra", "Precio": "2"}],
        source_format="csv",
    )

    first, _ = build_catalog(table, token="same")
    second, _ = build_catalog(table, token="same")

    assert [p.to_dict() for p in first] == [p.to_dict() for p in second]
