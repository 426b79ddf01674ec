from __future__ import annotations

import pytest

from margin_desk import AT_COST_CATEGORY, DEFAULT_CATEGORY
from margin_desk.models import CatalogProduct, Deal, DealLineItem, ImportReport


def test_catalog_product_requires_name_or_sku() -> None:
    with pytest.raises(ValueError, match="name or sku"):
        CatalogProduct(id="x", name="  ", sku="")

    assert CatalogProduct(id="x", name="", sku="S1").sku == "S1"


def test_catalog_product_defaults_and_at_cost_flag() -> None:
    product = CatalogProduct(id="x", name="Broca", category="")

    assert product.category == DEFAULT_CATEGORY
    assert not product.is_at_cost
    assert CatalogProduct(id="y", name="Flete", category=AT_COST_CATEGORY).is_at_cost


def test_catalog_product_rejects_non_numeric_cost() -> None:
    with pytest.raises(TypeError, match="cost must be a number"):
        CatalogProduct(id="x", name="Broca", cost="12")  # type: ignore[arg-type]


def test_catalog_product_dict_round_trip() -> None:
    product = CatalogProduct(id="x", name="Broca", sku="B-1", category="Kits", cost=2.5, suggested_price=6)

    assert CatalogProduct.from_dict(product.to_dict()) == product


def test_catalog_product_from_dict_fills_gaps() -> None:
    product = CatalogProduct.from_dict({"id": 7, "name": "Broca", "cost": None})

    assert product.id == "7"
    assert product.cost == 0.0
    assert product.category == DEFAULT_CATEGORY


def test_line_item_quantity_validation() -> None:
    product = CatalogProduct(id="x", name="Broca")

    with pytest.raises(ValueError, match="quantity must be >= 0"):
        DealLineItem(product, quantity=-1)
    with pytest.raises(TypeError, match="quantity must be an integer"):
        DealLineItem(product, quantity=1.5)  # type: ignore[arg-type]


def test_deal_find_and_empty() -> None:
    product = CatalogProduct(id="x", name="Broca")
    deal = Deal(items=[DealLineItem(product)])

    assert not deal.is_empty
    assert deal.find("x") is deal.items[0]
    assert deal.find("nope") is None
    assert Deal().is_empty


def test_import_report_enforces_row_accounting() -> None:
    report = ImportReport(rows_in=5, rows_out=3, dropped_rows=1, duplicate_rows=1, warnings=["w"])

    assert report.to_dict()["warnings"] == ["w"]

    with pytest.raises(ValueError, match="rows_in must equal"):
        ImportReport(rows_in=5, rows_out=3, dropped_rows=1, duplicate_rows=0)
    with pytest.raises(ValueError, match="rows_out must be <= rows_in"):
        ImportReport(rows_in=1, rows_out=2)
    with pytest.raises(TypeError, match="warnings must be a sequence of strings"):
        ImportReport(warnings="oops")  # type: ignore[arg-type]
