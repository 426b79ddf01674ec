from __future__ import annotations

import pytest

from margin_desk import AT_COST_CATEGORY, RESTORED_CATEGORY
from margin_desk.engine import compute
from margin_desk.errors import SaveRejected
from margin_desk.models import CatalogProduct, Deal, DealLineItem, LineSummary, StoredQuotation
from margin_desk.quotation import breakdown, freeze, is_special_item, margin_band, restore


def _deal() -> Deal:
    return Deal(
        items=[
            DealLineItem(CatalogProduct(id="a", name="Implante", cost=100), quantity=2),
            DealLineItem(CatalogProduct(id="b", name="", sku="TB-1", cost=10), quantity=1),
        ],
        target_price=420_000,
        exchange_rate=1000,
    )


def test_freeze_snapshots_inputs_and_figures() -> None:
    deal = _deal()

    quotation = freeze(deal)

    assert quotation.sale_price == 420_000
    assert quotation.exchange_rate == 1000
    assert quotation.total_cost_ref == 210
    assert quotation.total_cost_local == 210_000
    assert quotation.net_profit == 210_000
    assert quotation.margin_percent == pytest.approx(compute(deal).gross_margin_percent)
    assert quotation.items == (
        LineSummary(name="Implante", qty=2, unit_cost=100),
        LineSummary(name="TB-1", qty=1, unit_cost=10),
    )
    assert quotation.id == ""


def test_freeze_rejects_empty_deal() -> None:
    with pytest.raises(SaveRejected):
        freeze(Deal(target_price=1000))


def test_freeze_rejects_unpriced_deal() -> None:
    deal = _deal()
    deal.target_price = 0

    with pytest.raises(SaveRejected):
        freeze(deal)


def test_restore_rebuilds_equivalent_deal_with_fresh_ids() -> None:
    quotation = freeze(_deal())

    first = restore(quotation)
    second = restore(quotation)

    assert first.target_price == 420_000
    assert first.exchange_rate == 1000
    assert [(i.product.name, i.quantity, i.product.cost) for i in first.items] == [
        ("Implante", 2, 100),
        ("TB-1", 1, 10),
    ]
    assert all(i.product.category == RESTORED_CATEGORY for i in first.items)
    ids = [i.product.id for i in first.items] + [i.product.id for i in second.items]
    assert len(set(ids)) == 4
    assert not {"a", "b"} & set(ids)
    assert compute(first).total_cost == quotation.total_cost_local


def test_restore_names_blank_lines_by_position() -> None:
    quotation = StoredQuotation(
        sale_price=1,
        exchange_rate=1,
        total_cost_ref=1,
        total_cost_local=1,
        margin_percent=0,
        net_profit=0,
        items=(LineSummary(name="", qty=1, unit_cost=1),),
    )

    assert restore(quotation).items[0].product.name == "Item 1"


def test_stored_quotation_dict_round_trip() -> None:
    quotation = freeze(_deal())

    assert StoredQuotation.from_dict(quotation.to_dict()) == quotation


@pytest.mark.parametrize(
    ("name", "expected"),
    [("Item Especial Pasaje", True), ("Instalación MANUAL", True), ("Pasaje aéreo", False)],
)
def test_is_special_item(name: str, expected: bool) -> None:
    assert is_special_item(name) is expected


def test_breakdown_treats_special_names_at_cost() -> None:
    quotation = StoredQuotation(
        sale_price=150_000,
        exchange_rate=1000,
        total_cost_ref=100,
        total_cost_local=100_000,
        margin_percent=50,
        net_profit=50_000,
        items=(
            LineSummary(name="Implante", qty=1, unit_cost=50),
            LineSummary(name="Item Especial Flete", qty=1, unit_cost=50),
        ),
    )

    figures = breakdown(quotation, tax_rate=0.19)

    assert figures.subtotal == 150_000
    assert figures.tax == 28_500
    assert figures.total == 178_500
    assert figures.total_at_cost == 50_000
    assert figures.flexible_multiplier == pytest.approx(2.0)
    assert [line.at_cost for line in figures.lines] == [False, True]
    assert figures.lines[1].unit_price == 50_000
    assert figures.margin_percent == pytest.approx(50.0)
    assert figures.margin_band == "high"


def test_breakdown_ignores_live_category_of_unmarked_names() -> None:
    deal = Deal(
        items=[
            DealLineItem(CatalogProduct(id="f", name="Implante", cost=50)),
            DealLineItem(
                CatalogProduct(id="t", name="Pasaje aéreo", category=AT_COST_CATEGORY, cost=50)
            ),
        ],
        target_price=150_000,
        exchange_rate=1000,
    )

    live = compute(deal)
    exported = breakdown(freeze(deal))

    assert live.flexible_multiplier == pytest.approx(2.0)
    assert exported.flexible_multiplier == pytest.approx(1.5)
    assert not any(line.at_cost for line in exported.lines)


@pytest.mark.parametrize(("percent", "band"), [(50, "high"), (49.9, "medium"), (30, "medium"), (5, "low")])
def test_margin_band(percent: float, band: str) -> None:
    assert margin_band(percent) == band


def test_freeze_rejects_nan_price() -> None:
    deal = _deal()
    deal.target_price = float("nan")

    with pytest.raises(SaveRejected):
        freeze(deal)
