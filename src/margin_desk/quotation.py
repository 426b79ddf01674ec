"""Quotation codec: freeze a computed deal, restore a deal from history.

A stored quotation keeps the inputs (price, rate, frozen lines) and never the
multiplier; every rendering recomputes it.
"""

from __future__ import annotations

from dataclasses import dataclass

from margin_desk import RESTORED_CATEGORY, TAX_RATE
from margin_desk.engine import (
    DealFigures,
    compute,
    flexible_multiplier,
    margin_percent,
    round_half_up,
    split_costs,
)
from margin_desk.errors import SaveRejected
from margin_desk.models import CatalogProduct, Deal, DealLineItem, LineSummary, StoredQuotation
from margin_desk.utils import new_token

# Frozen lines carry no category, so at-cost lines are recognised by name.
SPECIAL_ITEM_MARKERS = ("item especial", "manual")

MARGIN_BANDS = ((50.0, "high"), (30.0, "medium"))


def freeze(deal: Deal, figures: DealFigures | None = None) -> StoredQuotation:
    """Snapshot *deal* for the quotation store.

    Raises
    ------
    SaveRejected
        If the deal has no items or no positive target price.
    """
    if deal.is_empty or not deal.target_price > 0:
        raise SaveRejected("Enter a valid simulation (items and a positive price) before saving")
    figures = figures or compute(deal)
    return StoredQuotation(
        sale_price=deal.target_price,
        exchange_rate=deal.exchange_rate,
        total_cost_ref=figures.total_cost_ref,
        total_cost_local=figures.total_cost,
        margin_percent=figures.gross_margin_percent,
        net_profit=figures.gross_margin_value,
        items=tuple(
            LineSummary(
                name=item.product.name or item.product.sku,
                qty=item.quantity,
                unit_cost=item.product.cost,
            )
            for item in deal.items
        ),
    )


def restore(quotation: StoredQuotation) -> Deal:
    """Rebuild an editable deal from *quotation* with stand-in products."""
    token = new_token()
    items = [
        DealLineItem(
            product=CatalogProduct(
                id=f"restored-{token}-{index}",
                name=line.name or f"Item {index + 1}",
                sku="",
                category=RESTORED_CATEGORY,
                cost=line.unit_cost,
                suggested_price=0.0,
            ),
            quantity=line.qty,
        )
        for index, line in enumerate(quotation.items)
    ]
    return Deal(
        items=items,
        target_price=quotation.sale_price,
        exchange_rate=quotation.exchange_rate,
    )


# ── Export recompute ────────────────────────────────────────────


def is_special_item(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SPECIAL_ITEM_MARKERS)


def margin_band(percent: float) -> str:
    for threshold, band in MARGIN_BANDS:
        if percent >= threshold:
            return band
    return "low"


@dataclass(frozen=True)
class QuotationLine:
    name: str
    qty: int
    unit_cost_ref: float
    at_cost: bool
    unit_cost: float
    unit_price: float
    line_total: float


@dataclass(frozen=True)
class QuotationBreakdown:
    subtotal: int
    tax: int
    total: int
    total_cost: float
    total_at_cost: float
    total_flexible_cost: float
    flexible_multiplier: float
    margin_percent: float
    lines: tuple[QuotationLine, ...]

    @property
    def margin_band(self) -> str:
        return margin_band(self.margin_percent)


def breakdown(quotation: StoredQuotation, tax_rate: float = TAX_RATE) -> QuotationBreakdown:
    """Recompute display figures for a stored quotation."""
    rate = quotation.exchange_rate
    flags = [is_special_item(line.name) for line in quotation.items]
    total_at_cost, total_flexible = split_costs(
        ((line.unit_cost, line.qty, flag) for line, flag in zip(quotation.items, flags)),
        rate,
    )
    multiplier = flexible_multiplier(quotation.sale_price, total_at_cost, total_flexible)

    lines: list[QuotationLine] = []
    for line, at_cost in zip(quotation.items, flags):
        unit_cost = line.unit_cost * rate
        unit_price = unit_cost if at_cost else unit_cost * multiplier
        lines.append(
            QuotationLine(
                name=line.name,
                qty=line.qty,
                unit_cost_ref=line.unit_cost,
                at_cost=at_cost,
                unit_cost=unit_cost,
                unit_price=unit_price,
                line_total=unit_price * line.qty,
            )
        )

    subtotal = round_half_up(quotation.sale_price)
    tax = round_half_up(subtotal * tax_rate)
    return QuotationBreakdown(
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        total_cost=quotation.total_cost_local,
        total_at_cost=total_at_cost,
        total_flexible_cost=total_flexible,
        flexible_multiplier=multiplier,
        margin_percent=margin_percent(
            subtotal, quotation.total_cost_local, total_at_cost, total_flexible
        ),
        lines=tuple(lines),
    )
