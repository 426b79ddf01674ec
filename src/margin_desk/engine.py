"""Margin allocation engine: pure functions over a deal.

Nothing here raises: every ratio has a guarded fallback, so an empty or
zero-priced deal still produces well-defined figures. Money is in local
currency unless a name ends in ``_ref``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from margin_desk import TAX_RATE
from margin_desk.models import Deal

FIFTY_PERCENT_DIVISOR = 0.5


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class LineFigures:
    product_id: str
    name: str
    quantity: int
    at_cost: bool
    unit_cost_ref: float
    unit_cost: float
    unit_price: float
    line_total: float


@dataclass(frozen=True)
class DealFigures:
    total_cost_ref: float
    total_cost: float
    total_at_cost: float
    total_flexible_cost: float
    flexible_multiplier: float
    gross_margin_value: float
    flexible_sale_price: float
    gross_margin_percent: float
    suggested_fifty_percent_price: float
    lines: tuple[LineFigures, ...] = ()


# ── Shared formulas ─────────────────────────────────────────────


def split_costs(lines: Iterable[tuple[float, int, bool]], exchange_rate: float) -> tuple[float, float]:
    """Return ``(at_cost_total, flexible_cost_total)`` in local currency.

    *lines* yields ``(unit_cost_ref, quantity, at_cost)`` triples.
    """
    at_cost = 0.0
    flexible = 0.0
    for unit_cost_ref, quantity, is_at_cost in lines:
        cost = unit_cost_ref * exchange_rate * quantity
        if is_at_cost:
            at_cost += cost
        else:
            flexible += cost
    return at_cost, flexible


def flexible_multiplier(target_price: float, total_at_cost: float, total_flexible_cost: float) -> float:
    """Scale applied to flexible items so they absorb the whole margin target."""
    if total_flexible_cost <= 0:
        return 1.0
    return max(0.0, (target_price - total_at_cost) / total_flexible_cost)


def margin_percent(
    target_price: float, total_cost: float, total_at_cost: float, total_flexible_cost: float
) -> float:
    """Gross margin as a percent of the revenue attributable to flexible items.

    Zero when there is no flexible cost or no flexible revenue to measure against.
    """
    flexible_sale_price = target_price - total_at_cost
    if total_flexible_cost <= 0 or flexible_sale_price <= 0:
        return 0.0
    return ((target_price - total_cost) / flexible_sale_price) * 100


# ── Deal figures ────────────────────────────────────────────────


def compute(deal: Deal) -> DealFigures:
    """Recompute every profitability figure from the current deal state."""
    rate = deal.exchange_rate
    target = deal.target_price

    total_cost_ref = sum(item.product.cost * item.quantity for item in deal.items)
    total_cost = total_cost_ref * rate
    total_at_cost, total_flexible = split_costs(
        ((item.product.cost, item.quantity, item.product.is_at_cost) for item in deal.items),
        rate,
    )
    multiplier = flexible_multiplier(target, total_at_cost, total_flexible)

    lines: list[LineFigures] = []
    for item in deal.items:
        unit_cost = item.product.cost * rate
        at_cost = item.product.is_at_cost
        unit_price = unit_cost if at_cost else unit_cost * multiplier
        lines.append(
            LineFigures(
                product_id=item.product.id,
                name=item.product.name,
                quantity=item.quantity,
                at_cost=at_cost,
                unit_cost_ref=item.product.cost,
                unit_cost=unit_cost,
                unit_price=unit_price,
                line_total=unit_price * item.quantity,
            )
        )

    return DealFigures(
        total_cost_ref=total_cost_ref,
        total_cost=total_cost,
        total_at_cost=total_at_cost,
        total_flexible_cost=total_flexible,
        flexible_multiplier=multiplier,
        gross_margin_value=target - total_cost,
        flexible_sale_price=target - total_at_cost,
        gross_margin_percent=margin_percent(target, total_cost, total_at_cost, total_flexible),
        suggested_fifty_percent_price=total_cost / FIFTY_PERCENT_DIVISOR,
        lines=tuple(lines),
    )


# ── Price helpers ───────────────────────────────────────────────


def price_for_margin(total_cost: float, margin: float) -> float | None:
    """Inverse solve: the price giving *margin* percent on the whole deal.

    Treats every item as flexible. Returns ``None`` outside ``0 < margin < 100``
    or when there is no cost to mark up.
    """
    if math.isnan(margin) or not 0 < margin < 100 or total_cost <= 0:
        return None
    return total_cost / (1 - margin / 100)


def tax_amount(amount: float, tax_rate: float = TAX_RATE) -> int:
    return round_half_up(amount * tax_rate)


def price_with_tax(target_price: float, tax_rate: float = TAX_RATE) -> int:
    return round_half_up(target_price * (1 + tax_rate))


def price_from_tax_inclusive(value: float, tax_rate: float = TAX_RATE) -> int:
    return round_half_up(value / (1 + tax_rate))


def needs_seed(deal: Deal) -> bool:
    """True when a non-empty deal has no price yet."""
    return not deal.is_empty and deal.target_price == 0


def seed_price(deal: Deal) -> int:
    """The auto-seed price: the 50%-margin suggestion, rounded."""
    return round_half_up(compute(deal).suggested_fifty_percent_price)
