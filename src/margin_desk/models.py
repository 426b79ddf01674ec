"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Any

from margin_desk import AT_COST_CATEGORY, DEFAULT_CATEGORY, DEFAULT_EXCHANGE_RATE

RawRow = dict[str, Any]
"""One decoded source row: column label -> raw cell value (str, number or None)."""


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    return float(value)


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


@dataclass(frozen=True)
class ProductCandidate:
    """A resolved row before deduplication and before it gets an identity."""

    sku: str
    name: str
    category: str
    cost: float
    suggested_price: float = 0.0


@dataclass
class CatalogProduct:
    """A priced catalog entry. ``cost`` is in the reference currency (USD)."""

    id: str
    name: str
    sku: str = ""
    category: str = DEFAULT_CATEGORY
    cost: float = 0.0
    suggested_price: float = 0.0

    def __post_init__(self) -> None:
        self.name = "" if self.name is None else str(self.name)
        self.sku = "" if self.sku is None else str(self.sku)
        if not self.name.strip() and not self.sku.strip():
            raise ValueError("product needs a non-empty name or sku")
        self.category = str(self.category or DEFAULT_CATEGORY)
        self.cost = _to_float(self.cost, "cost")
        self.suggested_price = _to_float(self.suggested_price, "suggested_price")

    @property
    def is_at_cost(self) -> bool:
        return self.category == AT_COST_CATEGORY

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "cost": self.cost,
            "suggested_price": self.suggested_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CatalogProduct:
        return cls(
            id=str(data["id"]),
            sku=data.get("sku") or "",
            name=data.get("name") or "",
            category=data.get("category") or DEFAULT_CATEGORY,
            cost=float(data.get("cost") or 0),
            suggested_price=float(data.get("suggested_price") or 0),
        )


@dataclass
class DealLineItem:
    product: CatalogProduct
    quantity: int = 1

    def __post_init__(self) -> None:
        self.quantity = _to_non_negative_int(self.quantity, "quantity")


@dataclass
class Deal:
    """The in-progress price simulation: line items, target price, rate.

    ``exchange_rate`` is local-currency units per one reference unit.
    """

    items: list[DealLineItem] = field(default_factory=list)
    target_price: float = 0.0
    exchange_rate: float = DEFAULT_EXCHANGE_RATE

    def __post_init__(self) -> None:
        self.items = list(self.items)
        self.target_price = _to_float(self.target_price, "target_price")
        self.exchange_rate = _to_float(self.exchange_rate, "exchange_rate")

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: str) -> DealLineItem | None:
        for item in self.items:
            if item.product.id == product_id:
                return item
        return None


@dataclass(frozen=True)
class LineSummary:
    """Frozen line of a stored quotation; ``unit_cost`` is in reference currency."""

    name: str
    qty: int
    unit_cost: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "qty": self.qty, "unit_cost": self.unit_cost}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LineSummary:
        return cls(
            name=str(data.get("name") or ""),
            qty=int(data.get("qty") or 0),
            unit_cost=float(data.get("unit_cost") or 0),
        )


@dataclass(frozen=True)
class StoredQuotation:
    """Immutable snapshot of a computed deal.

    ``id`` and ``created_at`` are assigned by the quotation store on insert.
    """

    sale_price: float
    exchange_rate: float
    total_cost_ref: float
    total_cost_local: float
    margin_percent: float
    net_profit: float
    items: tuple[LineSummary, ...] = ()
    id: str = ""
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "sale_price": self.sale_price,
            "exchange_rate": self.exchange_rate,
            "total_cost_ref": self.total_cost_ref,
            "total_cost_local": self.total_cost_local,
            "margin_percent": self.margin_percent,
            "net_profit": self.net_profit,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoredQuotation:
        return cls(
            id=str(data.get("id") or ""),
            created_at=str(data.get("created_at") or ""),
            sale_price=float(data["sale_price"]),
            exchange_rate=float(data["exchange_rate"]),
            total_cost_ref=float(data.get("total_cost_ref") or 0),
            total_cost_local=float(data.get("total_cost_local") or 0),
            margin_percent=float(data.get("margin_percent") or 0),
            net_profit=float(data.get("net_profit") or 0),
            items=tuple(LineSummary.from_dict(item) for item in data.get("items") or ()),
        )


@dataclass
class ImportReport:
    """Row accounting for one catalog import.

    Contract invariant: ``rows_in == rows_out + dropped_rows + duplicate_rows``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    duplicate_rows: int = 0
    header_row: int | None = None
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.duplicate_rows = _to_non_negative_int(self.duplicate_rows, "duplicate_rows")
        if self.header_row is not None:
            self.header_row = _to_non_negative_int(self.header_row, "header_row")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        if self.rows_out + self.dropped_rows + self.duplicate_rows != self.rows_in:
            raise ValueError("rows_in must equal rows_out + dropped_rows + duplicate_rows")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "duplicate_rows": self.duplicate_rows,
            "header_row": self.header_row,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class DecodedTable:
    """Decoder output: every salvageable row plus where the header was found.

    ``header_row`` is the grid index of the header for workbooks and ``None``
    for delimited text, whose header is always the first line.
    """

    rows: list[RawRow]
    source_format: str
    header_row: int | None = None
