"""Ingestion pipeline: resolve raw rows onto product fields, then dedupe.

Pure functions, no side effects.
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from collections.abc import Iterable, Sequence
from numbers import Real
from typing import Any

from margin_desk import CANONICAL_FIELDS, DEFAULT_CATEGORY
from margin_desk.models import (
    CatalogProduct,
    DecodedTable,
    ImportReport,
    ProductCandidate,
    RawRow,
)
from margin_desk.utils import new_token

logger = logging.getLogger(__name__)

# ── Header resolution ───────────────────────────────────────────

FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "sku": ("sku", "codigo", "cod"),
    "name": ("nombre", "name", "articulo", "item"),
    "cost": ("precio", "price", "costo", "cost", "usd"),
    "category": ("categoria", "category", "familia", "tipo"),
}

# Column positions used when no label matched. Category has none.
POSITIONAL_FALLBACK: dict[str, int] = {"sku": 0, "name": 1, "cost": 3}

_NON_NUMERIC_RE = re.compile(r"[^0-9.,]")


def normalize_text(text: object) -> str:
    """Lowercase, strip diacritics and surrounding whitespace."""
    decomposed = unicodedata.normalize("NFD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def find_label(labels: Iterable[str], field_name: str) -> str | None:
    """Return the first label (in source order) matching *field_name*'s synonyms.

    A label matches when its normalized form equals a synonym or contains one.
    """
    synonyms = FIELD_SYNONYMS[field_name]
    for label in labels:
        norm = normalize_text(label)
        if any(norm == kw or kw in norm for kw in synonyms):
            return label
    return None


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _as_text(value: Any) -> str:
    if _is_missing(value):
        return ""
    # Workbook cells hand back codes like 1001 as 1001.0.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _lookup(row: RawRow, values: Sequence[Any], field_name: str, *, allow_position: bool) -> Any:
    label = find_label(row.keys(), field_name)
    if label is not None and not _is_missing(row[label]):
        return row[label]
    position = POSITIONAL_FALLBACK.get(field_name)
    if allow_position and position is not None and position < len(values):
        return values[position]
    return None


# ── Numeric coercion ────────────────────────────────────────────


def _coerce_number_with_flag(value: Any) -> tuple[float, bool]:
    """Return ``(number, unparseable)``; the flag marks non-empty junk."""
    if _is_missing(value):
        return 0.0, False
    if isinstance(value, Real) and not isinstance(value, bool):
        number = float(value)
        return (number, False) if math.isfinite(number) else (0.0, True)

    token = _NON_NUMERIC_RE.sub("", str(value))
    if "," in token:
        # Comma is the decimal mark; periods are thousands separators.
        token = token.replace(".", "")
        whole, _, frac = token.rpartition(",")
        token = f"{whole.replace(',', '')}.{frac}"
    elif token.count(".") > 1:
        token = token.replace(".", "")
    try:
        return float(token), False
    except ValueError:
        return 0.0, True


def coerce_number(value: Any) -> float:
    """Parse noisy numeric text such as ``"$1.234,56"``; junk becomes ``0``."""
    number, _unparseable = _coerce_number_with_flag(value)
    return number


# ── Row resolution ──────────────────────────────────────────────


def resolve_row(row: RawRow, *, first_in_batch: bool = False) -> tuple[ProductCandidate | None, bool]:
    """Resolve one raw row into a candidate.

    Returns ``(candidate, cost_unparseable)``; the candidate is ``None`` when
    the row yields neither a name nor an sku.
    """
    values = list(row.values())
    sku = _as_text(_lookup(row, values, "sku", allow_position=not first_in_batch))
    name = _as_text(_lookup(row, values, "name", allow_position=True))
    raw_cost = _lookup(row, values, "cost", allow_position=True)
    category = _as_text(_lookup(row, values, "category", allow_position=False))

    if not name and not sku:
        return None, False

    cost, unparseable = _coerce_number_with_flag(raw_cost)
    candidate = ProductCandidate(
        sku=sku,
        name=name,
        category=category or DEFAULT_CATEGORY,
        cost=cost,
        suggested_price=0.0,
    )
    return candidate, unparseable


# ── Deduplication ───────────────────────────────────────────────


def dedupe_key(candidate: ProductCandidate) -> str:
    if candidate.name:
        return normalize_text(candidate.name)
    return "sku:" + normalize_text(candidate.sku)


def dedupe(candidates: Iterable[ProductCandidate]) -> list[ProductCandidate]:
    """Keep the first candidate per normalized name, in input order."""
    seen: set[str] = set()
    unique: list[ProductCandidate] = []
    for candidate in candidates:
        key = dedupe_key(candidate)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


# ── Catalog assembly ────────────────────────────────────────────


def assign_identities(
    candidates: Sequence[ProductCandidate], *, token: str | None = None
) -> list[CatalogProduct]:
    """Turn candidates into catalog products.

    The sku doubles as the id when it is unique within the batch; everything
    else gets an ``upl-<token>-<index>`` id.
    """
    token = token or new_token()
    used: set[str] = set()
    products: list[CatalogProduct] = []
    for index, candidate in enumerate(candidates):
        product_id = candidate.sku
        if not product_id or product_id in used:
            product_id = f"upl-{token}-{index}"
        used.add(product_id)
        products.append(
            CatalogProduct(
                id=product_id,
                sku=candidate.sku,
                name=candidate.name,
                category=candidate.category,
                cost=candidate.cost,
                suggested_price=candidate.suggested_price,
            )
        )
    return products


def build_catalog(
    table: DecodedTable, *, token: str | None = None
) -> tuple[list[CatalogProduct], ImportReport]:
    """Run resolve -> dedupe -> identity over a decoded table.

    Returns ``(products, import_report)``.
    """
    candidates: list[ProductCandidate] = []
    unparseable = 0
    for index, row in enumerate(table.rows):
        candidate, bad_cost = resolve_row(row, first_in_batch=index == 0)
        if candidate is None:
            continue
        if bad_cost:
            unparseable += 1
        candidates.append(candidate)

    unique = dedupe(candidates)
    products = assign_identities(unique, token=token)

    rows_in = len(table.rows)
    dropped = rows_in - len(candidates)
    duplicates = len(candidates) - len(unique)
    report = ImportReport(
        rows_in=rows_in,
        rows_out=len(products),
        dropped_rows=dropped,
        duplicate_rows=duplicates,
        header_row=table.header_row,
    )

    labels = list(table.rows[0].keys()) if table.rows else []
    unmatched = [
        f for f in CANONICAL_FIELDS
        if f in POSITIONAL_FALLBACK and labels and find_label(labels, f) is None
    ]
    if unmatched:
        report.warnings.append(
            f"No header matched {', '.join(unmatched)}; read by column position"
        )
    if dropped:
        report.warnings.append(f"Dropped {dropped} rows without a name or sku")
        logger.debug("Dropped %d rows without a name or sku", dropped)
    if duplicates:
        report.warnings.append(f"Skipped {duplicates} rows repeating an earlier product name")
        logger.info("Skipped %d duplicate product rows", duplicates)
    if unparseable:
        suffix = "" if unparseable == 1 else "s"
        report.warnings.append(f"Coerced {unparseable} unparseable cost value{suffix} to 0")
    if rows_in and not products:
        report.warnings.append("Catalog is empty: no usable rows remain")

    return products, report
