"""Catalog and quotation stores.

The session only depends on the two protocols. The JSON-file stores back the
CLI; the in-memory variants share their rules and keep nothing on disk. Identities are assigned by the store.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol

from margin_desk.errors import StoreError
from margin_desk.io import read_json, write_json
from margin_desk.models import CatalogProduct, StoredQuotation
from margin_desk.utils import new_id, utcnow_iso

logger = logging.getLogger(__name__)


class CatalogStore(Protocol):
    def read(self) -> list[CatalogProduct]: ...

    def replace_all(self, products: Sequence[CatalogProduct]) -> list[CatalogProduct]: ...

    def insert(self, product: CatalogProduct) -> CatalogProduct: ...

    def update_category(self, product_id: str, category: str) -> None: ...

    def delete(self, product_id: str) -> None: ...


class QuotationStore(Protocol):
    def insert(self, quotation: StoredQuotation) -> StoredQuotation: ...

    def list(self) -> list[StoredQuotation]: ...

    def delete(self, quotation_id: str) -> None: ...


# ── JSON-file implementations ───────────────────────────────────


class _JsonDocument:
    """One JSON file holding a list of records under *key*."""

    def __init__(self, path: Path, key: str) -> None:
        self.path = Path(path)
        self.key = key

    def load(self) -> list[dict[str, Any]]:
        try:
            data = read_json(self.path, default={self.key: []})
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Cannot read {self.path}: {exc}") from exc
        records = data.get(self.key) if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise StoreError(f"{self.path} has no {self.key!r} list")
        return records

    def save(self, records: list[dict[str, Any]]) -> None:
        try:
            write_json(self.path, {self.key: records})
        except OSError as exc:
            raise StoreError(f"Cannot write {self.path}: {exc}") from exc


class _MemoryDocument:
    """In-process stand-in for a JSON document; records are copied in and out."""

    def __init__(self, records: Sequence[dict[str, Any]] = ()) -> None:
        self._records = [dict(r) for r in records]

    def load(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records]

    def save(self, records: list[dict[str, Any]]) -> None:
        self._records = [dict(r) for r in records]


class JsonCatalogStore:
    """Catalog persisted to ``catalog.json``; product names are unique (case-insensitive)."""

    def __init__(self, path: Path) -> None:
        self._doc: _JsonDocument | _MemoryDocument = _JsonDocument(path, "products")

    def read(self) -> list[CatalogProduct]:
        products = [CatalogProduct.from_dict(r) for r in self._doc.load()]
        return sorted(products, key=lambda p: p.name)

    def replace_all(self, products: Sequence[CatalogProduct]) -> list[CatalogProduct]:
        stored = [replace(p, id=new_id()) for p in products]
        self._doc.save([p.to_dict() for p in stored])
        logger.info("Catalog store replaced with %d products", len(stored))
        return stored

    def insert(self, product: CatalogProduct) -> CatalogProduct:
        records = self._doc.load()
        wanted = product.name.lower()
        if any(str(r.get("name") or "").lower() == wanted for r in records):
            raise StoreError(f"Name {product.name!r} is already in use", code="duplicate")
        stored = replace(product, id=new_id())
        records.append(stored.to_dict())
        self._doc.save(records)
        logger.info("Inserted product %s", stored.id)
        return stored

    def update_category(self, product_id: str, category: str) -> None:
        records = self._doc.load()
        for record in records:
            if record.get("id") == product_id:
                record["category"] = category
                self._doc.save(records)
                return
        raise StoreError(f"Product {product_id!r} not found", code="not_found")

    def delete(self, product_id: str) -> None:
        records = self._doc.load()
        kept = [r for r in records if r.get("id") != product_id]
        if len(kept) == len(records):
            raise StoreError(f"Product {product_id!r} not found", code="not_found")
        self._doc.save(kept)


class JsonQuotationStore:
    """Append-only quotation history persisted to ``quotations.json``."""

    def __init__(self, path: Path) -> None:
        self._doc: _JsonDocument | _MemoryDocument = _JsonDocument(path, "quotations")

    def insert(self, quotation: StoredQuotation) -> StoredQuotation:
        records = self._doc.load()
        stored = replace(quotation, id=new_id(), created_at=utcnow_iso())
        records.append(stored.to_dict())
        self._doc.save(records)
        logger.info("Saved quotation %s", stored.id)
        return stored

    def list(self) -> list[StoredQuotation]:
        quotations = [StoredQuotation.from_dict(r) for r in self._doc.load()]
        # Newest first; insertion order breaks timestamp ties.
        ordered = sorted(enumerate(quotations), key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        return [q for _, q in ordered]

    def delete(self, quotation_id: str) -> None:
        records = self._doc.load()
        kept = [r for r in records if r.get("id") != quotation_id]
        if len(kept) == len(records):
            raise StoreError(f"Quotation {quotation_id!r} not found", code="not_found")
        self._doc.save(kept)


class MemoryCatalogStore(JsonCatalogStore):
    """Catalog kept in process memory, with the same rules as the JSON store."""

    def __init__(self, products: Sequence[CatalogProduct] = ()) -> None:
        self._doc = _MemoryDocument([p.to_dict() for p in products])


class MemoryQuotationStore(JsonQuotationStore):
    def __init__(self) -> None:
        self._doc = _MemoryDocument()


def open_stores(data_dir: Path) -> tuple[JsonCatalogStore, JsonQuotationStore]:
    data_dir = Path(data_dir)
    return (
        JsonCatalogStore(data_dir / "catalog.json"),
        JsonQuotationStore(data_dir / "quotations.json"),
    )
