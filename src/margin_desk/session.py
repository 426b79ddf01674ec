"""Operator session: the active catalog and the deal being simulated.

The session is the single writer of its deal. Every figure shown to the
operator comes from :func:`margin_desk.engine.compute` on the current state.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from pathlib import Path

from margin_desk import AT_COST_CATEGORY, DEFAULT_CATEGORY, DEFAULT_EXCHANGE_RATE, TAX_RATE
from margin_desk import engine
from margin_desk.engine import DealFigures
from margin_desk.errors import InvalidInput
from margin_desk.io import load_table
from margin_desk.models import CatalogProduct, Deal, DealLineItem, ImportReport, StoredQuotation
from margin_desk.pipeline import build_catalog, normalize_text
from margin_desk.quotation import freeze, restore
from margin_desk.rates import RateQuote
from margin_desk.stores import CatalogStore, QuotationStore
from margin_desk.utils import new_token

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"
GENERAL_LIST = "Generales"

# Shown while the catalog store is still empty.
DEMO_CATALOG: tuple[dict[str, object], ...] = (
    {"id": "ar-001", "name": "Implante AnyRidge (Standard)", "category": "Implantes", "cost": 45, "suggested_price": 120},
    {"id": "ao-001", "name": "Implante AnyOne (Internal)", "category": "Implantes", "cost": 38, "suggested_price": 95},
    {"id": "tb-001", "name": "Ti-Base AnyRidge Non-Hex", "category": "Aditamentos", "cost": 15, "suggested_price": 45},
    {"id": "tb-002", "name": "Ti-Base AnyOne Hex", "category": "Aditamentos", "cost": 12, "suggested_price": 38},
)


class Session:
    def __init__(
        self,
        catalog_store: CatalogStore,
        quotation_store: QuotationStore,
        *,
        exchange_rate: float = DEFAULT_EXCHANGE_RATE,
        tax_rate: float = TAX_RATE,
    ) -> None:
        self.catalog_store = catalog_store
        self.quotation_store = quotation_store
        self.tax_rate = tax_rate
        self.products: list[CatalogProduct] = []
        self.custom_categories: list[str] = []
        self.deal = Deal(exchange_rate=exchange_rate)
        self.rate_as_of = ""
        self.rate_stale = False

    # ── Catalog ─────────────────────────────────────────────────

    def load_catalog(self) -> list[CatalogProduct]:
        """Read the catalog store; an empty store yields the demo catalog."""
        products = self.catalog_store.read()
        if not products:
            products = [CatalogProduct.from_dict(record) for record in DEMO_CATALOG]
        self.products = products
        return products

    def import_file(self, path: Path) -> ImportReport:
        """Decode, resolve and dedupe *path*, then install it as the catalog."""
        table = load_table(path)
        products, report = build_catalog(table)
        self.replace_catalog(products)
        return report

    def replace_catalog(self, products: list[CatalogProduct]) -> None:
        """Install *products* and start a fresh deal (no merge)."""
        self.products = list(products)
        self.deal = Deal(exchange_rate=self.deal.exchange_rate)

    def sync_catalog(self) -> list[CatalogProduct]:
        """Replace the stored catalog with the session one and adopt store ids."""
        if not self.products:
            return []
        self.catalog_store.replace_all(self.products)
        self.products = self.catalog_store.read()
        return self.products

    def get_product(self, product_id: str) -> CatalogProduct:
        for product in self.products:
            if product.id == product_id:
                return product
        raise InvalidInput(f"No product with id {product_id!r}")

    def create_manual_item(self, name: str, cost: object) -> CatalogProduct:
        """Create a one-off at-cost product.

        The product is shown immediately under a tentative id; a failed store
        insert removes it again and re-raises, a successful one swaps in the
        store id.
        """
        name = (name or "").strip()
        if not name or cost is None or str(cost).strip() == "":
            raise InvalidInput("Name and cost are both required")
        try:
            cost_value = float(str(cost).strip())
        except ValueError as exc:
            raise InvalidInput(f"Cost must be a number: {cost!r}") from exc
        if not math.isfinite(cost_value):
            raise InvalidInput(f"Cost must be a number: {cost!r}")
        if any(p.name.lower() == name.lower() for p in self.products):
            raise InvalidInput(f"A product named {name!r} already exists")

        token = new_token()
        tentative = CatalogProduct(
            id=f"unique-{token}",
            sku=f"UNIQUE-{token}",
            name=name,
            category=AT_COST_CATEGORY,
            cost=cost_value,
            suggested_price=cost_value,
        )
        self.products.insert(0, tentative)
        try:
            stored = self.catalog_store.insert(tentative)
        except Exception:
            self.products = [p for p in self.products if p.id != tentative.id]
            logger.warning("Rolled back tentative product %r", name)
            raise
        tentative.id = stored.id
        return tentative

    def recategorize(self, product_id: str, category: str) -> CatalogProduct:
        category = (category or "").strip()
        if not category:
            raise InvalidInput("Category must not be empty")
        product = self.get_product(product_id)
        self.catalog_store.update_category(product_id, category)
        product.category = category
        return product

    def remove_from_list(self, product_id: str) -> CatalogProduct:
        """Send a product back to the general category."""
        return self.recategorize(product_id, DEFAULT_CATEGORY)

    def delete_product(self, product_id: str) -> None:
        self.get_product(product_id)
        self.catalog_store.delete(product_id)
        self.products = [p for p in self.products if p.id != product_id]

    def create_list(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInput("List name must not be empty")
        if name in self.categories():
            raise InvalidInput(f"List {name!r} already exists")
        self.custom_categories.append(name)
        return name

    def categories(self) -> list[str]:
        fixed = {ALL_CATEGORIES, GENERAL_LIST, DEFAULT_CATEGORY, AT_COST_CATEGORY}
        merged = {p.category for p in self.products} | set(self.custom_categories)
        return [ALL_CATEGORIES, GENERAL_LIST, *sorted(merged - fixed), AT_COST_CATEGORY]

    def search(self, term: str = "", category: str = ALL_CATEGORIES) -> list[CatalogProduct]:
        """Products in *category* whose text contains every word of *term*."""
        words = normalize_text(term).split()
        matches: list[CatalogProduct] = []
        for product in self.products:
            if category != ALL_CATEGORIES and product.category != category:
                continue
            text = normalize_text(f"{product.name} {product.sku} {product.category}")
            if all(word in text for word in words):
                matches.append(product)
        return matches

    # ── Deal ────────────────────────────────────────────────────

    def figures(self) -> DealFigures:
        return engine.compute(self.deal)

    def _apply_seed(self) -> None:
        # Re-arms whenever the price reads exactly 0 with items present.
        if engine.needs_seed(self.deal):
            self.deal.target_price = float(engine.seed_price(self.deal))

    def _put(self, product: CatalogProduct, quantity: int) -> DealLineItem:
        item = self.deal.find(product.id)
        if item is not None:
            item.quantity += max(0, int(quantity))
        else:
            item = DealLineItem(product=product, quantity=max(0, int(quantity)))
            self.deal.items.append(item)
        return item

    def add_item(self, product: CatalogProduct) -> DealLineItem:
        item = self._put(product, 1)
        self._apply_seed()
        return item

    def add_items(self, entries: Iterable[tuple[CatalogProduct, int]]) -> list[DealLineItem]:
        """Add a whole basket at once; the auto-seed sees the complete deal."""
        items = [self._put(product, quantity) for product, quantity in entries]
        self._apply_seed()
        return items

    def remove_item(self, product_id: str) -> None:
        self.deal.items = [i for i in self.deal.items if i.product.id != product_id]
        self._apply_seed()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        item = self.deal.find(product_id)
        if item is None:
            raise InvalidInput(f"Product {product_id!r} is not in the deal")
        item.quantity = max(0, int(quantity))
        self._apply_seed()

    def clear_deal(self) -> None:
        self.deal.items = []
        self.deal.target_price = 0.0

    def set_price(self, value: float) -> None:
        """Set the net target price; a non-finite value counts as 0."""
        price = float(value)
        self.deal.target_price = price if math.isfinite(price) else 0.0
        self._apply_seed()

    def price_at_cost(self) -> None:
        self.set_price(engine.round_half_up(self.figures().total_cost))

    def price_at_fifty(self) -> None:
        self.set_price(engine.round_half_up(self.figures().suggested_fifty_percent_price))

    def price_for_margin(self, margin: float) -> bool:
        """Apply the quick what-if price for *margin*; False when not applicable."""
        price = engine.price_for_margin(self.figures().total_cost, margin)
        if price is None:
            return False
        self.set_price(engine.round_half_up(price))
        return True

    @property
    def price_with_tax(self) -> int:
        return engine.price_with_tax(self.deal.target_price, self.tax_rate)

    def set_price_with_tax(self, value: object) -> None:
        """Back-compute the net price from a tax-inclusive entry; junk means 0."""
        try:
            amount = float(str(value).strip())
        except ValueError:
            self.set_price(0)
            return
        if not math.isfinite(amount):
            self.set_price(0)
            return
        self.set_price(engine.price_from_tax_inclusive(amount, self.tax_rate))

    def set_exchange_rate(self, rate: float) -> None:
        rate = float(rate)
        if not math.isfinite(rate) or rate <= 0:
            raise InvalidInput(f"Exchange rate must be a positive number: {rate!r}")
        self.deal.exchange_rate = rate
        self._apply_seed()

    def apply_rate(self, quote: RateQuote) -> None:
        self.set_exchange_rate(quote.rate)
        self.rate_as_of = quote.as_of
        self.rate_stale = quote.stale

    # ── Quotations ──────────────────────────────────────────────

    def save_quotation(self) -> StoredQuotation:
        """Freeze the deal and append it to the quotation store."""
        snapshot = freeze(self.deal, self.figures())
        return self.quotation_store.insert(snapshot)

    def list_quotations(self) -> list[StoredQuotation]:
        return self.quotation_store.list()

    def delete_quotation(self, quotation_id: str) -> None:
        self.quotation_store.delete(quotation_id)

    def restore_quotation(self, quotation: StoredQuotation) -> Deal:
        """Load a stored quotation back into the simulator for editing."""
        self.deal = restore(quotation)
        return self.deal
