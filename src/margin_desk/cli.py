"""CLI entry point for margin-desk."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from margin_desk import __version__
from margin_desk.config import Settings, load_settings
from margin_desk.errors import InvalidInput, MarginDeskError
from margin_desk.io import write_json
from margin_desk.log import setup_logging
from margin_desk.models import CatalogProduct, StoredQuotation
from margin_desk.pipeline import normalize_text
from margin_desk.rates import fetch_rate_with_retry
from margin_desk.report import write_quotation_report
from margin_desk.session import Session
from margin_desk.stores import open_stores
from margin_desk.utils import sha256_file

app = typer.Typer(
    name="mdesk",
    help="margin-desk: turn messy supplier spreadsheets into priced deals.",
    add_completion=False,
    no_args_is_help=True,
)
catalog_app = typer.Typer(help="Import and manage the product catalog.", no_args_is_help=True)
history_app = typer.Typer(help="Browse, restore and export saved quotations.", no_args_is_help=True)
app.add_typer(catalog_app, name="catalog")
app.add_typer(history_app, name="history")
console = Console()


class ReportViewOption(str, Enum):
    internal = "internal"
    client = "client"


@dataclass
class AppState:
    settings: Settings

    def session(self) -> Session:
        catalog_store, quotation_store = open_stores(self.settings.data_dir)
        return Session(
            catalog_store,
            quotation_store,
            exchange_rate=self.settings.default_exchange_rate,
            tax_rate=self.settings.tax_rate,
        )


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _state(ctx: typer.Context) -> AppState:
    state = ctx.find_root().obj
    if not isinstance(state, AppState):
        state = AppState(settings=load_settings())
        ctx.find_root().obj = state
    return state


def _fail(exc: Exception) -> typer.Exit:
    if isinstance(exc, MarginDeskError):
        _err(str(exc))
        return typer.Exit(code=2)
    _err(f"Unexpected internal error: {exc}")
    return typer.Exit(code=1)


def _money(value: float) -> str:
    return f"${value:,.0f}"


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"margin-desk v{__version__}")
        raise typer.Exit()


def _parse_item_spec(raw: str) -> tuple[str, int]:
    """Parse ``KEY`` or ``KEY=QTY`` into ``(key, qty)``."""
    key, sep, qty = raw.rpartition("=")
    if not sep:
        return raw.strip(), 1
    try:
        quantity = int(qty.strip())
    except ValueError as exc:
        raise InvalidInput(f"Invalid --item value: {raw!r}  (expected NAME_OR_ID=QTY)") from exc
    return key.strip(), quantity


def _find_product(products: list[CatalogProduct], key: str) -> CatalogProduct:
    for product in products:
        if product.id == key or (product.sku and product.sku == key):
            return product
    wanted = normalize_text(key)
    for product in products:
        if normalize_text(product.name) == wanted:
            return product
    raise InvalidInput(f"No catalog product matches {key!r}")


def _find_quotation(session: Session, quotation_id: str) -> StoredQuotation:
    for quotation in session.list_quotations():
        if quotation.id == quotation_id:
            return quotation
    raise InvalidInput(f"No saved quotation with id {quotation_id!r}")


def _products_table(products: list[CatalogProduct], exchange_rate: float) -> RichTable:
    tbl = RichTable(title="Catalog", show_lines=False)
    tbl.add_column("ID", style="dim")
    tbl.add_column("SKU")
    tbl.add_column("Name", style="bold")
    tbl.add_column("Category")
    tbl.add_column("Cost USD", justify="right")
    tbl.add_column("Cost local", justify="right")
    for p in products:
        tbl.add_row(
            p.id, p.sku, p.name, p.category, f"{p.cost:,.2f}", _money(p.cost * exchange_rate)
        )
    return tbl


def _print_deal(session: Session) -> None:
    figures = session.figures()
    deal = session.deal

    tbl = RichTable(title="Deal simulation", show_lines=False)
    tbl.add_column("Product", style="bold")
    tbl.add_column("Qty", justify="center")
    tbl.add_column("Unit ref", justify="right")
    tbl.add_column("Total ref", justify="right")
    tbl.add_column("Real cost", justify="right")
    for line in figures.lines:
        name = f"{line.name} [green](at cost)[/green]" if line.at_cost else line.name
        tbl.add_row(
            name,
            str(line.quantity),
            _money(line.unit_price),
            _money(line.line_total),
            _money(line.unit_cost * line.quantity),
        )
    console.print(tbl)

    summary = RichTable(show_header=False, box=None)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    rate_note = " (stale)" if session.rate_stale else ""
    summary.add_row("Exchange rate", f"{deal.exchange_rate:,.2f}{rate_note}")
    summary.add_row("Total cost (USD)", f"{figures.total_cost_ref:,.2f}")
    summary.add_row("Total cost (local)", _money(figures.total_cost))
    summary.add_row("Sale price (net)", _money(deal.target_price))
    summary.add_row("Sale price (with tax)", _money(session.price_with_tax))
    summary.add_row("Gross margin", _money(figures.gross_margin_value))
    summary.add_row("Gross margin %", f"{figures.gross_margin_percent:.1f}%")
    summary.add_row("50% margin price", _money(figures.suggested_fifty_percent_price))
    summary.add_row("Flexible multiplier", f"{figures.flexible_multiplier:.4f}")
    console.print(Panel(summary, title="Profitability", border_style="green"))


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    data_dir: Path | None = typer.Option(
        None, "--data-dir",
        help="Directory holding catalog.json and quotations.json.",
    ),
    config: Path | None = typer.Option(
        None, "--config", "-c",
        help="YAML settings file.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """margin-desk CLI."""
    try:
        settings = load_settings(config)
    except MarginDeskError as exc:
        raise _fail(exc)
    if data_dir is not None:
        settings = replace(settings, data_dir=data_dir)
    setup_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = AppState(settings=settings)


# ── catalog commands ─────────────────────────────────────────────


@catalog_app.command("import")
def catalog_import(
    ctx: typer.Context,
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or Excel supplier list.",
    ),
    out_dir: Path | None = typer.Option(
        None, "--out-dir", "-o",
        help="Write catalog.json + import_report.json here.",
    ),
    sync: bool = typer.Option(
        False, "--sync",
        help="Replace the stored catalog with the imported one.",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress the summary table."),
) -> None:
    """Decode a supplier spreadsheet into catalog products."""
    session = _state(ctx).session()
    try:
        report = session.import_file(input_file)
        if sync:
            session.sync_catalog()
    except Exception as exc:
        raise _fail(exc)

    if out_dir is not None:
        write_json(out_dir / "catalog.json", {"products": [p.to_dict() for p in session.products]})
        write_json(
            out_dir / "import_report.json",
            {**report.to_dict(), "source": input_file.name, "source_sha256": sha256_file(input_file)},
        )

    if not quiet:
        tbl = RichTable(title="Import Summary", show_lines=True)
        tbl.add_column("Check", style="bold")
        tbl.add_column("Result")
        tbl.add_row("Rows in", str(report.rows_in))
        tbl.add_row("Products", str(report.rows_out))
        tbl.add_row("Dropped", str(report.dropped_rows))
        tbl.add_row("Duplicates", str(report.duplicate_rows))
        tbl.add_row("Header row", "first line" if report.header_row is None else str(report.header_row))
        for w in report.warnings:
            tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
        tbl.add_row("Synced", "[green]yes[/green]" if sync else "no")
        console.print(tbl)


@catalog_app.command("list")
def catalog_list(
    ctx: typer.Context,
    search: str = typer.Option("", "--search", "-s", help="Words that must all match."),
    category: str = typer.Option("All", "--category", help="Only this category."),
) -> None:
    """List stored catalog products."""
    session = _state(ctx).session()
    try:
        session.load_catalog()
    except Exception as exc:
        raise _fail(exc)
    console.print(_products_table(session.search(search, category), session.deal.exchange_rate))
    console.print(f"  Lists: {', '.join(session.categories())}")


@catalog_app.command("add-item")
def catalog_add_item(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Name of the one-off item."),
    cost: str = typer.Option(..., "--cost", help="Cost in USD."),
) -> None:
    """Create a one-off item that is always sold at cost."""
    session = _state(ctx).session()
    try:
        session.load_catalog()
        product = session.create_manual_item(name, cost)
    except Exception as exc:
        raise _fail(exc)
    console.print(f"[green]+[/green] Created {product.name!r} ({product.id})")


@catalog_app.command("move")
def catalog_move(
    ctx: typer.Context,
    product_id: str = typer.Option(..., "--id", help="Product id."),
    category: str = typer.Option(..., "--category", help="Target list / category."),
) -> None:
    """Move a product to another list."""
    session = _state(ctx).session()
    try:
        session.load_catalog()
        product = session.recategorize(product_id, category)
    except Exception as exc:
        raise _fail(exc)
    console.print(f"[green]>[/green] Moved {product.name!r} to {product.category!r}")


@catalog_app.command("delete")
def catalog_delete(
    ctx: typer.Context,
    product_id: str = typer.Option(..., "--id", help="Product id."),
) -> None:
    """Delete a product from the stored catalog."""
    session = _state(ctx).session()
    try:
        session.load_catalog()
        session.delete_product(product_id)
    except Exception as exc:
        raise _fail(exc)
    console.print(f"[green]-[/green] Deleted {product_id}")


# ── quote command ────────────────────────────────────────────────


@app.command()
def quote(
    ctx: typer.Context,
    items: list[str] | None = typer.Option(
        None, "--item", "-i",
        help="Catalog product (id, sku or name), optionally with =QTY. Repeatable.",
    ),
    price: float | None = typer.Option(None, "--price", "-p", help="Target sale price (net)."),
    margin: float | None = typer.Option(None, "--margin", "-m", help="Price for this margin %."),
    price_with_tax: str | None = typer.Option(
        None, "--price-with-tax", help="Tax-inclusive price to back-compute from."
    ),
    rate: float | None = typer.Option(None, "--rate", "-r", help="Exchange rate override."),
    fetch: bool = typer.Option(False, "--fetch-rate", help="Fetch the current exchange rate."),
    save: bool = typer.Option(False, "--save", help="Save the result to quotation history."),
) -> None:
    """Simulate a deal against a target sale price."""
    state = _state(ctx)
    session = state.session()
    if sum(opt is not None for opt in (price, margin, price_with_tax)) > 1:
        _err("Use only one of --price, --margin, --price-with-tax")
        raise typer.Exit(code=2)

    try:
        session.load_catalog()
        if rate is not None:
            session.set_exchange_rate(rate)
        elif fetch:
            session.apply_rate(
                fetch_rate_with_retry(
                    state.settings.rate_url,
                    retries=state.settings.rate_retries,
                    delay=state.settings.rate_retry_delay,
                    timeout=state.settings.rate_timeout,
                    fallback=state.settings.default_exchange_rate,
                )
            )

        basket: list[tuple[CatalogProduct, int]] = []
        for raw in items or []:
            key, quantity = _parse_item_spec(raw)
            basket.append((_find_product(session.products, key), quantity))
        session.add_items(basket)

        if price is not None:
            session.set_price(price)
        elif margin is not None and not session.price_for_margin(margin):
            console.print("[yellow]![/yellow] Margin must be between 0 and 100 with a non-zero cost")
        elif price_with_tax is not None:
            session.set_price_with_tax(price_with_tax)

        _print_deal(session)

        if save:
            stored = session.save_quotation()
            console.print(f"[green]Saved[/green] quotation {stored.id}")
    except Exception as exc:
        raise _fail(exc)


# ── history commands ─────────────────────────────────────────────


@history_app.command("list")
def history_list(ctx: typer.Context) -> None:
    """List saved quotations, newest first."""
    session = _state(ctx).session()
    try:
        quotations = session.list_quotations()
    except Exception as exc:
        raise _fail(exc)
    tbl = RichTable(title="Quotation history")
    tbl.add_column("ID", style="dim")
    tbl.add_column("Created")
    tbl.add_column("Items", justify="right")
    tbl.add_column("Sale price", justify="right")
    tbl.add_column("Margin %", justify="right")
    for q in quotations:
        tbl.add_row(
            q.id, q.created_at[:19], str(len(q.items)), _money(q.sale_price), f"{q.margin_percent:.1f}%"
        )
    console.print(tbl)


@history_app.command("delete")
def history_delete(
    ctx: typer.Context,
    quotation_id: str = typer.Option(..., "--id", help="Quotation id."),
) -> None:
    """Delete a saved quotation."""
    session = _state(ctx).session()
    try:
        session.delete_quotation(quotation_id)
    except Exception as exc:
        raise _fail(exc)
    console.print(f"[green]-[/green] Deleted quotation {quotation_id}")


@history_app.command("restore")
def history_restore(
    ctx: typer.Context,
    quotation_id: str = typer.Option(..., "--id", help="Quotation id."),
) -> None:
    """Load a saved quotation into the simulator and recompute it."""
    session = _state(ctx).session()
    try:
        session.restore_quotation(_find_quotation(session, quotation_id))
    except Exception as exc:
        raise _fail(exc)
    _print_deal(session)


@history_app.command("export")
def history_export(
    ctx: typer.Context,
    quotation_id: str = typer.Option(..., "--id", help="Quotation id."),
    view: ReportViewOption = typer.Option(
        ReportViewOption.internal, "--view",
        help="internal (costs + margin) or client (net prices + tax).",
    ),
    out_dir: Path = typer.Option(Path("output"), "--out-dir", "-o", help="Output directory."),
) -> None:
    """Write a quotation workbook."""
    state = _state(ctx)
    session = state.session()
    try:
        quotation = _find_quotation(session, quotation_id)
        path = write_quotation_report(
            out_dir, quotation, view=view.value, tax_rate=state.settings.tax_rate
        )
    except Exception as exc:
        raise _fail(exc)
    console.print(f"  Report -> {path}")


# ── rate command ─────────────────────────────────────────────────


@app.command()
def rate(ctx: typer.Context) -> None:
    """Fetch the current exchange rate."""
    settings = _state(ctx).settings
    quote_ = fetch_rate_with_retry(
        settings.rate_url,
        retries=settings.rate_retries,
        delay=settings.rate_retry_delay,
        timeout=settings.rate_timeout,
        fallback=settings.default_exchange_rate,
    )
    if quote_.stale:
        console.print(f"[yellow]![/yellow] Rate unavailable; using fallback {quote_.rate:,.2f}")
        raise typer.Exit(code=2)
    console.print(f"Exchange rate: {quote_.rate:,.2f} (as of {quote_.as_of or 'unknown'})")
