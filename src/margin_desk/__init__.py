"""margin-desk: turn messy supplier spreadsheets into priced deals."""

__version__ = "0.2.0"

CANONICAL_FIELDS: list[str] = ["sku", "name", "category", "cost"]

DEFAULT_CATEGORY = "General"
# Manually created one-off items; priced at cost inside a live deal.
AT_COST_CATEGORY = "Productos Únicos"
RESTORED_CATEGORY = "Restored"

TAX_RATE = 0.19
DEFAULT_EXCHANGE_RATE = 950.0
