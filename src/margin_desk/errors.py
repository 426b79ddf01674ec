"""Exception hierarchy shared across the package."""

from __future__ import annotations


class MarginDeskError(Exception):
    """Base class for every error raised on purpose by margin-desk."""


class UnsupportedFormat(MarginDeskError, ValueError):
    """The input extension is not one the decoder understands."""

    def __init__(self, suffix: str) -> None:
        self.suffix = suffix
        super().__init__(
            f"Unsupported file type: {suffix!r}. Use .csv, .xlsx, .xlsm or .xls"
        )


class DecodeFailure(MarginDeskError, ValueError):
    """The source could not be read or parsed; no rows were produced."""


class SaveRejected(MarginDeskError):
    """A deal was not in a saveable state (empty, or no positive price)."""


class StoreError(MarginDeskError):
    """A catalog or quotation store operation failed."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class RateUnavailable(MarginDeskError):
    """A single exchange-rate fetch attempt failed."""


class ConfigError(MarginDeskError):
    pass


class InvalidInput(MarginDeskError, ValueError):
    """A user-supplied value was rejected before reaching any store."""
