"""I/O helpers: read and decode tabular input, write JSON artifacts."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from margin_desk.errors import DecodeFailure, UnsupportedFormat
from margin_desk.models import DecodedTable, RawRow

logger = logging.getLogger(__name__)

DELIMITED_SUFFIXES = (".csv",)
WORKBOOK_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm", ".xls")

# Supplier sheets often carry a logo or title block above the real header.
HEADER_SCAN_ROWS = 10
HEADER_MARKERS = ("sku", "nom", "pre")

# ── Loading ──────────────────────────────────────────────────────


def read_payload(path: Path) -> bytes:
    """Read the whole file at *path* in one go.

    Raises
    ------
    DecodeFailure
        If *path* is missing, is a directory, or cannot be read.
    """
    path = Path(path)
    if not path.exists():
        raise DecodeFailure(f"Input file not found: {path}")
    if not path.is_file():
        raise DecodeFailure(f"Input path is not a file: {path}")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise DecodeFailure(f"Cannot read {path}: {exc}") from exc


def check_suffix(suffix: str) -> str:
    """Return the lowercased *suffix* or raise :class:`UnsupportedFormat`."""
    suffix = suffix.lower()
    if suffix not in DELIMITED_SUFFIXES + WORKBOOK_SUFFIXES:
        raise UnsupportedFormat(suffix)
    return suffix


def load_table(path: Path, delimiter: str = ",") -> DecodedTable:
    """Decode a CSV or Excel file into raw rows.

    The extension is checked before the file is touched, and the payload is
    read completely before decoding starts.
    """
    path = Path(path)
    suffix = check_suffix(path.suffix)
    payload = read_payload(path)
    table = decode_table(payload, suffix, delimiter=delimiter)
    logger.info("Decoded %d rows from %s", len(table.rows), path.name)
    return table


def decode_table(payload: bytes, suffix: str, *, delimiter: str = ",") -> DecodedTable:
    """Decode an in-memory *payload* according to its file *suffix*.

    All or nothing: either every row comes back or :class:`DecodeFailure`
    is raised.
    """
    suffix = check_suffix(suffix)
    if suffix in DELIMITED_SUFFIXES:
        return DecodedTable(rows=_decode_delimited(payload, delimiter), source_format="csv")
    rows, header_row = _decode_workbook(payload, suffix)
    return DecodedTable(rows=rows, source_format="workbook", header_row=header_row)


def _decode_delimited(payload: bytes, delimiter: str) -> list[RawRow]:
    if not payload.strip():
        return []

    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            df = pd.read_csv(
                BytesIO(payload),
                dtype="string",
                sep=delimiter,
                engine="c",
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
                na_values=[""],
                skip_blank_lines=True,
            )
        except UnicodeDecodeError as exc:
            last_exc = exc
            continue
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise DecodeFailure(f"Could not parse delimited text: {exc}") from exc
        return _frame_to_rows(df)
    raise DecodeFailure("Could not decode delimited text") from last_exc


def _decode_workbook(payload: bytes, suffix: str) -> tuple[list[RawRow], int | None]:
    engine = "xlrd" if suffix == ".xls" else "openpyxl"
    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    try:
        grid = read_excel(
            BytesIO(payload), sheet_name=0, header=None, dtype=object, engine=engine
        )
    except ImportError as exc:
        raise DecodeFailure(
            "Unsupported .xls input unless 'xlrd' is installed. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    except Exception as exc:
        raise DecodeFailure(f"Could not read workbook ({type(exc).__name__}: {exc})") from exc

    grid = grid.dropna(axis=1, how="all")
    if grid.empty:
        return [], None

    header_row = detect_header_row(grid)
    logger.debug("Header row detected at grid index %d", header_row)

    labels = _unique_labels(grid.iloc[header_row].tolist())
    body = grid.iloc[header_row + 1:].copy()
    body.columns = pd.Index(labels)
    return _frame_to_rows(body), header_row


def detect_header_row(grid: pd.DataFrame) -> int:
    """Return the first of the leading rows that looks like a header, else 0."""
    for idx in range(min(len(grid), HEADER_SCAN_ROWS)):
        text = " ".join(
            str(value) for value in grid.iloc[idx].tolist() if not _is_blank(value)
        ).lower()
        if any(marker in text for marker in HEADER_MARKERS):
            return idx
    return 0


def _unique_labels(cells: list[Any]) -> list[str]:
    labels: list[str] = []
    seen: dict[str, int] = {}
    for position, cell in enumerate(cells):
        base = f"Unnamed: {position}" if _is_blank(cell) else str(cell).strip()
        count = seen.get(base, 0)
        seen[base] = count + 1
        labels.append(base if count == 0 else f"{base}.{count}")
    return labels


def _is_blank(value: Any) -> bool:
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        return False
    return isinstance(value, str) and not value.strip()


def _cell_value(value: Any) -> Any:
    if _is_blank(value):
        return None
    item = getattr(value, "item", None)
    if callable(item):
        return item()
    return value


def _frame_to_rows(df: pd.DataFrame) -> list[RawRow]:
    labels = [str(c) for c in df.columns]
    rows: list[RawRow] = []
    for values in df.itertuples(index=False, name=None):
        row = {label: _cell_value(v) for label, v in zip(labels, values)}
        if all(v is None for v in row.values()):
            continue
        rows.append(row)
    return rows


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def read_json(path: Path, default: Any = None) -> Any:
    """Return the decoded JSON document at *path*, or *default* if absent."""
    path = Path(path)
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding="utf-8"))
