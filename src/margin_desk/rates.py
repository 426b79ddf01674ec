"""Exchange-rate lookup (local currency per US dollar)."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from margin_desk import DEFAULT_EXCHANGE_RATE
from margin_desk.errors import RateUnavailable

logger = logging.getLogger(__name__)

DEFAULT_RATE_URL = "https://mindicador.cl/api/dolar"


@dataclass(frozen=True)
class RateQuote:
    rate: float
    as_of: str = ""
    stale: bool = False


def fetch_rate(
    url: str = DEFAULT_RATE_URL,
    *,
    timeout: float = 10.0,
    session: requests.Session | None = None,
) -> RateQuote:
    """Fetch the latest rate once.

    Raises
    ------
    RateUnavailable
        On transport errors, a non-OK status, or an empty series.
    """
    getter = session.get if session is not None else requests.get
    try:
        response = getter(url, params={"t": int(time.time() * 1000)}, timeout=timeout)
        response.raise_for_status()
        payload: Any = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise RateUnavailable(f"Rate request failed: {exc}") from exc

    series = payload.get("serie") if isinstance(payload, dict) else None
    if not series:
        raise RateUnavailable("No data in series")
    latest = series[0]
    try:
        rate = float(latest["valor"])
    except (KeyError, TypeError, ValueError) as exc:
        raise RateUnavailable(f"Malformed rate entry: {latest!r}") from exc
    if not math.isfinite(rate) or rate <= 0:
        raise RateUnavailable(f"Implausible rate: {rate!r}")
    return RateQuote(rate=rate, as_of=str(latest.get("fecha") or "")[:10])


def fetch_rate_with_retry(
    url: str = DEFAULT_RATE_URL,
    *,
    retries: int = 2,
    delay: float = 2.0,
    timeout: float = 10.0,
    fallback: float = DEFAULT_EXCHANGE_RATE,
    sleep: Callable[[float], None] = time.sleep,
) -> RateQuote:
    """Try ``1 + retries`` times with a fixed *delay*, then fall back.

    The fallback quote is flagged ``stale`` rather than raising.
    """
    attempts = 1 + max(0, retries)
    for attempt in range(attempts):
        try:
            return fetch_rate(url, timeout=timeout)
        except RateUnavailable as exc:
            left = attempts - attempt - 1
            logger.warning("Exchange rate fetch failed: %s (%d retries left)", exc, left)
            if left:
                sleep(delay)
    logger.warning("Using fallback exchange rate %.2f", fallback)
    return RateQuote(rate=fallback, stale=True)
