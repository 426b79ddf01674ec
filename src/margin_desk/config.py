"""Settings loader.

Resolution order: built-in defaults, then an optional YAML file, then
``MDESK_*`` environment variables.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from margin_desk import DEFAULT_EXCHANGE_RATE, TAX_RATE
from margin_desk.errors import ConfigError
from margin_desk.rates import DEFAULT_RATE_URL

ENV_PREFIX = "MDESK_"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path.home() / ".margin-desk"
    default_exchange_rate: float = DEFAULT_EXCHANGE_RATE
    rate_url: str = DEFAULT_RATE_URL
    rate_retries: int = 2
    rate_retry_delay: float = 2.0
    rate_timeout: float = 10.0
    tax_rate: float = TAX_RATE
    log_level: str = "INFO"


_FIELD_TYPES: dict[str, type] = {
    "data_dir": Path,
    "default_exchange_rate": float,
    "rate_url": str,
    "rate_retries": int,
    "rate_retry_delay": float,
    "rate_timeout": float,
    "tax_rate": float,
    "log_level": str,
}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be {kind.__name__}, got a boolean")
    try:
        if kind is Path:
            return Path(os.path.expanduser(str(value)))
        if kind is int:
            return int(str(value).strip())
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be {kind.__name__}: {value!r}") from exc


def _validate(settings: Settings) -> Settings:
    for name, kind in _FIELD_TYPES.items():
        if kind is float and not math.isfinite(getattr(settings, name)):
            raise ConfigError(f"{name} must be a finite number")
    if not settings.default_exchange_rate > 0:
        raise ConfigError("default_exchange_rate must be > 0")
    if settings.rate_retries < 0:
        raise ConfigError("rate_retries must be >= 0")
    if settings.rate_retry_delay < 0 or settings.rate_timeout <= 0:
        raise ConfigError("rate_retry_delay must be >= 0 and rate_timeout > 0")
    if not 0 <= settings.tax_rate < 1:
        raise ConfigError("tax_rate must be in [0, 1)")
    if settings.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigError(f"Unknown log_level: {settings.log_level!r}")
    return settings


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    if path.is_dir():
        raise ConfigError(f"Config path is a directory, not a file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping at the top level")
    return data


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from defaults, *path* and *env*."""
    env = os.environ if env is None else env
    known = {f.name for f in fields(Settings)}
    overrides: dict[str, Any] = {}

    if path is not None:
        data = _load_yaml(Path(path))
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        overrides.update({k: _coerce(k, v) for k, v in data.items()})

    for name in known:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            overrides[name] = _coerce(name, raw)

    return _validate(replace(Settings(), **overrides))
