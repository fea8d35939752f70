"""
Settings loader.

Reads ``bookkeeping.yaml`` (or the path in ``BOOKKEEPING_CONFIG``). A missing
file means defaults; a malformed one raises ``SettingsLoadError``.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional

import yaml

from bookkeeping.errors import SettingsLoadError

DEFAULT_CONFIG_FILE = Path("bookkeeping.yaml")
CONFIG_ENV_VAR = "BOOKKEEPING_CONFIG"

DEFAULT_EXCHANGE_RATES: Dict[str, float] = {
    "US": 26077,
    "CAD": 18884,
    "AUD": 17315,
    "JPY": 168,
    "KRW": 17.9,
}


@dataclass(frozen=True)
class Settings:
    docstore_url: str = ""
    docstore_timeout: float = 10.0
    orders_fetch_limit: int = 2000
    seed_path: Path = Path("data/seed.json")
    log_dir: Optional[Path] = Path("logs")
    default_month: Optional[str] = None
    exchange_rates: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES))


def load_settings(path: Optional[Path] = None) -> Settings:
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))
    path = Path(path)
    if not path.exists():
        return Settings()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"cannot parse {path}: {e}") from e

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise SettingsLoadError(f"{path} must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise SettingsLoadError(f"unknown settings in {path}: {', '.join(sorted(unknown))}")

    values = dict(data)
    for key in ("seed_path", "log_dir"):
        if values.get(key) is not None:
            values[key] = Path(values[key])
    if "exchange_rates" in values:
        rates = values["exchange_rates"]
        if not isinstance(rates, dict):
            raise SettingsLoadError("exchange_rates must be a mapping of currency to rate")
        try:
            parsed = {str(k): float(v) for k, v in rates.items()}
        except (TypeError, ValueError) as e:
            raise SettingsLoadError(f"invalid exchange rate: {e}") from e
        values["exchange_rates"] = {**DEFAULT_EXCHANGE_RATES, **parsed}
    month = values.get("default_month")
    if month is not None:
        values["default_month"] = str(month)
    try:
        return Settings(**values)
    except TypeError as e:
        raise SettingsLoadError(str(e)) from e
