from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from coinbot.config.settings import (
    APP_STATE_PATH,
    CURRENCY_OFFER_MODE,
    DEFAULT_BALANCE,
    EXPIRY_POLL_SECONDS,
    ITEM_QUANTITY_MAX_DIGITS,
    TRADE_QUICK_AMOUNTS,
    TRADE_TIMEOUT_SECONDS,
)
from coinbot.db.database import JsonDocument

CURRENCY_OFFER_MODES = ("replace", "accumulate")


@dataclass(frozen=True)
class AppConfigSpec:
    default: Any
    cast: Callable[[str], Any]
    description: str


APP_CONFIG_SPECS: dict[str, AppConfigSpec] = {
    "DEFAULT_BALANCE": AppConfigSpec(
        default=int(DEFAULT_BALANCE),
        cast=int,
        description="Balance given to a user record the first time it is read.",
    ),
    "TRADE_TIMEOUT_SECONDS": AppConfigSpec(
        default=int(TRADE_TIMEOUT_SECONDS),
        cast=int,
        description="Seconds after creation when an unready trade expires.",
    ),
    "TRADE_QUICK_AMOUNTS": AppConfigSpec(
        default=str(TRADE_QUICK_AMOUNTS),
        cast=str,
        description="Comma-separated coin amounts shown as quick-pick buttons.",
    ),
    "CURRENCY_OFFER_MODE": AppConfigSpec(
        default=str(CURRENCY_OFFER_MODE),
        cast=str,
        description="'replace' overwrites a coin offer; 'accumulate' adds to it.",
    ),
    "ITEM_QUANTITY_MAX_DIGITS": AppConfigSpec(
        default=int(ITEM_QUANTITY_MAX_DIGITS),
        cast=int,
        description="Max digits accepted by the item quantity modal.",
    ),
    "EXPIRY_POLL_SECONDS": AppConfigSpec(
        default=float(EXPIRY_POLL_SECONDS),
        cast=float,
        description="Seconds between background trade-expiry sweeps.",
    ),
}


def _state_key(name: str) -> str:
    return f"config:{name}"


def parse_quick_amounts(raw: str) -> list[int]:
    out: list[int] = []
    for part in str(raw or "").split(","):
        try:
            amount = int(part.strip())
        except ValueError:
            continue
        if amount > 0 and amount not in out:
            out.append(amount)
    return out[:4]


def _normalize(name: str, value: Any) -> Any:
    if name == "DEFAULT_BALANCE":
        return max(0, int(value))
    if name == "TRADE_TIMEOUT_SECONDS":
        return max(1, int(value))
    if name == "TRADE_QUICK_AMOUNTS":
        amounts = parse_quick_amounts(str(value))
        return ",".join(str(a) for a in amounts) or str(TRADE_QUICK_AMOUNTS)
    if name == "CURRENCY_OFFER_MODE":
        text = str(value).strip().lower()
        return text if text in CURRENCY_OFFER_MODES else str(CURRENCY_OFFER_MODE)
    if name == "ITEM_QUANTITY_MAX_DIGITS":
        return max(1, min(9, int(value)))
    if name == "EXPIRY_POLL_SECONDS":
        return max(0.1, float(value))
    return value


def _to_string(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.12g}"
    return str(value)


def ensure_app_config_defaults(*, path: Path | str = APP_STATE_PATH) -> None:
    with JsonDocument(path).transaction() as data:
        for name, spec in APP_CONFIG_SPECS.items():
            if _state_key(name) not in data:
                data[_state_key(name)] = _to_string(_normalize(name, spec.default))


def get_app_config(name: str, *, path: Path | str = APP_STATE_PATH) -> Any:
    spec = APP_CONFIG_SPECS.get(name)
    if spec is None:
        raise KeyError(f"Unknown app config: {name}")
    raw = JsonDocument(path).load().get(_state_key(name))
    if raw is None:
        return _normalize(name, spec.default)
    try:
        parsed = spec.cast(str(raw))
    except (TypeError, ValueError):
        parsed = spec.default
    return _normalize(name, parsed)


def set_app_config(name: str, value: Any, *, path: Path | str = APP_STATE_PATH) -> Any:
    spec = APP_CONFIG_SPECS.get(name)
    if spec is None:
        raise KeyError(f"Unknown app config: {name}")
    normalized = _normalize(name, value)
    with JsonDocument(path).transaction() as data:
        data[_state_key(name)] = _to_string(normalized)
    return normalized
