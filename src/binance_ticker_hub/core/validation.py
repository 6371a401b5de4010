from __future__ import annotations

import math

from .errors import ValidationError

DISPLAY_PRESETS: dict[str, tuple[str, ...]] = {
    "recommended": ("BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT", "ADAUSDT"),
    "hot": ("BTCUSDT", "ETHUSDT", "DOGEUSDT", "SHIBUSDT", "PEPEUSDT"),
    "mainstream": ("BTCUSDT", "ETHUSDT", "BNBUSDT", "XRPUSDT", "ADAUSDT", "DOTUSDT"),
}


def normalize_symbol(value: str) -> str:
    normalized = value.strip().upper()
    if normalized == "":
        raise ValidationError("symbol must not be empty")
    return normalized


def parse_symbol_list(value: str) -> list[str]:
    symbols: list[str] = []
    for part in value.split(","):
        normalized = part.strip().upper()
        if normalized and normalized not in symbols:
            symbols.append(normalized)
    if not symbols:
        raise ValidationError("enter at least one symbol, for example: BTCUSDT, ETHUSDT")
    return symbols


def parse_target_price(value: str | float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid price: {value!r}") from exc
    if not math.isfinite(parsed) or parsed <= 0:
        raise ValidationError(f"price must be a positive number, got {value!r}")
    return parsed


def resolve_display_preset(name: str) -> list[str]:
    key = name.strip().lower()
    try:
        return list(DISPLAY_PRESETS[key])
    except KeyError as exc:
        choices = ", ".join(sorted(DISPLAY_PRESETS))
        raise ValidationError(f"unknown preset {name!r}; choose one of: {choices}") from exc
