from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .enums import Market


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    symbol: str
    price: str
    percent_change: float
    market: Market

    @property
    def key(self) -> tuple[str, Market]:
        return self.symbol, self.market

    @property
    def numeric_price(self) -> float:
        return float(self.price)


@dataclass(slots=True)
class PriceAlert:
    symbol: str
    target_price: float
    created_at: datetime = field(default_factory=utc_now)
    active: bool = True

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "targetPrice": self.target_price,
            "createdAt": self.created_at.isoformat(),
            "isActive": self.active,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> PriceAlert:
        return cls(
            symbol=str(record["symbol"]),
            target_price=float(record["targetPrice"]),
            created_at=_parse_timestamp(record["createdAt"]),
            active=bool(record.get("isActive", True)),
        )


@dataclass(slots=True)
class FavoriteCategory:
    id: str
    name: str
    symbols: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "symbols": list(self.symbols),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> FavoriteCategory:
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            symbols=[str(symbol) for symbol in record.get("symbols", [])],
            created_at=_parse_timestamp(record["createdAt"]),
        )

    def copy(self) -> FavoriteCategory:
        return FavoriteCategory(id=self.id, name=self.name, symbols=list(self.symbols), created_at=self.created_at)
