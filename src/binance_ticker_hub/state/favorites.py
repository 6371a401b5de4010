from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from binance_ticker_hub.core.errors import PersistenceImportError
from binance_ticker_hub.core.models import FavoriteCategory, utc_now
from binance_ticker_hub.state.store import KeyValueStore

FAVORITES_KEY = "ticker_hub.favorites"
CATEGORIES_KEY = "ticker_hub.categories"

logger = logging.getLogger(__name__)

FavoritesListener = Callable[[], None]


class _CategoryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    symbols: list[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")


class _FavoritesExport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    favorites: list[str] | None = None
    categories: list[_CategoryPayload] | None = None


def _new_category_id() -> str:
    return f"cat_{uuid.uuid4().hex[:16]}"


class FavoritesManager:
    """Favorite symbols plus named categories of them.

    Every mutation writes through to the store and then notifies listeners
    registered with ``on_change``. Removing a favorite also removes it from
    every category in the same update.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._favorites: list[str] = []
        self._categories: dict[str, FavoriteCategory] = {}
        self._listeners: list[FavoritesListener] = []
        self._lock = threading.RLock()
        self._load()

    def on_change(self, listener: FavoritesListener) -> None:
        self._listeners.append(listener)

    def add_favorite(self, symbol: str) -> bool:
        with self._lock:
            if symbol in self._favorites:
                return False
            self._favorites.append(symbol)
            self._save_favorites()
        logger.info("Added favorite %s", symbol)
        self._notify()
        return True

    def remove_favorite(self, symbol: str) -> bool:
        with self._lock:
            if symbol not in self._favorites:
                return False
            favorites = [item for item in self._favorites if item != symbol]
            categories = {category_id: category.copy() for category_id, category in self._categories.items()}
            for category in categories.values():
                category.symbols = [item for item in category.symbols if item != symbol]
            self._commit(favorites, categories)
        logger.info("Removed favorite %s", symbol)
        self._notify()
        return True

    def get_favorites(self) -> list[str]:
        with self._lock:
            return list(self._favorites)

    def is_favorite(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._favorites

    def create_category(self, name: str) -> str:
        category = FavoriteCategory(id=_new_category_id(), name=name)
        with self._lock:
            self._categories[category.id] = category
            self._save_categories()
        logger.info("Created category %s", name, extra={"category_id": category.id})
        self._notify()
        return category.id

    def remove_category(self, category_id: str) -> bool:
        with self._lock:
            if self._categories.pop(category_id, None) is None:
                return False
            self._save_categories()
        self._notify()
        return True

    def rename_category(self, category_id: str, new_name: str) -> bool:
        with self._lock:
            category = self._categories.get(category_id)
            if category is None:
                return False
            category.name = new_name
            self._save_categories()
        self._notify()
        return True

    def add_to_category(self, category_id: str, symbol: str) -> bool:
        """Put ``symbol`` in the category, making it a favorite if needed. Returns True if the category changed."""
        with self._lock:
            category = self._categories.get(category_id)
            if category is None:
                return False
            favorited = symbol not in self._favorites
            categorized = symbol not in category.symbols
            if not favorited and not categorized:
                return False
            favorites = [*self._favorites, symbol] if favorited else list(self._favorites)
            categories = {key: value.copy() for key, value in self._categories.items()}
            if categorized:
                categories[category_id].symbols.append(symbol)
            self._commit(favorites, categories)
        logger.info("Added %s to category %s", symbol, category.name)
        self._notify()
        return categorized

    def remove_from_category(self, category_id: str, symbol: str) -> bool:
        with self._lock:
            category = self._categories.get(category_id)
            if category is None or symbol not in category.symbols:
                return False
            category.symbols.remove(symbol)
            self._save_categories()
        self._notify()
        return True

    def get_categories(self) -> list[FavoriteCategory]:
        with self._lock:
            return [category.copy() for category in self._categories.values()]

    def get_category(self, category_id: str) -> FavoriteCategory | None:
        with self._lock:
            category = self._categories.get(category_id)
            return category.copy() if category is not None else None

    def get_category_by_name(self, name: str) -> FavoriteCategory | None:
        with self._lock:
            for category in self._categories.values():
                if category.name == name:
                    return category.copy()
        return None

    def get_symbols_by_category(self, category_id: str) -> list[str]:
        with self._lock:
            category = self._categories.get(category_id)
            return list(category.symbols) if category is not None else []

    def get_uncategorized_symbols(self) -> list[str]:
        with self._lock:
            categorized = {symbol for category in self._categories.values() for symbol in category.symbols}
            return [symbol for symbol in self._favorites if symbol not in categorized]

    def clear_all(self) -> None:
        with self._lock:
            self._commit([], {})
        logger.info("Cleared all favorites")
        self._notify()

    def export_favorites(self) -> str:
        with self._lock:
            payload = {
                "favorites": list(self._favorites),
                "categories": [category.to_record() for category in self._categories.values()],
                "exportDate": utc_now().isoformat(),
            }
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def import_favorites(self, import_data: str) -> None:
        try:
            raw = json.loads(import_data)
            parsed = _FavoritesExport.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("Rejected favorites import: %s", exc)
            raise PersistenceImportError("favorites import payload is malformed") from exc

        with self._lock:
            favorites = list(self._favorites)
            categories = dict(self._categories)
            if parsed.favorites is not None:
                favorites = list(dict.fromkeys(parsed.favorites))
            if parsed.categories is not None:
                categories = {
                    item.id: FavoriteCategory(
                        id=item.id,
                        name=item.name,
                        symbols=list(item.symbols),
                        created_at=item.created_at,
                    )
                    for item in parsed.categories
                }
            self._commit(favorites, categories)
        logger.info("Imported %d favorites and %d categories", len(favorites), len(categories))
        self._notify()

    def _commit(self, favorites: list[str], categories: dict[str, FavoriteCategory]) -> None:
        self._store.update(FAVORITES_KEY, list(favorites))
        self._store.update(CATEGORIES_KEY, {key: value.to_record() for key, value in categories.items()})
        self._favorites = favorites
        self._categories = categories

    def _save_favorites(self) -> None:
        self._store.update(FAVORITES_KEY, list(self._favorites))

    def _save_categories(self) -> None:
        self._store.update(
            CATEGORIES_KEY,
            {category_id: category.to_record() for category_id, category in self._categories.items()},
        )

    def _load(self) -> None:
        favorites = self._store.get(FAVORITES_KEY, []) or []
        self._favorites = list(dict.fromkeys(str(symbol) for symbol in favorites))

        categories: dict[str, Any] = self._store.get(CATEGORIES_KEY, {}) or {}
        for category_id, record in categories.items():
            try:
                self._categories[category_id] = FavoriteCategory.from_record(record)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable stored category", extra={"category_id": category_id})

        logger.info("Loaded %d favorites and %d categories", len(self._favorites), len(self._categories))

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
