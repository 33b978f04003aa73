from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
import math
import re
from typing import Any

from loguru import logger

DEFAULT_CATALOG: dict[str, list[dict[str, Any]]] = {
    "Sunflower Seeds": [
        {"code": "4402", "name": "200g", "unit": "bag", "price": 58},
        {"code": "4401", "name": "100g", "unit": "bag", "price": 34},
        {"code": "1129", "name": "25g", "unit": "bag", "price": 16},
        {"code": "1116", "name": "800g", "unit": "bag", "price": 17},
        {"code": "1145", "name": "130g", "unit": "box", "price": 54},
        {"code": "1126", "name": "10KG", "unit": "sack", "price": 160},
    ],
    "Pumpkin Seeds": [
        {"code": "8001", "name": "15g", "unit": "box", "price": 16},
        {"code": "8002", "name": "110g", "unit": "box", "price": 54},
        {"code": "1142", "name": "10KG", "unit": "sack", "price": 230},
    ],
    "Melon Seeds": [
        {"code": "9001", "name": "15g", "unit": "box", "price": 16},
        {"code": "9002", "name": "110g", "unit": "box", "price": 54},
    ],
    "Popcorn": [
        {"code": "1701", "name": "Cheese", "unit": "bag", "price": 5},
        {"code": "1702", "name": "Butter", "unit": "bag", "price": 5},
        {"code": "1703", "name": "Lightly Salted", "unit": "bag", "price": 5},
    ],
}

_KEY_SEPARATORS = re.compile(r"[_\-\s]+")


class CatalogParseError(ValueError):
    """Raw catalog payload does not have the expected shape."""


@dataclass(frozen=True)
class CatalogItem:
    code: str
    category: str
    name: str
    unit: str
    unit_price: float


def title_from_key(key: str) -> str:
    """Turn a category key like ``sunflower_seeds`` into ``Sunflower Seeds``."""
    words = [w for w in _KEY_SEPARATORS.split(key) if w]
    return " ".join(w[0].upper() + w[1:] for w in words)


def coerce_price(value: Any) -> float:
    """Price as a non-negative float; absent, invalid or negative values are 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(price) or math.isinf(price) or price < 0:
        return 0.0
    return price


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class CatalogIndex:
    """Flat lookup of catalog items by product code.

    Category order and item order follow the source payload so the
    presentation layer can render rows in catalog order.
    """

    def __init__(self, items: Sequence[CatalogItem], *, is_default: bool = False) -> None:
        self._items_by_code: dict[str, CatalogItem] = {}
        for item in items:
            # Later duplicates win, matching a plain keyed rebuild.
            self._items_by_code[item.code] = item
        self.is_default = is_default

    @classmethod
    def from_categories(
        cls,
        categories: Mapping[str, Iterable[Mapping[str, Any]]],
        *,
        is_default: bool = False,
    ) -> CatalogIndex:
        items: list[CatalogItem] = []
        for category, descriptors in categories.items():
            if isinstance(descriptors, (str, bytes, Mapping)) or not isinstance(
                descriptors, Iterable
            ):
                raise CatalogParseError(
                    f"Category {category!r} must hold a sequence of items"
                )
            for descriptor in descriptors:
                if not isinstance(descriptor, Mapping):
                    raise CatalogParseError(
                        f"Item in category {category!r} is not an object"
                    )
                code = _text(descriptor.get("code")).strip()
                if not code:
                    raise CatalogParseError(
                        f"Item in category {category!r} has no code"
                    )
                items.append(
                    CatalogItem(
                        code=code,
                        category=category,
                        name=_text(descriptor.get("name")),
                        unit=_text(descriptor.get("unit")),
                        unit_price=coerce_price(descriptor.get("price")),
                    )
                )
        return cls(items, is_default=is_default)

    @classmethod
    def default(cls) -> CatalogIndex:
        return cls.from_categories(DEFAULT_CATALOG, is_default=True)

    def __contains__(self, code: object) -> bool:
        return code in self._items_by_code

    def __len__(self) -> int:
        return len(self._items_by_code)

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self._items_by_code.values())

    def get(self, code: str) -> CatalogItem | None:
        return self._items_by_code.get(code)

    def codes(self) -> list[str]:
        return list(self._items_by_code)

    def by_category(self) -> dict[str, list[CatalogItem]]:
        grouped: dict[str, list[CatalogItem]] = {}
        for item in self._items_by_code.values():
            grouped.setdefault(item.category, []).append(item)
        return grouped

    def search(
        self,
        term: str = "",
        *,
        quantities: Mapping[str, int] | None = None,
        sold_only: bool = False,
    ) -> list[CatalogItem]:
        """Items whose code, category or name contains ``term`` (case-insensitive).

        With ``sold_only`` the result is further limited to items that have a
        positive quantity in ``quantities``.
        """
        needle = term.strip().lower()
        quantities = quantities or {}
        matches: list[CatalogItem] = []
        for item in self._items_by_code.values():
            if needle and not (
                needle in item.code.lower()
                or needle in item.category.lower()
                or needle in item.name.lower()
            ):
                continue
            if sold_only and quantities.get(item.code, 0) <= 0:
                continue
            matches.append(item)
        return matches


def load_catalog(raw: Any) -> CatalogIndex:
    """Build a catalog index from a raw ``{category_key: [item, ...]}`` payload.

    Falls back to the built-in catalog when the payload is absent, is not a
    mapping, cannot be parsed, or yields no items.
    """
    if raw is None or not isinstance(raw, Mapping):
        logger.bind(payload_type=type(raw).__name__).warning(
            "Catalog payload is not an object ({}); using default catalog",
            type(raw).__name__,
        )
        return CatalogIndex.default()

    try:
        titled = {title_from_key(str(key)): items for key, items in raw.items()}
        index = CatalogIndex.from_categories(titled)
    except (CatalogParseError, TypeError, ValueError) as e:
        logger.bind(error=str(e)).warning(
            "Catalog payload could not be parsed ({}); using default catalog", e
        )
        return CatalogIndex.default()

    if len(index) == 0:
        logger.warning("Catalog payload has no items; using default catalog")
        return CatalogIndex.default()

    return index
