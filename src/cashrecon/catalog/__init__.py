"""Product catalog index and remote catalog loading."""

from cashrecon.catalog.core import (
    DEFAULT_CATALOG,
    CatalogIndex,
    CatalogItem,
    load_catalog,
    title_from_key,
)
from cashrecon.catalog.loader import fetch_catalog

__all__ = [
    "DEFAULT_CATALOG",
    "CatalogIndex",
    "CatalogItem",
    "fetch_catalog",
    "load_catalog",
    "title_from_key",
]
