"""Remote catalog loading with fallback to the built-in catalog."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

import loguru
from loguru import logger

from cashrecon.catalog.core import CatalogIndex, load_catalog
from cashrecon.errors import CatalogUnavailableError, TransientNetworkError

if TYPE_CHECKING:
    from cashrecon.infra.clients.ledger import LedgerResponse


class CatalogSource(Protocol):
    async def init(self) -> LedgerResponse: ...


class CatalogLoaderLogger:
    """Handles all logging for catalog loading."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def loaded(self, item_count: int, category_count: int) -> None:
        self._logger.bind(items=item_count, categories=category_count).info(
            "Catalog loaded: {} items in {} categories", item_count, category_count
        )

    def degraded(self, reason: str) -> None:
        self._logger.bind(reason=reason).warning(
            "Catalog unavailable ({}); using default catalog", reason
        )


def _extract_catalog(envelope_data: Any) -> Mapping[str, Any]:
    if not isinstance(envelope_data, Mapping):
        raise CatalogUnavailableError("Invalid catalog format")
    catalog = envelope_data.get("catalog")
    if not isinstance(catalog, Mapping):
        raise CatalogUnavailableError("Invalid catalog format")
    return catalog


async def fetch_catalog(
    client: CatalogSource,
    *,
    loader_logger: CatalogLoaderLogger | None = None,
) -> CatalogIndex:
    """Fetch the catalog via the ``init`` action.

    Never raises: any failure yields the default catalog, flagged with
    ``is_default`` so callers can report degraded mode.
    """
    log = loader_logger or CatalogLoaderLogger()
    try:
        response = await client.init()
        if not response.accepted:
            raise CatalogUnavailableError(response.detail or "Failed to load catalog")
        raw = _extract_catalog(response.data)
    except (CatalogUnavailableError, TransientNetworkError) as e:
        log.degraded(str(e))
        return CatalogIndex.default()

    index = load_catalog(raw)
    if not index.is_default:
        log.loaded(len(index), len(index.by_category()))
    return index
