"""Write-through persistence of the live reconciliation snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING

import loguru
from loguru import logger
from pydantic import ValidationError

from cashrecon.core.config import SNAPSHOT_KEY
from cashrecon.errors import PersistenceCorruptionError
from cashrecon.reconcile.models import ReconciliationSnapshot
from cashrecon.storage.file_store import FileStore

if TYPE_CHECKING:
    from cashrecon.catalog.core import CatalogIndex


class SnapshotStoreLogger:
    """Handles all logging for SnapshotStore."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def load_failed(self, reason: str) -> None:
        self._logger.bind(reason=reason).warning(
            "Load storage failed ({}); starting with an empty snapshot", reason
        )

    def stale_codes_dropped(self, codes: list[str]) -> None:
        self._logger.bind(codes=codes).debug(
            "Dropped {} saved quantities for codes no longer in the catalog",
            len(codes),
        )


class SnapshotStore:
    def __init__(
        self,
        store: FileStore,
        *,
        key: str = SNAPSHOT_KEY,
        store_logger: SnapshotStoreLogger | None = None,
    ) -> None:
        self._store = store
        self._key = key
        self._logger = store_logger or SnapshotStoreLogger()

    def save(self, snapshot: ReconciliationSnapshot) -> None:
        self._store.set(self._key, snapshot.model_dump(mode="json"))

    def load(self, catalog: CatalogIndex | None = None) -> ReconciliationSnapshot:
        """Return the persisted snapshot, or an empty one if none is usable.

        With a catalog, quantities for codes the catalog no longer carries are
        dropped.
        """
        try:
            raw = self._store.get(self._key)
        except PersistenceCorruptionError as e:
            self._logger.load_failed(str(e))
            return ReconciliationSnapshot()
        if raw is None:
            return ReconciliationSnapshot()

        try:
            snapshot = ReconciliationSnapshot.model_validate(raw)
        except ValidationError as e:
            self._logger.load_failed(f"schema mismatch: {e.error_count()} errors")
            return ReconciliationSnapshot()

        if catalog is not None:
            stale = snapshot.drop_unknown_codes(catalog)
            if stale:
                self._logger.stale_codes_dropped(stale)
        return snapshot

    def clear(self) -> None:
        self._store.delete(self._key)
