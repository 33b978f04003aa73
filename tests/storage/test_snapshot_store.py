"""Tests for snapshot persistence."""

from __future__ import annotations

from pathlib import Path

from cashrecon.catalog.core import CatalogIndex
from cashrecon.reconcile.models import (
    CashCount,
    PaymentInputs,
    ReconciliationSnapshot,
)
from cashrecon.storage.file_store import FileStore
from cashrecon.storage.snapshot_store import SnapshotStore


def test_save_then_load_restores_snapshot(
    file_store: FileStore, default_catalog: CatalogIndex
) -> None:
    # Input
    snapshot = ReconciliationSnapshot(
        route="North Route",
        date="2025-03-01",
        quantities={"4402": 2},
        payments=PaymentInputs(discount_base=10, cheque=3.5),
        cash_count=CashCount(notes={"100": 1}, coins={"0.50": 4}),
    )
    store = SnapshotStore(file_store)

    # Act
    store.save(snapshot)
    loaded = SnapshotStore(file_store).load(default_catalog)

    # Assert
    assert loaded == snapshot


def test_missing_snapshot_loads_empty(file_store: FileStore) -> None:
    assert SnapshotStore(file_store).load() == ReconciliationSnapshot()


def test_corrupt_snapshot_loads_empty(file_store: FileStore) -> None:
    store = SnapshotStore(file_store)
    Path(file_store.path_for("cashReconciliationData")).write_text(
        "{{{", encoding="utf-8"
    )

    assert store.load() == ReconciliationSnapshot()


def test_schema_mismatch_loads_empty(file_store: FileStore) -> None:
    file_store.set("cashReconciliationData", {"route": "X", "quantities": {"4402": "lots"}})

    assert SnapshotStore(file_store).load() == ReconciliationSnapshot()


def test_codes_missing_from_catalog_are_dropped(
    file_store: FileStore, default_catalog: CatalogIndex
) -> None:
    file_store.set(
        "cashReconciliationData",
        {"route": "North Route", "quantities": {"4402": 1, "retired": 7}},
    )

    loaded = SnapshotStore(file_store).load(default_catalog)

    assert loaded.route == "North Route"
    assert loaded.quantities == {"4402": 1}


def test_clear_removes_persisted_snapshot(file_store: FileStore) -> None:
    store = SnapshotStore(file_store)
    store.save(ReconciliationSnapshot(route="North Route"))

    store.clear()

    assert file_store.exists("cashReconciliationData") is False
