"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from cashrecon.catalog.core import CatalogIndex
from cashrecon.core.config import ReconConfig
from cashrecon.errors import TransientNetworkError
from cashrecon.infra.clients.ledger import LedgerResponse
from cashrecon.reconcile.calculator import finalize_record
from cashrecon.reconcile.models import ReconciliationRecord, ReconciliationSnapshot
from cashrecon.storage.file_store import FileStore

ACCEPTED = LedgerResponse(success=True)

Outcome = LedgerResponse | Exception


class FakeLedger:
    """In-memory ledger; each queued outcome answers one call, FIFO."""

    def __init__(self) -> None:
        self.save_outcomes: list[Outcome] = []
        self.saved: list[dict[str, Any]] = []
        self.heartbeats: list[dict[str, Any]] = []
        self.pings = 0
        self.ping_outcome: Outcome = ACCEPTED
        self.heartbeat_outcome: Outcome = ACCEPTED
        self.init_outcome: Outcome = TransientNetworkError("offline")
        self.inventory_outcome: Outcome = TransientNetworkError("offline")
        self.inventory_calls: list[dict[str, str]] = []

    @staticmethod
    def _answer(outcome: Outcome) -> LedgerResponse:
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def save_reconciliation(self, payload: dict[str, Any]) -> LedgerResponse:
        self.saved.append(payload)
        outcome = self.save_outcomes.pop(0) if self.save_outcomes else ACCEPTED
        return self._answer(outcome)

    async def ping(self) -> LedgerResponse:
        self.pings += 1
        return self._answer(self.ping_outcome)

    async def heartbeat(
        self, *, device_id: str, route: str, module: str = "cash"
    ) -> LedgerResponse:
        self.heartbeats.append({"device_id": device_id, "route": route, "module": module})
        return self._answer(self.heartbeat_outcome)

    async def init(self) -> LedgerResponse:
        return self._answer(self.init_outcome)

    async def calculate_sales_from_inventory(
        self, *, route: str, current_date: str, previous_date: str
    ) -> LedgerResponse:
        self.inventory_calls.append(
            {"route": route, "current_date": current_date, "previous_date": previous_date}
        )
        return self._answer(self.inventory_outcome)


def make_record(
    route: str,
    *,
    sales_date: str = "2025-03-01",
    quantities: dict[str, int] | None = None,
) -> ReconciliationRecord:
    """Build a finalized record against the default catalog."""
    snapshot = ReconciliationSnapshot(
        route=route, date=sales_date, quantities=quantities or {"4402": 1}
    )
    return finalize_record(
        snapshot,
        CatalogIndex.default(),
        now=datetime(2025, 3, 1, 18, 0, tzinfo=UTC),
    )


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def file_store(tmp_path: Path) -> FileStore:
    return FileStore(base_dir=tmp_path / "device")


@pytest.fixture
def default_catalog() -> CatalogIndex:
    return CatalogIndex.default()


@pytest.fixture
def config(tmp_path: Path) -> ReconConfig:
    return ReconConfig(ledger_url="", data_dir=tmp_path / "device", heartbeat_interval=0.01)


@pytest.fixture
def record_factory() -> Callable[..., ReconciliationRecord]:
    return make_record
