"""Explicit application state and the operations a presentation layer drives.

A ``ReconciliationSession`` owns one live snapshot. Every mutation
recomputes the totals, notifies subscribers with plain data and writes the
snapshot through to local storage. Saving finalizes a record and either
delivers it or queues it; nothing here raises for network trouble.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Literal, Protocol

import loguru
from loguru import logger

from cashrecon.catalog.core import CatalogIndex, CatalogItem
from cashrecon.catalog.loader import fetch_catalog
from cashrecon.core.config import ReconConfig, denomination_label
from cashrecon.errors import TransientNetworkError, ValidationGapError
from cashrecon.infra.clients.ledger import LedgerClient, LedgerResponse
from cashrecon.reconcile.calculator import (
    ReconciliationTotals,
    finalize_record,
    recompute,
)
from cashrecon.reconcile.export import render_report_csv, report_filename
from cashrecon.reconcile.models import (
    PAYMENT_FIELDS,
    PaymentInputs,
    ReconciliationRecord,
    ReconciliationSnapshot,
)
from cashrecon.storage.device import get_or_create_device_id
from cashrecon.storage.file_store import FileStore
from cashrecon.storage.snapshot_store import SnapshotStore
from cashrecon.sync.monitor import (
    ConnectivityMonitor,
    RemoteLedger,
    StatusEvent,
    SyncIndicator,
)
from cashrecon.sync.queue import DrainResult, PendingQueue

CashKind = Literal["note", "coin"]
SaveStatus = Literal["sent", "queued", "rejected"]

MSG_SAVED = "Data saved successfully!"
MSG_SAVED_LOCALLY = "Saved locally. Will sync when connection is restored."
MSG_NO_ROUTE = "Please select a route!"
MSG_NO_DATE = "Please select a date!"
MSG_CLEARED = "Data cleared!"
MSG_INVENTORY_FAILED = "Unable to fetch inventory data. Please enter manually."
MSG_INVENTORY_EMPTY = "No inventory data found for calculation"


class SessionLedger(RemoteLedger, Protocol):
    async def init(self) -> LedgerResponse: ...

    async def calculate_sales_from_inventory(
        self, *, route: str, current_date: str, previous_date: str
    ) -> LedgerResponse: ...


@dataclass(frozen=True, slots=True)
class SaveOutcome:
    status: SaveStatus
    message: str
    record: ReconciliationRecord | None = None
    # Ledger error text when delivery failed, verbatim.
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class ExportedReport:
    filename: str
    content: str


@dataclass
class AppState:
    """Everything one device session owns, passed explicitly."""

    config: ReconConfig
    catalog: CatalogIndex
    snapshot: ReconciliationSnapshot
    snapshot_store: SnapshotStore
    queue: PendingQueue
    client: SessionLedger
    device_id: str
    monitor: ConnectivityMonitor | None = None


@dataclass
class SessionObservers:
    on_recompute: list[Callable[[ReconciliationTotals], None]] = field(
        default_factory=list
    )
    on_status: list[Callable[[StatusEvent], None]] = field(default_factory=list)
    on_indicator: list[Callable[[SyncIndicator], None]] = field(default_factory=list)


class ReconciliationSession:
    def __init__(
        self,
        state: AppState,
        *,
        session_logger: loguru.Logger = logger,
    ) -> None:
        self._state = state
        self._observers = SessionObservers()
        self._logger = session_logger
        self._totals = recompute(state.snapshot, state.catalog, state.config)
        if state.monitor is None:
            state.monitor = ConnectivityMonitor(
                state.client,
                state.queue,
                device_id=state.device_id,
                route_provider=lambda: self._state.snapshot.route,
                interval=state.config.heartbeat_interval,
                module=state.config.module_tag,
                on_status=self._emit_status,
                on_indicator=self._emit_indicator,
            )
        self._monitor: ConnectivityMonitor = state.monitor

    # -------- Observers --------

    def subscribe(
        self,
        *,
        on_recompute: Callable[[ReconciliationTotals], None] | None = None,
        on_status: Callable[[StatusEvent], None] | None = None,
        on_indicator: Callable[[SyncIndicator], None] | None = None,
    ) -> None:
        if on_recompute is not None:
            self._observers.on_recompute.append(on_recompute)
        if on_status is not None:
            self._observers.on_status.append(on_status)
        if on_indicator is not None:
            self._observers.on_indicator.append(on_indicator)

    def _emit_status(self, event: StatusEvent) -> None:
        for callback in self._observers.on_status:
            callback(event)

    def _emit_indicator(self, indicator: SyncIndicator) -> None:
        for callback in self._observers.on_indicator:
            callback(indicator)

    # -------- Read access --------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def catalog(self) -> CatalogIndex:
        return self._state.catalog

    @property
    def snapshot(self) -> ReconciliationSnapshot:
        return self._state.snapshot

    @property
    def totals(self) -> ReconciliationTotals:
        return self._totals

    @property
    def monitor(self) -> ConnectivityMonitor:
        return self._monitor

    @property
    def pending_count(self) -> int:
        return len(self._state.queue)

    def visible_items(self, search: str = "", *, sold_only: bool = False) -> list[CatalogItem]:
        return self.catalog.search(
            search, quantities=self.snapshot.quantities, sold_only=sold_only
        )

    # -------- Mutations --------

    def recompute(self) -> ReconciliationTotals:
        self._totals = recompute(self.snapshot, self.catalog, self._state.config)
        for callback in self._observers.on_recompute:
            callback(self._totals)
        return self._totals

    def _changed(self) -> ReconciliationTotals:
        totals = self.recompute()
        self._state.snapshot_store.save(self.snapshot)
        return totals

    def select_route(self, route: str) -> ReconciliationTotals:
        self.snapshot.route = route.strip()
        return self._changed()

    def set_date(self, sales_date: str) -> ReconciliationTotals:
        if sales_date:
            date.fromisoformat(sales_date)
        self.snapshot.date = sales_date
        return self._changed()

    def set_quantity(self, code: str, quantity: int) -> ReconciliationTotals:
        if code not in self.catalog:
            raise ValueError(f"Unknown product code: {code}")
        if quantity < 0:
            raise ValueError("Quantity cannot be negative")
        if quantity:
            self.snapshot.quantities[code] = quantity
        else:
            self.snapshot.quantities.pop(code, None)
        return self._changed()

    def set_payment(self, field_name: str, amount: float) -> ReconciliationTotals:
        if field_name not in PAYMENT_FIELDS:
            raise ValueError(
                f"Unknown payment field {field_name!r}; expected one of "
                + ", ".join(PAYMENT_FIELDS)
            )
        setattr(self.snapshot.payments, field_name, amount)
        return self._changed()

    def _cash_bucket(self, kind: CashKind, denomination: float | str) -> tuple[dict[str, int], str]:
        label = denomination_label(float(denomination))
        config = self._state.config
        if kind == "note":
            allowed, bucket = config.note_labels, self.snapshot.cash_count.notes
        else:
            allowed, bucket = config.coin_labels, self.snapshot.cash_count.coins
        if label not in allowed:
            raise ValueError(f"Unknown {kind} denomination: {denomination}")
        return bucket, label

    def set_cash_count(
        self, kind: CashKind, denomination: float | str, count: int
    ) -> ReconciliationTotals:
        if count < 0:
            raise ValueError("Count cannot be negative")
        bucket, label = self._cash_bucket(kind, denomination)
        bucket[label] = count
        return self._changed()

    def quick_add(
        self, kind: CashKind, denomination: float | str, delta: int
    ) -> ReconciliationTotals:
        """Adjust a denomination count by ``delta``, never going below zero."""
        bucket, label = self._cash_bucket(kind, denomination)
        bucket[label] = max(0, bucket.get(label, 0) + delta)
        return self._changed()

    def apply_inventory_sales(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Replace all quantities with ``{code, salesQty}`` rows from inventory.

        Rows for codes outside the catalog are ignored. Returns how many rows
        were applied.
        """
        self.snapshot.quantities.clear()
        applied = 0
        for row in rows:
            code = str(row.get("code", ""))
            if code not in self.catalog:
                continue
            try:
                qty = int(float(row.get("salesQty") or 0))
            except (TypeError, ValueError, OverflowError):
                # Non-numeric, NaN and infinite quantities count as zero.
                qty = 0
            if qty > 0:
                self.snapshot.quantities[code] = qty
            applied += 1
        self._changed()
        return applied

    def clear(self) -> ReconciliationTotals:
        """Reset quantities, payments and cash; route and date are kept."""
        self.snapshot.quantities.clear()
        self.snapshot.payments = PaymentInputs()
        self.snapshot.cash_count.notes.clear()
        self.snapshot.cash_count.coins.clear()
        self._state.snapshot_store.clear()
        totals = self.recompute()
        self._emit_status(StatusEvent(MSG_CLEARED, "success"))
        return totals

    # -------- Save / sync --------

    def _require_route_and_date(self) -> None:
        if not self.snapshot.route:
            raise ValidationGapError(MSG_NO_ROUTE)
        if not self.snapshot.date:
            raise ValidationGapError(MSG_NO_DATE)

    def finalize(self) -> ReconciliationRecord:
        """Freeze the current snapshot into a record.

        Raises:
            ValidationGapError: If the route or the date is missing.
        """
        self._require_route_and_date()
        return finalize_record(self.snapshot, self.catalog, self._state.config)

    async def save(self) -> SaveOutcome:
        try:
            record = self.finalize()
        except ValidationGapError as e:
            self._emit_status(StatusEvent(str(e), "error"))
            return SaveOutcome(status="rejected", message=str(e))

        detail: str | None = None
        if self.monitor.is_online:
            try:
                response = await self._state.client.save_reconciliation(
                    record.to_payload()
                )
            except TransientNetworkError as e:
                detail = str(e)
            else:
                if response.accepted:
                    self._emit_status(StatusEvent(MSG_SAVED, "success"))
                    self._emit_indicator("connected")
                    return SaveOutcome(status="sent", message=MSG_SAVED, record=record)
                detail = response.detail or "Save failed"
            self._logger.bind(detail=detail).warning("Save error: {}", detail)

        await self._state.queue.enqueue(record)
        self._emit_status(StatusEvent(MSG_SAVED_LOCALLY, "warning"))
        self._emit_indicator("disconnected")
        return SaveOutcome(
            status="queued", message=MSG_SAVED_LOCALLY, record=record, detail=detail
        )

    async def sync_pending(self) -> DrainResult:
        return await self.monitor.drain()

    async def connectivity_changed(self, online: bool) -> DrainResult | None:
        return await self.monitor.set_connectivity(online)

    async def prefill_from_inventory(self) -> bool:
        """Fill quantities from the ledger's inventory-based sales calculation."""
        try:
            self._require_route_and_date()
        except ValidationGapError as e:
            self._emit_status(StatusEvent(str(e), "error"))
            return False

        current = date.fromisoformat(self.snapshot.date)
        previous = (current - timedelta(days=1)).isoformat()
        try:
            response = await self._state.client.calculate_sales_from_inventory(
                route=self.snapshot.route,
                current_date=current.isoformat(),
                previous_date=previous,
            )
        except TransientNetworkError:
            self._emit_status(StatusEvent(MSG_INVENTORY_FAILED, "error"))
            return False

        if response.status != "success" or not isinstance(response.data, list):
            self._emit_status(StatusEvent(MSG_INVENTORY_EMPTY, "error"))
            return False

        self.apply_inventory_sales(r for r in response.data if isinstance(r, Mapping))
        message = "Sales data calculated from inventory!"
        if isinstance(response.metadata, Mapping) and response.metadata.get("message"):
            message = f"Sales calculated! {response.metadata['message']}"
        self._emit_status(StatusEvent(message, "success"))
        return True

    def export_report(self) -> ExportedReport:
        record = finalize_record(self.snapshot, self.catalog, self._state.config)
        return ExportedReport(
            filename=report_filename(record), content=render_report_csv(record)
        )

    async def close(self) -> None:
        await self.monitor.stop()


async def open_session(
    config: ReconConfig,
    *,
    client: SessionLedger | None = None,
    store: FileStore | None = None,
    online: bool | None = None,
) -> ReconciliationSession:
    """Load catalog, snapshot and queue, then start connectivity monitoring.

    ``online`` is the platform's connectivity signal; when the host has none,
    a ledger ping decides the initial state.
    """
    client = client or LedgerClient.from_config(config)
    store = store or FileStore(config.data_dir)

    catalog = await fetch_catalog(client)
    snapshot_store = SnapshotStore(store)
    state = AppState(
        config=config,
        catalog=catalog,
        snapshot=snapshot_store.load(catalog),
        snapshot_store=snapshot_store,
        queue=PendingQueue(store),
        client=client,
        device_id=get_or_create_device_id(store),
    )
    session = ReconciliationSession(state)

    if online is None:
        online = await session.monitor.check_connection()
    await session.monitor.start(online=online)
    return session
