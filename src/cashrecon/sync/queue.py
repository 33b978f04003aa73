"""Durable FIFO of reconciliations awaiting ledger acceptance.

Entries are stored as the record's wire payload, exactly what gets sent.
The whole queue is rewritten after every mutation, including after each
entry's outcome during a drain, so a crash never loses an acknowledged
removal or a still-pending entry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from cashrecon.core.config import PENDING_QUEUE_KEY
from cashrecon.errors import PersistenceCorruptionError, TransientNetworkError
from cashrecon.reconcile.models import ReconciliationRecord
from cashrecon.storage.file_store import FileStore
from cashrecon.sync.logger import PendingQueueLogger

if TYPE_CHECKING:
    from cashrecon.infra.clients.ledger import LedgerResponse


class RecordSender(Protocol):
    async def save_reconciliation(self, payload: dict[str, Any]) -> LedgerResponse: ...


@dataclass(frozen=True, slots=True)
class DrainResult:
    succeeded: list[dict[str, Any]] = field(default_factory=list)
    still_pending: list[dict[str, Any]] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.still_pending)

    @property
    def fully_synced(self) -> bool:
        return not self.still_pending


class PendingQueue:
    def __init__(
        self,
        store: FileStore,
        *,
        key: str = PENDING_QUEUE_KEY,
        queue_logger: PendingQueueLogger | None = None,
    ) -> None:
        self._store = store
        self._key = key
        self._logger = queue_logger or PendingQueueLogger()
        # Serializes enqueue and drain; only one drain runs at a time.
        self._lock = asyncio.Lock()
        self._entries: list[dict[str, Any]] = self._load()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_draining(self) -> bool:
        return self._lock.locked()

    def entries(self) -> list[dict[str, Any]]:
        return list(self._entries)

    def records(self) -> list[ReconciliationRecord]:
        return [ReconciliationRecord.from_payload(e) for e in self._entries]

    async def enqueue(self, record: ReconciliationRecord) -> int:
        """Append a record and persist. Returns the new queue depth."""
        payload = record.to_payload()
        async with self._lock:
            self._entries.append(payload)
            await self._persist()
            depth = len(self._entries)
        self._logger.enqueued(payload, depth)
        return depth

    async def drain(self, sender: RecordSender) -> DrainResult:
        """Attempt delivery of every queued entry once, oldest first.

        Only entries whose response signals acceptance are removed; anything
        else stays queued in the same relative order.
        """
        async with self._lock:
            if not self._entries:
                return DrainResult()

            self._logger.drain_start(len(self._entries))
            succeeded: list[dict[str, Any]] = []
            still_pending: list[dict[str, Any]] = []

            for payload in list(self._entries):
                if await self._deliver(sender, payload):
                    succeeded.append(payload)
                    self._entries = [e for e in self._entries if e is not payload]
                else:
                    still_pending.append(payload)
                await self._persist()

        self._logger.drain_complete(len(succeeded), len(still_pending))
        return DrainResult(succeeded=succeeded, still_pending=still_pending)

    async def _deliver(self, sender: RecordSender, payload: dict[str, Any]) -> bool:
        try:
            response = await sender.save_reconciliation(payload)
        except TransientNetworkError as e:
            self._logger.rejected(payload, str(e))
            return False
        if not response.accepted:
            self._logger.rejected(payload, response.detail or "not accepted")
            return False
        self._logger.delivered(payload)
        return True

    async def _persist(self) -> None:
        await asyncio.to_thread(self._store.set, self._key, list(self._entries))

    def _load(self) -> list[dict[str, Any]]:
        try:
            raw = self._store.get(self._key)
        except PersistenceCorruptionError as e:
            self._logger.load_failed(str(e))
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            self._logger.load_failed(f"expected a list, found {type(raw).__name__}")
            return []

        entries: list[dict[str, Any]] = []
        for position, entry in enumerate(raw):
            if isinstance(entry, dict):
                entries.append(entry)
            else:
                self._logger.entry_discarded(position, type(entry).__name__)
        if entries:
            self._logger.loaded(len(entries))
        return entries
