"""Tests for the durable pending queue."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

from cashrecon.core.config import PENDING_QUEUE_KEY
from cashrecon.errors import TransientNetworkError
from cashrecon.infra.clients.ledger import LedgerClient, LedgerResponse
from cashrecon.reconcile.models import ReconciliationRecord
from cashrecon.storage.file_store import FileStore
from cashrecon.sync.queue import PendingQueue

RecordFactory = Callable[..., ReconciliationRecord]


def routes_of(queue: PendingQueue) -> list[str]:
    return [entry["route"] for entry in queue.entries()]


class TestEnqueue:
    def test_enqueue_returns_depth_and_persists(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        # Setup
        queue = PendingQueue(file_store)

        # Act
        depths = [
            asyncio.run(queue.enqueue(record_factory(route)))
            for route in ("A", "B", "C")
        ]

        # Assert
        assert depths == [1, 2, 3]
        stored = file_store.get(PENDING_QUEUE_KEY)
        assert [entry["route"] for entry in stored] == ["A", "B", "C"]

    def test_queue_survives_restart_in_order(
        self, tmp_path: Path, record_factory: RecordFactory
    ) -> None:
        # Setup
        first = PendingQueue(FileStore(base_dir=tmp_path))
        for route in ("A", "B", "C", "D"):
            asyncio.run(first.enqueue(record_factory(route)))

        # Act
        reloaded = PendingQueue(FileStore(base_dir=tmp_path))

        # Assert
        assert len(reloaded) == 4
        assert routes_of(reloaded) == ["A", "B", "C", "D"]
        assert reloaded.records()[0] == record_factory("A")

    def test_identical_records_are_not_deduplicated(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        record = record_factory("A")

        asyncio.run(queue.enqueue(record))
        asyncio.run(queue.enqueue(record))

        assert len(queue) == 2


class TestDrain:
    def test_empty_queue_makes_no_calls(self, file_store: FileStore, fake_ledger) -> None:
        queue = PendingQueue(file_store)

        result = asyncio.run(queue.drain(fake_ledger))

        assert result.attempted == 0
        assert result.fully_synced is True
        assert fake_ledger.saved == []

    def test_all_accepted_empties_queue(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        for route in ("A", "B"):
            asyncio.run(queue.enqueue(record_factory(route)))

        result = asyncio.run(queue.drain(fake_ledger))

        assert len(queue) == 0
        assert result.fully_synced is True
        assert [p["route"] for p in fake_ledger.saved] == ["A", "B"]
        assert file_store.get(PENDING_QUEUE_KEY) == []

    def test_partial_failure_keeps_only_failed_entry(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        # Setup
        queue = PendingQueue(file_store)
        for route in ("A", "B", "C"):
            asyncio.run(queue.enqueue(record_factory(route)))
        fake_ledger.save_outcomes = [
            LedgerResponse(success=True),
            TransientNetworkError("down"),
            LedgerResponse(status="success"),
        ]

        # Act
        result = asyncio.run(queue.drain(fake_ledger))

        # Assert
        assert routes_of(queue) == ["B"]
        assert [p["route"] for p in result.succeeded] == ["A", "C"]
        assert [p["route"] for p in result.still_pending] == ["B"]
        assert result.fully_synced is False
        assert [e["route"] for e in file_store.get(PENDING_QUEUE_KEY)] == ["B"]

    def test_failed_entries_keep_relative_order(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        for route in ("A", "B", "C", "D"):
            asyncio.run(queue.enqueue(record_factory(route)))
        fake_ledger.save_outcomes = [
            LedgerResponse(status="error", error="locked"),
            LedgerResponse(success=True),
            LedgerResponse(success=False),
            LedgerResponse(success=True),
        ]

        asyncio.run(queue.drain(fake_ledger))

        assert routes_of(queue) == ["A", "C"]

    def test_explicit_rejection_keeps_entry(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        asyncio.run(queue.enqueue(record_factory("A")))
        fake_ledger.save_outcomes = [LedgerResponse(status="error", error="Sheet locked")]

        result = asyncio.run(queue.drain(fake_ledger))

        assert len(queue) == 1
        assert result.attempted == 1

    def test_failed_entry_is_retried_on_next_drain(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        asyncio.run(queue.enqueue(record_factory("A")))
        fake_ledger.save_outcomes = [TransientNetworkError("down")]

        asyncio.run(queue.drain(fake_ledger))
        result = asyncio.run(queue.drain(fake_ledger))

        assert len(queue) == 0
        assert result.fully_synced is True
        assert len(fake_ledger.saved) == 2

    def test_drain_sends_payload_as_stored(
        self, file_store: FileStore, fake_ledger, record_factory: RecordFactory
    ) -> None:
        queue = PendingQueue(file_store)
        record = record_factory("A", quantities={"4402": 2, "1701": 1})
        asyncio.run(queue.enqueue(record))

        asyncio.run(queue.drain(fake_ledger))

        assert fake_ledger.saved == [record.to_payload()]


class TestLoad:
    def test_corrupt_queue_file_loads_empty(self, tmp_path: Path) -> None:
        # Setup
        store = FileStore(base_dir=tmp_path)
        Path(store.path_for(PENDING_QUEUE_KEY)).write_text("[{not json", encoding="utf-8")

        # Act
        queue = PendingQueue(store)

        # Assert
        assert len(queue) == 0

    def test_non_list_queue_loads_empty(self, file_store: FileStore) -> None:
        file_store.set(PENDING_QUEUE_KEY, {"route": "A"})

        assert len(PendingQueue(file_store)) == 0

    def test_non_object_entries_are_discarded(self, file_store: FileStore) -> None:
        file_store.set(PENDING_QUEUE_KEY, [{"route": "A"}, "junk", 7, {"route": "B"}])

        queue = PendingQueue(file_store)

        assert routes_of(queue) == ["A", "B"]


class StoreInspectingSender:
    """Accepts everything; on the second call records what is on disk."""

    def __init__(self, store: FileStore) -> None:
        self._store = store
        self.calls = 0
        self.on_disk_during_second_call: list[str] | None = None

    async def save_reconciliation(self, payload: dict[str, Any]) -> LedgerResponse:
        self.calls += 1
        if self.calls == 2:
            stored = self._store.get(PENDING_QUEUE_KEY)
            self.on_disk_during_second_call = [entry["route"] for entry in stored]
        return LedgerResponse(success=True)


class SlowSender:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def save_reconciliation(self, payload: dict[str, Any]) -> LedgerResponse:
        await asyncio.sleep(0.01)
        self.sent.append(payload["route"])
        return LedgerResponse(success=True)


class TestDrainDurability:
    def test_each_outcome_is_persisted_before_the_next_send(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        # Setup
        queue = PendingQueue(file_store)
        for route in ("A", "B", "C"):
            asyncio.run(queue.enqueue(record_factory(route)))
        sender = StoreInspectingSender(file_store)

        # Act
        asyncio.run(queue.drain(sender))

        # Assert
        assert sender.on_disk_during_second_call == ["B", "C"]

    def test_concurrent_drains_send_each_entry_once(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        sender = SlowSender()

        async def scenario() -> PendingQueue:
            queue = PendingQueue(file_store)
            for route in ("A", "B", "C"):
                await queue.enqueue(record_factory(route))
            await asyncio.gather(queue.drain(sender), queue.drain(sender))
            return queue

        queue = asyncio.run(scenario())

        assert sender.sent == ["A", "B", "C"]
        assert len(queue) == 0

    def test_enqueue_during_drain_waits_and_keeps_order(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        # Setup
        sender = SlowSender()

        # Act
        async def scenario() -> PendingQueue:
            queue = PendingQueue(file_store)
            for route in ("A", "B"):
                await queue.enqueue(record_factory(route))
            drain = asyncio.create_task(queue.drain(sender))
            await asyncio.sleep(0)
            assert queue.is_draining
            await queue.enqueue(record_factory("C"))
            await drain
            return queue

        queue = asyncio.run(scenario())

        # Assert
        assert sender.sent == ["A", "B"]
        assert routes_of(queue) == ["C"]
        assert [entry["route"] for entry in file_store.get(PENDING_QUEUE_KEY)] == ["C"]

    def test_unreadable_ledger_reply_keeps_entry(
        self, file_store: FileStore, record_factory: RecordFactory
    ) -> None:
        # Setup
        queue = PendingQueue(file_store)
        asyncio.run(queue.enqueue(record_factory("A")))
        client = LedgerClient(url="http://ledger.invalid/exec")
        response = MagicMock()
        response.read.return_value = b"\xff\xfe\x00garbage"
        response.__enter__.return_value = response

        # Act
        with patch(
            "cashrecon.infra.clients.ledger.urllib.request.urlopen",
            return_value=response,
        ):
            result = asyncio.run(queue.drain(client))

        # Assert
        assert routes_of(queue) == ["A"]
        assert result.fully_synced is False
