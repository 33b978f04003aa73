"""Logging for pending-queue delivery and connectivity transitions.

Kept apart from the queue and monitor so their control flow reads without
log plumbing.
"""

from __future__ import annotations

from typing import Any

import loguru
from loguru import logger


def _entry_label(payload: dict[str, Any]) -> str:
    return f"{payload.get('route') or '?'} / {payload.get('date') or '?'}"


class PendingQueueLogger:
    """Handles all logging for PendingQueue."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def loaded(self, count: int) -> None:
        self._logger.bind(pending=count).info("Loaded {} pending changes", count)

    def load_failed(self, reason: str) -> None:
        self._logger.bind(reason=reason).warning(
            "Pending queue unreadable ({}); starting empty", reason
        )

    def entry_discarded(self, position: int, entry_type: str) -> None:
        self._logger.bind(position=position, entry_type=entry_type).warning(
            "Discarded pending entry {} (not an object: {})", position, entry_type
        )

    def enqueued(self, payload: dict[str, Any], depth: int) -> None:
        self._logger.bind(entry=_entry_label(payload), depth=depth).info(
            "Queued {} for later sync ({} pending)", _entry_label(payload), depth
        )

    def drain_start(self, count: int) -> None:
        self._logger.bind(pending=count).info("Syncing {} pending changes", count)

    def delivered(self, payload: dict[str, Any]) -> None:
        self._logger.bind(entry=_entry_label(payload)).debug(
            "Ledger accepted {}", _entry_label(payload)
        )

    def rejected(self, payload: dict[str, Any], reason: str) -> None:
        self._logger.bind(entry=_entry_label(payload), reason=reason).debug(
            "Ledger did not accept {}: {}", _entry_label(payload), reason
        )

    def drain_complete(self, succeeded: int, still_pending: int) -> None:
        self._logger.bind(succeeded=succeeded, still_pending=still_pending).info(
            "Sync pass complete: {} delivered, {} still pending",
            succeeded,
            still_pending,
        )


class ConnectivityLogger:
    """Handles all logging for ConnectivityMonitor."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def transition(self, previous: str, current: str) -> None:
        self._logger.bind(previous=previous, current=current).info(
            "Connectivity {} -> {}", previous, current
        )

    def signal_ignored(self, state: str) -> None:
        self._logger.bind(state=state).debug("Already {}; signal ignored", state)

    def probe_failed(self, reason: str) -> None:
        self._logger.bind(reason=reason).debug("Heartbeat failed: {}", reason)

    def tick_failed(self, error: Exception) -> None:
        self._logger.bind(error=type(error).__name__).exception(
            "Heartbeat tick failed; retrying next interval"
        )

    def probe_started(self, interval: float) -> None:
        self._logger.bind(interval=interval).debug(
            "Heartbeat started every {:g}s", interval
        )

    def probe_stopped(self) -> None:
        self._logger.debug("Heartbeat stopped")
