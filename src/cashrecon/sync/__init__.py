"""Durable delivery of finalized reconciliations to the ledger."""

from cashrecon.sync.monitor import ConnectionState, ConnectivityMonitor, StatusEvent
from cashrecon.sync.queue import DrainResult, PendingQueue

__all__ = [
    "ConnectionState",
    "ConnectivityMonitor",
    "DrainResult",
    "PendingQueue",
    "StatusEvent",
]
