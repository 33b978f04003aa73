"""Online/offline state machine driving queue drains and heartbeats.

The platform's connectivity signal is the only thing that changes state.
The periodic heartbeat reports liveness and triggers opportunistic drains,
but a failed heartbeat never flips the monitor offline.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
import enum
from typing import TYPE_CHECKING, Literal, Protocol

from cashrecon.core.config import HEARTBEAT_INTERVAL_SECONDS, MODULE_TAG
from cashrecon.errors import TransientNetworkError
from cashrecon.sync.logger import ConnectivityLogger
from cashrecon.sync.queue import DrainResult, PendingQueue, RecordSender

if TYPE_CHECKING:
    from cashrecon.infra.clients.ledger import LedgerResponse

StatusLevel = Literal["info", "success", "warning", "error"]
SyncIndicator = Literal["connected", "disconnected", "syncing"]

MSG_BACK_ONLINE = "Back online - syncing data"
MSG_WORKING_OFFLINE = "Working offline - data will sync when connection restored"
MSG_ALL_SYNCED = "All pending changes synced"


class ConnectionState(enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """User-facing status line for the presentation layer."""

    message: str
    level: StatusLevel


class RemoteLedger(RecordSender, Protocol):
    async def ping(self) -> LedgerResponse: ...

    async def heartbeat(
        self, *, device_id: str, route: str, module: str = MODULE_TAG
    ) -> LedgerResponse: ...


def _ignore_status(event: StatusEvent) -> None:
    return None


def _ignore_indicator(indicator: SyncIndicator) -> None:
    return None


class ConnectivityMonitor:
    def __init__(
        self,
        client: RemoteLedger,
        queue: PendingQueue,
        *,
        device_id: str,
        route_provider: Callable[[], str] = lambda: "",
        interval: float = HEARTBEAT_INTERVAL_SECONDS,
        module: str = MODULE_TAG,
        on_status: Callable[[StatusEvent], None] = _ignore_status,
        on_indicator: Callable[[SyncIndicator], None] = _ignore_indicator,
        monitor_logger: ConnectivityLogger | None = None,
    ) -> None:
        self._client = client
        self._queue = queue
        self._device_id = device_id
        self._route_provider = route_provider
        self._interval = interval
        self._module = module
        self._on_status = on_status
        self._on_indicator = on_indicator
        self._logger = monitor_logger or ConnectivityLogger()
        self._state = ConnectionState.OFFLINE
        self._probe_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state is ConnectionState.ONLINE

    @property
    def probing(self) -> bool:
        return self._probe_task is not None and not self._probe_task.done()

    async def start(self, *, online: bool) -> None:
        """Adopt the platform's initial connectivity without announcing it."""
        self._state = ConnectionState.ONLINE if online else ConnectionState.OFFLINE
        if online:
            self._start_probe()

    async def stop(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._logger.probe_stopped()

    async def set_connectivity(self, online: bool) -> DrainResult | None:
        """Apply a platform connectivity signal."""
        if online:
            return await self.handle_online()
        await self.handle_offline()
        return None

    async def handle_online(self) -> DrainResult | None:
        if self.is_online:
            self._logger.signal_ignored(self._state.value)
            return None
        self._transition(ConnectionState.ONLINE)
        self._on_indicator("connected")
        self._on_status(StatusEvent(MSG_BACK_ONLINE, "info"))
        try:
            return await self.drain()
        finally:
            self._start_probe()

    async def handle_offline(self) -> None:
        if not self.is_online:
            self._logger.signal_ignored(self._state.value)
            return
        self._transition(ConnectionState.OFFLINE)
        self._on_indicator("disconnected")
        self._on_status(StatusEvent(MSG_WORKING_OFFLINE, "warning"))
        await self.stop()

    async def drain(self) -> DrainResult:
        """Run one delivery pass over the queue.

        Announces only a complete sync; partial passes stay silent because
        the remaining entries are retried on the next tick.
        """
        if not self.is_online:
            return DrainResult(still_pending=self._queue.entries())
        result = await self._queue.drain(self._client)
        if result.attempted and result.fully_synced:
            self._on_status(StatusEvent(MSG_ALL_SYNCED, "success"))
        return result

    async def check_connection(self) -> bool:
        """Ping the ledger and report the sync indicator. Does not change state."""
        try:
            response = await self._client.ping()
        except TransientNetworkError as e:
            self._logger.probe_failed(str(e))
            self._on_indicator("disconnected")
            return False
        self._on_indicator("connected" if response.accepted else "disconnected")
        return response.accepted

    async def tick(self) -> None:
        """One heartbeat plus an opportunistic drain of anything still queued."""
        try:
            await self._client.heartbeat(
                device_id=self._device_id,
                route=self._route_provider(),
                module=self._module,
            )
        except TransientNetworkError as e:
            self._logger.probe_failed(str(e))
        if len(self._queue) and not self._queue.is_draining:
            await self.drain()

    def _transition(self, state: ConnectionState) -> None:
        self._logger.transition(self._state.value, state.value)
        self._state = state

    def _start_probe(self) -> None:
        if self._probe_task is not None:
            self._probe_task.cancel()
        self._probe_task = asyncio.create_task(self._probe_loop())
        self._logger.probe_started(self._interval)

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception as e:
                self._logger.tick_failed(e)
