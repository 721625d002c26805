"""
Runtime status monitoring service.

Health updates pushed by the backend go through a bounded queue and are
applied to the registry by a single consumer task. The subscription exists
only while the registry holds at least one runtime.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

from harbor.config.settings import STATUS_EVENT
from harbor.domain.backend.base import RuntimeBackend, Unsubscribe
from harbor.domain.registry import RegistryStore
from harbor.domain.types import StatusUpdate
from harbor.observability import STATUS_UPDATES, STATUS_UPDATES_DROPPED

logger = logging.getLogger("harbor")


class MonitorState(str, enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class StatusMonitor:
    """Keeps runtime status fields fresh from backend push updates."""

    def __init__(self, registry: RegistryStore, backend: RuntimeBackend, channel_size: int = 256) -> None:
        """
        Initialize the status monitor.

        Args:
            registry: Registry receiving the updates
            backend: Backend emitting STATUS_EVENT
            channel_size: Maximum queued updates before one is dropped to make room
        """
        self._registry = registry
        self._backend = backend
        self._queue: asyncio.Queue[StatusUpdate] = asyncio.Queue(maxsize=channel_size)
        self._lock = asyncio.Lock()
        self._state = MonitorState.INACTIVE
        self._unsubscribe: Unsubscribe | None = None
        self._consumer: asyncio.Task | None = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def reconcile(self) -> MonitorState:
        """Activate or deactivate on the empty/non-empty edge of the registry."""
        async with self._lock:
            occupied = bool(self._registry.runtimes)
            if occupied and self._state == MonitorState.INACTIVE:
                await self._activate()
            elif not occupied and self._state == MonitorState.ACTIVE:
                await self._deactivate()
            return self._state

    async def close(self) -> None:
        async with self._lock:
            if self._state == MonitorState.ACTIVE:
                await self._deactivate()

    async def drain(self) -> None:
        """Wait until every queued update has been applied."""
        await self._queue.join()

    async def _activate(self) -> None:
        try:
            await self._backend.start_polling()
        except Exception as e:
            logger.warning(f"Failed to start status polling: {e}")

        try:
            self._unsubscribe = await self._backend.subscribe(STATUS_EVENT, self._on_event)
        except Exception as e:
            logger.error(f"Failed to subscribe to {STATUS_EVENT}: {e}")
            try:
                await self._backend.stop_polling()
            except Exception as stop_error:
                logger.warning(f"Failed to stop status polling: {stop_error}")
            return

        self._consumer = asyncio.get_running_loop().create_task(self._consume())
        self._state = MonitorState.ACTIVE
        logger.info("Runtime status monitor started")

    async def _deactivate(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to unsubscribe from {STATUS_EVENT}: {e}")

        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        self._discard_pending()

        try:
            await self._backend.stop_polling()
        except Exception as e:
            logger.warning(f"Failed to stop status polling: {e}")

        self._state = MonitorState.INACTIVE
        logger.info("Runtime status monitor stopped")

    def _on_event(self, payload: StatusUpdate | dict[str, Any]) -> None:
        if isinstance(payload, dict):
            try:
                payload = StatusUpdate.from_dict(payload)
            except (KeyError, ValueError) as e:
                logger.warning(f"Ignoring malformed status update {payload!r}: {e}")
                return

        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            dropped = self._make_room(payload.runtime_id)
            STATUS_UPDATES_DROPPED.inc()
            logger.warning(f"Status channel full, dropped update for {dropped.runtime_id}")
            self._queue.put_nowait(payload)

    def _make_room(self, runtime_id: str) -> StatusUpdate:
        """
        Remove one queued update, preferring the oldest one for ``runtime_id``.

        The oldest update overall is removed only when ``runtime_id`` has
        nothing queued. Order among the remaining updates is kept.
        """
        queued: list[StatusUpdate] = []
        while not self._queue.empty():
            queued.append(self._queue.get_nowait())
            self._queue.task_done()

        index = next((i for i, update in enumerate(queued) if update.runtime_id == runtime_id), 0)
        dropped = queued.pop(index)
        for update in queued:
            self._queue.put_nowait(update)
        return dropped

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                self._registry.update_status(update.runtime_id, update.status, update.timestamp, update.error)
                STATUS_UPDATES.inc()
            finally:
                self._queue.task_done()

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
