"""
Container list snapshot with optional timer-driven refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from harbor.config.settings import DEFAULT_REFRESH_INTERVAL
from harbor.domain.backend.base import RuntimeBackend
from harbor.domain.errors import BackendFailure, HarborError, NoActiveRuntime
from harbor.domain.filters import SortField, SortOrder, apply_filters_and_sort
from harbor.domain.registry import RegistryStore
from harbor.domain.types import Container, ContainerDetails, ContainerState, ListOptions
from harbor.observability import REFRESH_ERRORS

logger = logging.getLogger("harbor")

Sleep = Callable[[float], Awaitable[None]]


class ListCache:
    """
    Latest container snapshot for the active runtime.

    The snapshot is replaced wholesale by every successful fetch. The cache
    also owns the selected container and the error slot shown next to the
    list; operations write their failures there.
    """

    def __init__(
        self,
        registry: RegistryStore,
        backend: RuntimeBackend,
        default_options: ListOptions | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._sleep = sleep
        self._containers: list[Container] = []
        self._selected: Container | None = None
        self._details: ContainerDetails | None = None
        self._loading = False
        self._error: str | None = None
        self._options = default_options or ListOptions()
        self._refresh_task: asyncio.Task | None = None

    @property
    def containers(self) -> list[Container]:
        return list(self._containers)

    @property
    def selected(self) -> Container | None:
        return self._selected

    @property
    def details(self) -> ContainerDetails | None:
        return self._details

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def options(self) -> ListOptions:
        return self._options

    @property
    def is_auto_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(self, options: ListOptions | None = None) -> list[Container]:
        """
        Replace the snapshot with a fresh listing from the active runtime.

        Args:
            options: Listing options; the last options used are kept when None

        Returns:
            The new snapshot

        Raises:
            NoActiveRuntime: If no runtime is selected
            BackendFailure: If the backend listing fails
        """
        if options is not None:
            self._options = options
        options = self._options

        self._loading = True
        self._error = None
        try:
            runtime = self._registry.selected
            if runtime is None:
                raise NoActiveRuntime()
            containers = await self._backend.list_resources(runtime, options)
        except HarborError as e:
            self._error = str(e)
            raise
        except Exception as e:
            self._error = str(e)
            raise BackendFailure(str(e)) from e
        finally:
            self._loading = False

        self._containers = list(containers)
        if self._selected is not None:
            selected_id = self._selected.id
            self._selected = next((c for c in self._containers if c.id == selected_id), self._selected)
        return self.containers

    async def fetch_details(self, container_id: str) -> ContainerDetails:
        """
        Inspect one container on the active runtime and keep the result as ``details``.

        Raises:
            NoActiveRuntime: If no runtime is selected
            BackendFailure: If the backend inspection fails
        """
        self._loading = True
        self._error = None
        try:
            runtime = self._registry.selected
            if runtime is None:
                raise NoActiveRuntime()
            details = await self._backend.inspect(runtime, container_id)
        except HarborError as e:
            self._error = str(e)
            raise
        except Exception as e:
            self._error = str(e)
            raise BackendFailure(str(e)) from e
        finally:
            self._loading = False

        self._details = details
        return details

    async def refresh(self) -> bool:
        """
        Fetch with the last options, logging failures instead of raising.

        Returns:
            True if the snapshot was replaced
        """
        try:
            await self.fetch()
            return True
        except HarborError as e:
            logger.warning(f"Container list refresh failed: {e}")
            REFRESH_ERRORS.labels(source="operation").inc()
            return False

    # ------------------------------------------------------------------
    # Auto-refresh
    # ------------------------------------------------------------------

    def start_auto_refresh(self, interval: float = DEFAULT_REFRESH_INTERVAL) -> None:
        """Fetch every ``interval`` seconds, replacing any running timer."""
        self.stop_auto_refresh()
        self._refresh_task = asyncio.get_running_loop().create_task(self._auto_refresh_loop(interval))
        logger.debug(f"Container auto-refresh started (interval: {interval}s)")

    def stop_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Container auto-refresh stopped")

    async def _auto_refresh_loop(self, interval: float) -> None:
        while True:
            await self._sleep(interval)
            try:
                await self.fetch()
            except Exception as e:
                logger.warning(f"Container auto-refresh failed: {e}")
                REFRESH_ERRORS.labels(source="auto").inc()

    def close(self) -> None:
        self.stop_auto_refresh()

    # ------------------------------------------------------------------
    # Selection and error slot
    # ------------------------------------------------------------------

    def select(self, container: Container | None) -> None:
        self._selected = container
        self._details = None

    def clear_selection(self, container_id: str | None = None) -> bool:
        """
        Clear the selected container.

        Args:
            container_id: Only clear when the selection has this id

        Returns:
            True if a selection was cleared
        """
        if self._selected is None:
            return False
        if container_id is not None and self._selected.id != container_id:
            return False
        self._selected = None
        self._details = None
        return True

    def set_error(self, error: str | None) -> None:
        self._error = error

    def clear_error(self) -> None:
        self._error = None

    def view(
        self,
        search: str = "",
        state: ContainerState | str | None = None,
        field: SortField = "name",
        order: SortOrder = "asc",
    ) -> list[Container]:
        """Filtered and sorted projection of the current snapshot."""
        return apply_filters_and_sort(self._containers, search, state, field, order)
