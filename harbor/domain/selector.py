"""
Automatic and explicit selection of the active runtime.
"""

from __future__ import annotations

import asyncio
import logging

from harbor.domain.errors import UnknownRuntime
from harbor.domain.preferences import PreferenceStore
from harbor.domain.registry import RegistryStore
from harbor.domain.types import Runtime, RuntimePreferences, RuntimeStatus

logger = logging.getLogger("harbor")


def choose_runtime(runtimes: list[Runtime], preferences: RuntimePreferences) -> Runtime | None:
    """
    Pick a runtime; the first matching rule wins.

    1. The previously persisted runtime, if it is still present
    2. The first running runtime, in list order
    3. The first runtime of the preferred kind
    4. The first runtime in the list

    Returns:
        The chosen runtime, or None for an empty list
    """
    if not runtimes:
        return None

    if preferences.selected_runtime_id:
        for runtime in runtimes:
            if runtime.id == preferences.selected_runtime_id:
                return runtime

    for runtime in runtimes:
        if runtime.status == RuntimeStatus.RUNNING:
            return runtime

    if preferences.preferred_kind is not None:
        for runtime in runtimes:
            if runtime.kind == preferences.preferred_kind:
                return runtime

    return runtimes[0]


class RuntimeSelector:
    """Elects an active runtime whenever runtimes exist and none is selected."""

    def __init__(self, registry: RegistryStore, preferences: PreferenceStore) -> None:
        self._registry = registry
        self._preferences = preferences
        self._selecting = False
        self._persist_tasks: set[asyncio.Task] = set()

    async def select(self) -> Runtime | None:
        """
        Run auto-selection once for the current "no selection" state.

        Returns:
            The selected runtime, or None when nothing was selected
        """
        if self._selecting or self._registry.selected is not None or not self._registry.runtimes:
            return None

        self._selecting = True
        try:
            try:
                preferences = await self._preferences.get_preferences()
            except Exception as e:
                logger.warning(f"Failed to read runtime preferences: {e}")
                preferences = RuntimePreferences()

            # The registry may have changed while preferences were loading
            if self._registry.selected is not None:
                return None
            chosen = choose_runtime(self._registry.runtimes, preferences)
            if chosen is None:
                return None

            self._registry.set_selected(chosen)
            logger.info(f"Auto-selected runtime {chosen.id} ({chosen.kind.value} {chosen.version.full})")
            self._persist(chosen.id)
            return self._registry.selected
        finally:
            self._selecting = False

    async def choose(self, runtime_id: str) -> Runtime:
        """
        Explicitly select a runtime by id and persist the choice.

        Raises:
            UnknownRuntime: If the id is not in the registry
        """
        runtime = self._registry.get_runtime(runtime_id)
        if runtime is None:
            raise UnknownRuntime(runtime_id)
        self._registry.set_selected(runtime)
        self._persist(runtime.id)
        logger.info(f"Selected runtime {runtime.id}")
        return runtime

    async def drain(self) -> None:
        """Wait for pending preference writes (shutdown and tests)."""
        if self._persist_tasks:
            await asyncio.gather(*self._persist_tasks, return_exceptions=True)

    def _persist(self, runtime_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._persist_selection(runtime_id))
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist_selection(self, runtime_id: str) -> None:
        try:
            await self._preferences.persist_selection(runtime_id)
        except Exception as e:
            logger.error(f"Failed to persist runtime selection {runtime_id}: {e}")
