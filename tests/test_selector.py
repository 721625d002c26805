"""
Tests for harbor.domain.selector (choose_runtime, RuntimeSelector).
"""

import logging
from unittest.mock import AsyncMock

import pytest

from harbor.domain.errors import UnknownRuntime
from harbor.domain.preferences import MemoryPreferenceStore
from harbor.domain.selector import RuntimeSelector, choose_runtime
from harbor.domain.types import RuntimeKind, RuntimePreferences, RuntimeStatus

from tests.utils import make_runtime

A = make_runtime("a", status=RuntimeStatus.STOPPED)
B = make_runtime("b", status=RuntimeStatus.RUNNING)
C = make_runtime("c", status=RuntimeStatus.STOPPED)


# ---------------------------------------------------------------------------
# Selection rules
# ---------------------------------------------------------------------------

class TestChooseRuntime:

    def test_first_running_wins_without_preference(self):
        """[A(stopped), B(running), C(stopped)] selects B."""
        assert choose_runtime([A, B, C], RuntimePreferences()) == B

    def test_persisted_id_wins_regardless_of_status(self):
        """A persisted id present in the list is selected even when stopped."""
        prefs = RuntimePreferences(selected_runtime_id="c")
        assert choose_runtime([A, B, C], prefs) == C

    def test_missing_persisted_id_falls_through(self):
        prefs = RuntimePreferences(selected_runtime_id="gone")
        assert choose_runtime([A, B, C], prefs) == B

    def test_preferred_kind_when_none_running(self):
        """With nothing running the preferred kind is used."""
        podman = make_runtime("p", kind=RuntimeKind.PODMAN, status=RuntimeStatus.STOPPED)
        prefs = RuntimePreferences(preferred_kind=RuntimeKind.PODMAN)
        assert choose_runtime([A, podman], prefs) == podman

    def test_running_beats_preferred_kind(self):
        podman = make_runtime("p", kind=RuntimeKind.PODMAN, status=RuntimeStatus.STOPPED)
        prefs = RuntimePreferences(preferred_kind=RuntimeKind.PODMAN)
        assert choose_runtime([podman, B], prefs) == B

    def test_falls_back_to_first(self):
        prefs = RuntimePreferences(preferred_kind=RuntimeKind.PODMAN)
        assert choose_runtime([A, C], prefs) == A

    def test_empty_list(self):
        assert choose_runtime([], RuntimePreferences(selected_runtime_id="a")) is None


# ---------------------------------------------------------------------------
# RuntimeSelector
# ---------------------------------------------------------------------------

class TestRuntimeSelector:

    @pytest.mark.asyncio
    async def test_selects_and_persists(self, registry):
        """Auto-selection writes the registry and persists the choice."""
        store = MemoryPreferenceStore()
        selector = RuntimeSelector(registry, store)
        registry.set_runtimes([A, B, C])

        selected = await selector.select()
        await selector.drain()

        assert selected == B
        assert registry.selected == B
        assert (await store.get_preferences()).selected_runtime_id == "b"

    @pytest.mark.asyncio
    async def test_noop_when_already_selected(self, registry):
        """The selector never replaces an existing selection."""
        store = MemoryPreferenceStore(RuntimePreferences(selected_runtime_id="c"))
        selector = RuntimeSelector(registry, store)
        registry.set_runtimes([A, B, C])
        registry.set_selected(A)

        assert await selector.select() is None
        assert registry.selected == A

    @pytest.mark.asyncio
    async def test_noop_on_empty_registry(self, registry):
        store = MemoryPreferenceStore()
        selector = RuntimeSelector(registry, store)
        assert await selector.select() is None
        assert registry.selected is None

    @pytest.mark.asyncio
    async def test_reselects_after_clear(self, registry):
        """A cleared selection is elected again on the next run."""
        selector = RuntimeSelector(registry, MemoryPreferenceStore())
        registry.set_runtimes([A, B])
        await selector.select()
        registry.set_selected(None)
        assert await selector.select() == B

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_selection(self, registry, caplog):
        """A failing preference write is logged and the selection stays."""
        store = AsyncMock()
        store.get_preferences.return_value = RuntimePreferences()
        store.persist_selection.side_effect = OSError("read-only file system")
        selector = RuntimeSelector(registry, store)
        registry.set_runtimes([A, B])

        with caplog.at_level(logging.ERROR, logger="harbor"):
            await selector.select()
            await selector.drain()

        assert registry.selected == B
        assert "read-only file system" in caplog.text

    @pytest.mark.asyncio
    async def test_preference_read_failure_uses_rules(self, registry):
        store = AsyncMock()
        store.get_preferences.side_effect = OSError("unreadable")
        selector = RuntimeSelector(registry, store)
        registry.set_runtimes([A, B])

        assert await selector.select() == B

    @pytest.mark.asyncio
    async def test_choose_explicit(self, registry):
        store = MemoryPreferenceStore()
        selector = RuntimeSelector(registry, store)
        registry.set_runtimes([A, B])

        await selector.choose("a")
        await selector.drain()

        assert registry.selected == A
        assert (await store.get_preferences()).selected_runtime_id == "a"

    @pytest.mark.asyncio
    async def test_choose_unknown_raises(self, registry):
        selector = RuntimeSelector(registry, MemoryPreferenceStore())
        registry.set_runtimes([A])
        with pytest.raises(UnknownRuntime):
            await selector.choose("ghost")
