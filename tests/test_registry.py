"""
Tests for harbor.domain.registry (RegistryStore).
"""

from datetime import datetime, timezone

import pytest

from harbor.domain.registry import RegistryStore
from harbor.domain.types import RuntimeKind, RuntimeStatus

from tests.utils import make_runtime

TS = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _assert_selection_valid(registry: RegistryStore):
    selected = registry.selected
    assert selected is None or selected.id in {r.id for r in registry.runtimes}


# ---------------------------------------------------------------------------
# Runtime list
# ---------------------------------------------------------------------------

class TestSetRuntimes:

    def test_replaces_list(self, registry):
        """set_runtimes replaces the whole list."""
        registry.set_runtimes([make_runtime("a"), make_runtime("b")])
        registry.set_runtimes([make_runtime("c")])
        assert [r.id for r in registry.runtimes] == ["c"]

    def test_idempotent(self, registry):
        """Setting the same list twice yields the same state."""
        runtimes = [make_runtime("a"), make_runtime("b")]
        registry.set_runtimes(runtimes)
        registry.set_runtimes(runtimes)
        assert [r.id for r in registry.runtimes] == ["a", "b"]

    def test_duplicate_ids_first_wins(self, registry):
        """Duplicate ids are dropped, keeping the first occurrence."""
        registry.set_runtimes([
            make_runtime("a", status=RuntimeStatus.RUNNING),
            make_runtime("a", status=RuntimeStatus.STOPPED),
        ])
        assert len(registry.runtimes) == 1
        assert registry.runtimes[0].status == RuntimeStatus.RUNNING

    def test_selection_cleared_when_absent(self, registry):
        """A selection missing from the new list is cleared."""
        a = make_runtime("a")
        registry.set_runtimes([a])
        registry.set_selected(a)
        registry.set_runtimes([make_runtime("b")])
        assert registry.selected is None

    def test_selection_refreshed_when_present(self, registry):
        """A selection present in the new list takes the fresh values."""
        registry.set_runtimes([make_runtime("a", status=RuntimeStatus.STOPPED)])
        registry.set_selected(registry.runtimes[0])
        registry.set_runtimes([make_runtime("a", status=RuntimeStatus.RUNNING)])
        assert registry.selected.status == RuntimeStatus.RUNNING

    def test_runtimes_returns_copy(self, registry):
        """Mutating the returned list does not change the registry."""
        registry.set_runtimes([make_runtime("a")])
        registry.runtimes.clear()
        assert len(registry.runtimes) == 1


class TestSelection:

    def test_set_selected_is_copy(self, registry):
        """The selection is a separate record from the list entry."""
        a = make_runtime("a")
        registry.set_runtimes([a])
        registry.set_selected(a)
        assert registry.selected == a
        assert registry.selected is not registry.runtimes[0]

    def test_unknown_runtime_ignored(self, registry):
        """Selecting a runtime not in the list leaves the selection unchanged."""
        registry.set_runtimes([make_runtime("a")])
        registry.set_selected(make_runtime("zzz"))
        assert registry.selected is None

    def test_set_selected_none(self, registry):
        a = make_runtime("a")
        registry.set_runtimes([a])
        registry.set_selected(a)
        registry.set_selected(None)
        assert registry.selected is None


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------

class TestUpdateStatus:

    def test_updates_runtime_and_selection(self, registry):
        """Both the list entry and the selected copy are rewritten."""
        a = make_runtime("a", status=RuntimeStatus.RUNNING)
        registry.set_runtimes([a, make_runtime("b")])
        registry.set_selected(a)

        registry.update_status("a", RuntimeStatus.STOPPED, TS)

        assert registry.get_runtime("a").status == RuntimeStatus.STOPPED
        assert registry.get_runtime("a").last_checked == TS
        assert registry.selected.status == RuntimeStatus.STOPPED
        assert registry.selected.last_checked == TS

    def test_other_selection_untouched(self, registry):
        """An update for a non-selected runtime leaves the selection alone."""
        a, b = make_runtime("a"), make_runtime("b")
        registry.set_runtimes([a, b])
        registry.set_selected(a)
        registry.update_status("b", RuntimeStatus.ERROR, TS, "permission denied")
        assert registry.selected.status == RuntimeStatus.RUNNING
        assert registry.get_runtime("b").error == "permission denied"

    def test_error_cleared_by_update_without_error(self, registry):
        registry.set_runtimes([make_runtime("a")])
        registry.update_status("a", RuntimeStatus.ERROR, TS, "boom")
        registry.update_status("a", RuntimeStatus.RUNNING, TS)
        assert registry.get_runtime("a").error is None

    def test_unknown_id_is_noop(self, registry):
        """An update for an unknown id changes nothing and does not raise."""
        registry.set_runtimes([make_runtime("a")])
        registry.update_status("ghost", RuntimeStatus.STOPPED, TS)
        assert len(registry.runtimes) == 1
        assert registry.get_runtime("a").status == RuntimeStatus.RUNNING

    def test_does_not_notify(self, registry, mocker):
        registry.set_runtimes([make_runtime("a")])
        listener = mocker.MagicMock()
        registry.add_listener(listener)
        registry.update_status("a", RuntimeStatus.STOPPED, TS)
        listener.assert_not_called()


# ---------------------------------------------------------------------------
# Add / remove / clear
# ---------------------------------------------------------------------------

class TestAddRemove:

    def test_add_runtime_appends(self, registry):
        registry.add_runtime(make_runtime("a"))
        registry.add_runtime(make_runtime("b", kind=RuntimeKind.PODMAN))
        assert [r.id for r in registry.runtimes] == ["a", "b"]

    def test_add_runtime_replaces_same_id(self, registry):
        """Adding an existing id replaces it instead of duplicating."""
        registry.add_runtime(make_runtime("a", status=RuntimeStatus.STOPPED))
        registry.add_runtime(make_runtime("a", status=RuntimeStatus.RUNNING))
        assert len(registry.runtimes) == 1
        assert registry.runtimes[0].status == RuntimeStatus.RUNNING

    def test_remove_runtime_clears_selection(self, registry):
        a = make_runtime("a")
        registry.set_runtimes([a, make_runtime("b")])
        registry.set_selected(a)
        registry.remove_runtime("a")
        assert registry.selected is None
        assert [r.id for r in registry.runtimes] == ["b"]

    def test_clear(self, registry):
        a = make_runtime("a")
        registry.set_runtimes([a])
        registry.set_selected(a)
        registry.clear()
        assert registry.runtimes == []
        assert registry.selected is None

    def test_flags(self, registry):
        registry.set_detecting(True)
        registry.set_error("detection failed")
        assert registry.is_detecting is True
        assert registry.error == "detection failed"

    def test_selection_invariant_across_mutations(self, registry):
        """After every public mutation the selection is None or in the list."""
        a, b, c = make_runtime("a"), make_runtime("b"), make_runtime("c")
        steps = [
            lambda: registry.set_runtimes([a, b]),
            lambda: registry.set_selected(b),
            lambda: registry.update_status("b", RuntimeStatus.STOPPED, TS),
            lambda: registry.add_runtime(c),
            lambda: registry.set_runtimes([a, c]),
            lambda: registry.set_selected(c),
            lambda: registry.remove_runtime("c"),
            lambda: registry.set_selected(make_runtime("ghost")),
            lambda: registry.clear(),
        ]
        for step in steps:
            step()
            _assert_selection_valid(registry)


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------

class TestLeases:

    def test_acquire_twice_returns_none(self, registry):
        """A held lease cannot be acquired again."""
        lease = registry.acquire("c1", "start")
        assert lease is not None
        assert registry.acquire("c1", "stop") is None
        assert registry.is_in_flight("c1")

    def test_release(self, registry):
        lease = registry.acquire("c1", "start")
        assert registry.release(lease) is True
        assert not registry.is_in_flight("c1")
        assert registry.release(lease) is False

    def test_release_stale_lease_keeps_current(self, registry):
        """Releasing an old lease does not remove a newer holder."""
        old = registry.acquire("c1", "start")
        registry.release(old)
        new = registry.acquire("c1", "stop")
        assert registry.release(old) is False
        assert registry.in_flight["c1"] == new

    def test_different_ids_independent(self, registry):
        assert registry.acquire("c1", "start") is not None
        assert registry.acquire("c2", "start") is not None
        assert set(registry.in_flight) == {"c1", "c2"}

    def test_in_flight_read_only(self, registry):
        registry.acquire("c1", "start")
        with pytest.raises(TypeError):
            registry.in_flight["c2"] = None  # type: ignore[index]


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------

class TestListeners:

    def test_notified_on_mutation(self, registry, mocker):
        listener = mocker.MagicMock()
        registry.add_listener(listener)
        registry.set_runtimes([make_runtime("a")])
        listener.assert_called_once_with(registry)

    def test_removed_listener_not_called(self, registry, mocker):
        listener = mocker.MagicMock()
        registry.add_listener(listener)
        registry.remove_listener(listener)
        registry.set_runtimes([make_runtime("a")])
        listener.assert_not_called()

    def test_listener_error_does_not_propagate(self, registry, mocker):
        """A failing listener is logged and later listeners still run."""
        failing = mocker.MagicMock(side_effect=RuntimeError("boom"))
        other = mocker.MagicMock()
        registry.add_listener(failing)
        registry.add_listener(other)
        registry.set_runtimes([make_runtime("a")])
        other.assert_called_once()
