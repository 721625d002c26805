"""
In-memory registry of detected runtimes and in-flight container operations.

The registry performs no I/O and none of its operations raise. It is owned by
the service container and passed to the components that read or mutate it.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Mapping

from harbor.domain.types import Lease, Runtime, RuntimeStatus

logger = logging.getLogger("harbor")

RegistryListener = Callable[["RegistryStore"], None]


class RegistryStore:
    """Canonical state: runtimes, selected runtime, detection flags, leases."""

    def __init__(self) -> None:
        self._runtimes: list[Runtime] = []
        self._selected: Runtime | None = None
        self._detecting = False
        self._error: str | None = None
        self._leases: dict[str, Lease] = {}
        self._tokens = itertools.count(1)
        self._listeners: list[RegistryListener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def runtimes(self) -> list[Runtime]:
        return list(self._runtimes)

    @property
    def selected(self) -> Runtime | None:
        return self._selected

    @property
    def is_detecting(self) -> bool:
        return self._detecting

    @property
    def error(self) -> str | None:
        return self._error

    def get_runtime(self, runtime_id: str) -> Runtime | None:
        return next((r for r in self._runtimes if r.id == runtime_id), None)

    # ------------------------------------------------------------------
    # Runtime mutations
    # ------------------------------------------------------------------

    def set_runtimes(self, runtimes: list[Runtime]) -> None:
        """Replace the runtime list, keeping ids unique and the selection valid."""
        unique: list[Runtime] = []
        seen: set[str] = set()
        for runtime in runtimes:
            if runtime.id in seen:
                logger.warning(f"Ignoring duplicate runtime id {runtime.id}")
                continue
            seen.add(runtime.id)
            unique.append(runtime)
        self._runtimes = unique

        if self._selected is not None:
            fresh = self.get_runtime(self._selected.id)
            self._selected = replace(fresh) if fresh is not None else None
        self._notify()

    def set_selected(self, runtime: Runtime | None) -> None:
        if runtime is not None and self.get_runtime(runtime.id) is None:
            logger.warning(f"Cannot select runtime {runtime.id}: not in registry")
            return
        self._selected = replace(runtime) if runtime is not None else None
        self._notify()

    def set_detecting(self, detecting: bool) -> None:
        self._detecting = detecting

    def set_error(self, error: str | None) -> None:
        self._error = error

    def update_status(
        self,
        runtime_id: str,
        status: RuntimeStatus,
        timestamp: datetime,
        error: str | None = None,
    ) -> None:
        """
        Apply a status update to a runtime and, independently, to the selection.

        The selection is a copy, so both records are rewritten. Unknown ids
        are ignored: an update can still arrive after its runtime was removed.
        """
        matched = False
        updated: list[Runtime] = []
        for runtime in self._runtimes:
            if runtime.id == runtime_id:
                runtime = replace(runtime, status=status, last_checked=timestamp, error=error)
                matched = True
            updated.append(runtime)

        if not matched:
            logger.debug(f"Status update for unknown runtime {runtime_id} ignored")
            return

        self._runtimes = updated
        if self._selected is not None and self._selected.id == runtime_id:
            self._selected = replace(self._selected, status=status, last_checked=timestamp, error=error)

    def add_runtime(self, runtime: Runtime) -> None:
        if self.get_runtime(runtime.id) is not None:
            self._runtimes = [runtime if r.id == runtime.id else r for r in self._runtimes]
        else:
            self._runtimes = [*self._runtimes, runtime]
        self._notify()

    def remove_runtime(self, runtime_id: str) -> None:
        self._runtimes = [r for r in self._runtimes if r.id != runtime_id]
        if self._selected is not None and self._selected.id == runtime_id:
            self._selected = None
        self._notify()

    def clear(self) -> None:
        self._runtimes = []
        self._selected = None
        self._notify()

    # ------------------------------------------------------------------
    # In-flight leases
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> Mapping[str, Lease]:
        return MappingProxyType(dict(self._leases))

    def is_in_flight(self, resource_id: str) -> bool:
        return resource_id in self._leases

    def acquire(self, resource_id: str, operation: str) -> Lease | None:
        """Take the lease for a container, or return None if it is already held."""
        if resource_id in self._leases:
            return None
        lease = Lease(resource_id=resource_id, operation=operation, token=next(self._tokens))
        self._leases[resource_id] = lease
        return lease

    def release(self, lease: Lease) -> bool:
        """Release a lease. Only the holder's own lease is removed."""
        current = self._leases.get(lease.resource_id)
        if current is None or current.token != lease.token:
            return False
        del self._leases[lease.resource_id]
        return True

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: RegistryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Registry listener error: {e}")
