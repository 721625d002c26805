"""
Single-flight lifecycle operations on containers.

At most one operation runs per container id. A request for an id whose lease
is already held is dropped, not queued: it returns ``OperationOutcome.SKIPPED``
without touching the backend.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from harbor.domain.backend.base import RuntimeBackend
from harbor.domain.errors import BackendFailure, HarborError, NoActiveRuntime
from harbor.domain.registry import RegistryStore
from harbor.domain.types import PruneResult, Runtime
from harbor.observability import OPERATIONS_IN_FLIGHT, OPERATIONS_TOTAL
from harbor.services.list_cache import ListCache

logger = logging.getLogger("harbor")


class Operation(str, enum.Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    REMOVE = "remove"


class OperationOutcome(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


_ALLOWED_OPTIONS: dict[Operation, frozenset[str]] = {
    Operation.START: frozenset(),
    Operation.STOP: frozenset({"timeout"}),
    Operation.RESTART: frozenset({"timeout"}),
    Operation.PAUSE: frozenset(),
    Operation.UNPAUSE: frozenset(),
    Operation.REMOVE: frozenset({"force", "volumes"}),
}


def validate_options(operation: Operation | str, options: dict[str, Any]) -> Operation:
    """
    Check an operation name and its options.

    Returns:
        The Operation enum member

    Raises:
        ValueError: For an unknown operation or an option it does not accept
    """
    operation = Operation(operation)
    unexpected = set(options) - _ALLOWED_OPTIONS[operation]
    if unexpected:
        raise ValueError(f"Unsupported options for {operation.value}: {', '.join(sorted(unexpected))}")
    return operation


class OperationCoordinator:
    """Runs lifecycle operations against the active runtime."""

    def __init__(self, registry: RegistryStore, backend: RuntimeBackend, list_cache: ListCache) -> None:
        self._registry = registry
        self._backend = backend
        self._list_cache = list_cache

    async def request(self, resource_id: str, operation: Operation | str, **options: Any) -> OperationOutcome:
        """
        Run one operation on one container, then refresh the list once.

        Args:
            resource_id: Container id
            operation: Operation name
            **options: ``timeout`` for stop/restart, ``force``/``volumes`` for remove

        Returns:
            COMPLETED, or SKIPPED when the container already has an operation in flight

        Raises:
            ValueError: For unknown operations or options
            NoActiveRuntime: If no runtime is selected
            BackendFailure: If the backend call fails
        """
        outcome = await self.execute(resource_id, operation, **options)
        if outcome == OperationOutcome.COMPLETED:
            await self._list_cache.refresh()
        return outcome

    async def execute(self, resource_id: str, operation: Operation | str, **options: Any) -> OperationOutcome:
        """Same as ``request`` without the list refresh; batches refresh once at the end."""
        operation = validate_options(operation, options)

        lease = self._registry.acquire(resource_id, operation.value)
        if lease is None:
            logger.debug(f"Skipping {operation.value} on {resource_id}: operation already in flight")
            OPERATIONS_TOTAL.labels(operation=operation.value, outcome="skipped").inc()
            return OperationOutcome.SKIPPED

        OPERATIONS_IN_FLIGHT.inc()
        try:
            try:
                self._list_cache.clear_error()
                runtime = self._registry.selected
                if runtime is None:
                    raise NoActiveRuntime()
                await self._dispatch(runtime, resource_id, operation, options)
            finally:
                self._registry.release(lease)
                OPERATIONS_IN_FLIGHT.dec()
        except HarborError as e:
            self._record_failure(resource_id, operation, e)
            raise
        except Exception as e:
            failure = BackendFailure(str(e) or type(e).__name__)
            self._record_failure(resource_id, operation, failure)
            raise failure from e

        if operation == Operation.REMOVE and self._list_cache.clear_selection(resource_id):
            logger.debug(f"Cleared selection of removed container {resource_id}")

        OPERATIONS_TOTAL.labels(operation=operation.value, outcome="completed").inc()
        logger.info(f"Container {resource_id}: {operation.value} completed")
        return OperationOutcome.COMPLETED

    async def prune(self) -> PruneResult:
        """
        Remove all stopped containers on the active runtime, then refresh.

        Raises:
            NoActiveRuntime: If no runtime is selected
            BackendFailure: If the backend call fails
        """
        self._list_cache.clear_error()
        try:
            runtime = self._registry.selected
            if runtime is None:
                raise NoActiveRuntime()
            result = await self._backend.prune(runtime)
        except HarborError as e:
            self._list_cache.set_error(str(e))
            raise
        except Exception as e:
            self._list_cache.set_error(str(e))
            raise BackendFailure(str(e)) from e

        logger.info(f"Pruned {len(result.containers_deleted)} containers, reclaimed {result.space_reclaimed} bytes")
        await self._list_cache.refresh()
        return result

    async def _dispatch(self, runtime: Runtime, resource_id: str, operation: Operation, options: dict[str, Any]) -> None:
        if operation == Operation.START:
            await self._backend.start(runtime, resource_id)
        elif operation == Operation.STOP:
            await self._backend.stop(runtime, resource_id, timeout=options.get("timeout"))
        elif operation == Operation.RESTART:
            await self._backend.restart(runtime, resource_id, timeout=options.get("timeout"))
        elif operation == Operation.PAUSE:
            await self._backend.pause(runtime, resource_id)
        elif operation == Operation.UNPAUSE:
            await self._backend.unpause(runtime, resource_id)
        elif operation == Operation.REMOVE:
            await self._backend.remove(
                runtime,
                resource_id,
                force=bool(options.get("force", False)),
                volumes=bool(options.get("volumes", False)),
            )

    def _record_failure(self, resource_id: str, operation: Operation, error: HarborError) -> None:
        self._list_cache.set_error(str(error))
        OPERATIONS_TOTAL.labels(operation=operation.value, outcome="failed").inc()
        logger.error(f"Container {resource_id}: {operation.value} failed: {error}")
