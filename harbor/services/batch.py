"""
Batch execution of one lifecycle operation across many containers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable

from harbor.config.settings import ALREADY_IN_PROGRESS
from harbor.domain.errors import NoActiveRuntime
from harbor.domain.registry import RegistryStore
from harbor.domain.types import OperationResult
from harbor.observability import BATCH_DURATION
from harbor.services.list_cache import ListCache
from harbor.services.operations import Operation, OperationCoordinator, OperationOutcome, validate_options

logger = logging.getLogger("harbor")


class BatchExecutor:
    """
    Fans an operation out over container ids.

    Every id goes through the coordinator's single-flight path concurrently,
    and one item's failure never affects another. The caller owns any
    multi-selection state; this class only returns results.
    """

    def __init__(self, coordinator: OperationCoordinator, registry: RegistryStore, list_cache: ListCache) -> None:
        self._coordinator = coordinator
        self._registry = registry
        self._list_cache = list_cache

    async def execute_batch(
        self, resource_ids: Iterable[str], operation: Operation | str, **options: Any
    ) -> list[OperationResult]:
        """
        Run an operation on every id and refresh the list once.

        Args:
            resource_ids: Container ids, in the order results are returned
            operation: Operation name
            **options: Applied to every id (e.g. ``force``/``volumes`` for remove)

        Returns:
            One OperationResult per id, in input order

        Raises:
            ValueError: For unknown operations or options
            NoActiveRuntime: If no runtime is selected
        """
        operation = validate_options(operation, options)
        resource_ids = list(resource_ids)
        if not resource_ids:
            return []
        if self._registry.selected is None:
            raise NoActiveRuntime()

        start = time.monotonic()
        results = await asyncio.gather(*(self._run_one(rid, operation, options) for rid in resource_ids))
        await self._list_cache.refresh()
        BATCH_DURATION.observe(time.monotonic() - start)

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Batch {operation.value}: {len(results) - failed}/{len(results)} succeeded")
        return list(results)

    async def _run_one(self, resource_id: str, operation: Operation, options: dict[str, Any]) -> OperationResult:
        try:
            outcome = await self._coordinator.execute(resource_id, operation, **options)
        except Exception as e:
            return OperationResult(resource_id=resource_id, success=False, error=getattr(e, "message", None) or str(e))

        if outcome == OperationOutcome.SKIPPED:
            return OperationResult(resource_id=resource_id, success=False, error=ALREADY_IN_PROGRESS)
        return OperationResult(resource_id=resource_id, success=True)
