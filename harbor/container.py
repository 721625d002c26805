"""
Lightweight DI container for Harbor services.

Owns one instance of every component and wires them together: registry
mutations schedule runtime auto-selection and status monitor reconciliation
on the running event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Coroutine

from harbor.config.loader import HarborConfig
from harbor.config.models import HarborSettings
from harbor.config.settings import get_env
from harbor.domain.backend.base import RuntimeBackend
from harbor.domain.errors import BackendFailure, HarborError
from harbor.domain.preferences import PreferenceStore
from harbor.domain.registry import RegistryStore
from harbor.domain.selector import RuntimeSelector
from harbor.domain.types import DetectionResult, ListOptions, Runtime, RuntimeKind
from harbor.observability import RUNTIMES_DETECTED, setup_json_logging
from harbor.services.batch import BatchExecutor
from harbor.services.list_cache import ListCache
from harbor.services.operations import OperationCoordinator
from harbor.services.status_monitor import StatusMonitor

logger = logging.getLogger("harbor")


class ServiceContainer:
    """Service container holding the shared component instances."""

    def __init__(
        self,
        backend: RuntimeBackend,
        preferences: PreferenceStore,
        settings: HarborSettings | None = None,
    ) -> None:
        settings = settings or HarborConfig.settings()
        self.settings = settings
        self.backend = backend
        self.registry = RegistryStore()
        self.selector = RuntimeSelector(self.registry, preferences)
        self.monitor = StatusMonitor(self.registry, backend, channel_size=settings.monitor.channel_size)
        self.list_cache = ListCache(
            self.registry,
            backend,
            default_options=ListOptions(all=settings.containers.list_all, size=settings.containers.list_size),
        )
        self.operations = OperationCoordinator(self.registry, backend, self.list_cache)
        self.batch = BatchExecutor(self.operations, self.registry, self.list_cache)
        self._pending: set[asyncio.Task] = set()
        self.registry.add_listener(self._on_registry_change)

    @classmethod
    def from_settings(cls, settings: HarborSettings | None = None, json_logs: bool = True) -> ServiceContainer:
        """
        Build a container from harbor.yml using the Docker SDK backend and YAML preferences.

        Args:
            settings: Settings to use instead of harbor.yml
            json_logs: Install the JSON log handler (HARBOR_LOG_LEVEL overrides logging.level)
        """
        from harbor.domain.backend.factory import get_backend
        from harbor.domain.preferences import YamlPreferenceStore

        settings = settings or HarborConfig.settings()
        if json_logs:
            setup_json_logging(level=get_env("log_level") or settings.logging.level)
        kind = settings.preferences.preferred_kind
        preferences = YamlPreferenceStore(
            settings.preferences.path,
            preferred_kind=RuntimeKind(kind) if kind else None,
        )
        return cls(get_backend(), preferences, settings)

    async def detect(self, force: bool = False) -> DetectionResult:
        """
        Run one detection cycle and replace the registry's runtime list.

        Per-kind detection errors are logged and do not fail the cycle.

        Raises:
            BackendFailure: If detection itself fails
        """
        self.registry.set_detecting(True)
        self.registry.set_error(None)
        try:
            result = await self.backend.detect(force)
            for error in result.errors:
                logger.warning(f"{error.kind.value} detection error ({error.path}): {error.error}")
            self.registry.set_runtimes(result.runtimes)
            RUNTIMES_DETECTED.set(len(self.registry.runtimes))
        except HarborError as e:
            self.registry.set_error(str(e))
            raise
        except Exception as e:
            self.registry.set_error(str(e))
            raise BackendFailure(str(e)) from e
        finally:
            self.registry.set_detecting(False)

        await self.settle()
        return result

    async def select_runtime(self, runtime_id: str) -> Runtime:
        runtime = await self.selector.choose(runtime_id)
        await self.settle()
        return runtime

    def start_auto_refresh(self) -> None:
        self.list_cache.start_auto_refresh(self.settings.containers.auto_refresh_interval)

    async def settle(self) -> None:
        """Wait for scheduled selection and monitoring work, including work it schedules."""
        while self._pending:
            results = await asyncio.gather(*list(self._pending), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Scheduled task failed: {result}")

    async def shutdown(self) -> None:
        await self.settle()
        self.list_cache.close()
        await self.monitor.close()
        await self.selector.drain()
        try:
            await self.backend.close()
        except Exception as e:
            logger.warning(f"Failed to close runtime backend: {e}")
        logger.info("Harbor services stopped")

    def _on_registry_change(self, registry: RegistryStore) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Registry changed outside an event loop; selection and monitoring deferred")
            return
        self._schedule(loop, self.selector.select())
        self._schedule(loop, self.monitor.reconcile())

    def _schedule(self, loop: asyncio.AbstractEventLoop, coro: Coroutine) -> None:
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
