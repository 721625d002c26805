"""
Shared pytest fixtures for the harbor test suite.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# ---------------------------------------------------------------------------
# Environment stubs – must be set BEFORE any harbor module is imported so
# that the config loader never reads the user's real harbor.yml.
# ---------------------------------------------------------------------------

os.environ.setdefault("HARBOR_CONFIG_PATH", "/tmp/harbor-tests/config")

from harbor.domain.registry import RegistryStore  # noqa: E402
from harbor.domain.types import ContainerDetails, DetectionResult, PruneResult  # noqa: E402
from harbor.services.batch import BatchExecutor  # noqa: E402
from harbor.services.list_cache import ListCache  # noqa: E402
from harbor.services.operations import OperationCoordinator  # noqa: E402

from tests.utils import VirtualClock, make_runtime  # noqa: E402


@pytest.fixture
def clock():
    return VirtualClock()


# ---------------------------------------------------------------------------
# Backend mock
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_backend():
    """Runtime backend built from AsyncMocks; ``emit`` pushes to subscribers."""
    backend = MagicMock()
    backend.handlers = []

    def _unsubscribe():
        backend.handlers.clear()

    backend.unsubscribe = MagicMock(side_effect=_unsubscribe)

    async def _subscribe(event, handler):
        backend.handlers.append(handler)
        return backend.unsubscribe

    async def _inspect(runtime, container_id):
        return ContainerDetails(id=container_id, name=f"name-{container_id}", image="nginx:latest")

    def _emit(update):
        for handler in list(backend.handlers):
            handler(update)

    backend.detect = AsyncMock(return_value=DetectionResult())
    backend.start_polling = AsyncMock(return_value=None)
    backend.stop_polling = AsyncMock(return_value=None)
    backend.subscribe = AsyncMock(side_effect=_subscribe)
    backend.emit = _emit
    backend.list_resources = AsyncMock(return_value=[])
    backend.inspect = AsyncMock(side_effect=_inspect)
    backend.start = AsyncMock(return_value=None)
    backend.stop = AsyncMock(return_value=None)
    backend.restart = AsyncMock(return_value=None)
    backend.pause = AsyncMock(return_value=None)
    backend.unpause = AsyncMock(return_value=None)
    backend.remove = AsyncMock(return_value=None)
    backend.prune = AsyncMock(return_value=PruneResult())
    backend.close = AsyncMock(return_value=None)
    return backend


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

@pytest.fixture
def runtime():
    return make_runtime()


@pytest.fixture
def registry():
    return RegistryStore()


@pytest.fixture
def active_registry(registry, runtime):
    """Registry holding one running Docker runtime, selected."""
    registry.set_runtimes([runtime])
    registry.set_selected(runtime)
    return registry


@pytest.fixture
def list_cache(active_registry, mock_backend):
    return ListCache(active_registry, mock_backend)


@pytest.fixture
def coordinator(active_registry, mock_backend, list_cache):
    return OperationCoordinator(active_registry, mock_backend, list_cache)


@pytest.fixture
def batch(coordinator, active_registry, list_cache):
    return BatchExecutor(coordinator, active_registry, list_cache)
