"""Services module for monitoring, operations and the container list."""

from harbor.services.batch import BatchExecutor
from harbor.services.list_cache import ListCache
from harbor.services.operations import Operation, OperationCoordinator, OperationOutcome
from harbor.services.status_monitor import MonitorState, StatusMonitor

__all__ = [
    "BatchExecutor",
    "ListCache",
    "Operation",
    "OperationCoordinator",
    "OperationOutcome",
    "MonitorState",
    "StatusMonitor",
]
