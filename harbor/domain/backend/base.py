"""
Protocol for container runtime backends.
"""

from typing import Callable, Protocol

from harbor.domain.types import (
    Container,
    ContainerDetails,
    DetectionResult,
    ListOptions,
    PruneResult,
    Runtime,
    StatusUpdate,
)

StatusHandler = Callable[[StatusUpdate], None]
Unsubscribe = Callable[[], None]


class RuntimeBackend(Protocol):
    """Protocol defining the interface of a container runtime backend."""

    async def detect(self, force: bool = False) -> DetectionResult:
        """
        Detect installed runtimes.

        Args:
            force: Bypass any cached detection result

        Returns:
            DetectionResult with runtimes and per-kind errors
        """
        ...

    async def start_polling(self) -> None:
        """Start backend-side health polling. Idempotent."""
        ...

    async def stop_polling(self) -> None:
        """Stop backend-side health polling. Idempotent."""
        ...

    async def subscribe(self, event: str, handler: StatusHandler) -> Unsubscribe:
        """
        Register a handler for pushed events.

        Args:
            event: Event name (STATUS_EVENT for health updates)
            handler: Called once per StatusUpdate

        Returns:
            Callable that removes the subscription
        """
        ...

    async def list_resources(self, runtime: Runtime, options: ListOptions) -> list[Container]:
        """
        List containers of a runtime.

        Args:
            runtime: Runtime to query
            options: Listing options

        Returns:
            List of Container snapshots
        """
        ...

    async def inspect(self, runtime: Runtime, container_id: str) -> ContainerDetails:
        """
        Inspect one container.

        Args:
            runtime: Runtime owning the container
            container_id: Container id or name

        Returns:
            ContainerDetails for the container
        """
        ...

    async def start(self, runtime: Runtime, container_id: str) -> None:
        ...

    async def stop(self, runtime: Runtime, container_id: str, timeout: int | None = None) -> None:
        """
        Stop a container.

        Args:
            runtime: Runtime owning the container
            container_id: Container id or name
            timeout: Seconds before the engine kills the container (engine default if None)
        """
        ...

    async def restart(self, runtime: Runtime, container_id: str, timeout: int | None = None) -> None:
        ...

    async def pause(self, runtime: Runtime, container_id: str) -> None:
        ...

    async def unpause(self, runtime: Runtime, container_id: str) -> None:
        ...

    async def remove(
        self, runtime: Runtime, container_id: str, force: bool = False, volumes: bool = False
    ) -> None:
        """
        Remove a container.

        Args:
            runtime: Runtime owning the container
            container_id: Container id or name
            force: Kill a running container before removing it
            volumes: Also remove anonymous volumes attached to the container
        """
        ...

    async def prune(self, runtime: Runtime) -> PruneResult:
        """
        Remove all stopped containers.

        Returns:
            PruneResult with deleted ids and reclaimed bytes
        """
        ...

    async def close(self) -> None:
        """Stop polling and release engine connections."""
        ...
