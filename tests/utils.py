"""
Factories and a virtual clock shared by the test modules.
"""

import asyncio
import heapq
import itertools

from harbor.domain.types import (
    Container,
    ContainerState,
    Runtime,
    RuntimeKind,
    RuntimeStatus,
    Version,
)


def make_runtime(
    runtime_id: str = "docker-1",
    kind: RuntimeKind = RuntimeKind.DOCKER,
    status: RuntimeStatus = RuntimeStatus.RUNNING,
    **kwargs,
) -> Runtime:
    version = kwargs.pop("version", Version(24, 0, 7, "24.0.7"))
    return Runtime(
        id=runtime_id,
        kind=kind,
        path=f"/usr/bin/{kind.value}",
        version=version,
        status=status,
        **kwargs,
    )


def make_container(
    container_id: str = "c1",
    name: str | None = None,
    state: ContainerState = ContainerState.RUNNING,
    **kwargs,
) -> Container:
    return Container(
        id=container_id,
        name=name or f"name-{container_id}",
        image=kwargs.pop("image", "nginx:latest"),
        state=state,
        **kwargs,
    )


async def yield_to_loop(times: int = 10) -> None:
    """Let ready tasks run without advancing time."""
    for _ in range(times):
        await asyncio.sleep(0)


class VirtualClock:
    """Drop-in replacement for asyncio.sleep driven by advance()."""

    def __init__(self):
        self.now = 0.0
        self._timers: list = []
        self._seq = itertools.count()

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._timers, (self.now + delay, next(self._seq), future))
        await future

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await yield_to_loop()
        while self._timers and self._timers[0][0] <= target:
            when, _, future = heapq.heappop(self._timers)
            self.now = when
            if not future.done():
                future.set_result(None)
            await yield_to_loop()
        self.now = target
