"""
Docker SDK implementation of the runtime backend.

The same client drives both engines: Docker through its daemon socket and
Podman through its Docker-compatible API socket.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import time
from typing import Any, Callable

import docker
import docker.errors
import requests.exceptions

from harbor.config.loader import HarborConfig
from harbor.config.models import EndpointConfig, HarborSettings
from harbor.config.settings import STATUS_EVENT
from harbor.domain.backend.base import StatusHandler, Unsubscribe
from harbor.domain.backend.cache import DetectionCache
from harbor.domain.errors import BackendFailure
from harbor.domain.types import (
    Container,
    ContainerConfig,
    ContainerDetails,
    ContainerNetwork,
    ContainerState,
    ContainerStateDetails,
    DetectionError,
    DetectionResult,
    ListOptions,
    Mount,
    NetworkSettings,
    PortBinding,
    PruneResult,
    Runtime,
    RuntimeKind,
    RuntimeMode,
    RuntimeStatus,
    StatusUpdate,
    utcnow,
)
from harbor.domain.version import meets_minimum, parse_version

logger = logging.getLogger("harbor")

ENGINE_ERRORS = (docker.errors.DockerException, requests.exceptions.RequestException)

# Engine states that have no direct counterpart in ContainerState
_STATE_ALIASES = {
    "stopped": ContainerState.EXITED,
    "configured": ContainerState.CREATED,
    "initialized": ContainerState.CREATED,
    "stopping": ContainerState.RUNNING,
}


def status_from_error(error: BaseException) -> RuntimeStatus:
    """
    Map a failed health check to a runtime status.

    Permission problems are errors, timeouts are unknown, and anything else
    (daemon not running, socket missing) means the runtime is stopped.
    """
    message = str(error).lower()
    if "permission denied" in message:
        return RuntimeStatus.ERROR
    if isinstance(error, (TimeoutError, requests.exceptions.Timeout)) or "timed out" in message:
        return RuntimeStatus.UNKNOWN
    return RuntimeStatus.STOPPED


def _networks_from_api(raw: dict[str, Any] | None) -> list[ContainerNetwork]:
    return [
        ContainerNetwork(
            name=net_name,
            network_id=net.get("NetworkID", ""),
            endpoint_id=net.get("EndpointID", ""),
            gateway=net.get("Gateway", ""),
            ip_address=net.get("IPAddress", ""),
            mac_address=net.get("MacAddress", ""),
        )
        for net_name, net in (raw or {}).items()
    ]


def _mounts_from_api(raw: list[dict[str, Any]] | None) -> list[Mount]:
    return [
        Mount(
            type=m.get("Type", ""),
            source=m.get("Source", ""),
            destination=m.get("Destination", ""),
            mode=m.get("Mode", ""),
            rw=bool(m.get("RW", True)),
            propagation=m.get("Propagation", ""),
        )
        for m in raw or []
    ]


def _published_ports(raw: dict[str, list[dict[str, str]] | None] | None) -> list[PortBinding]:
    """Flatten an inspect port map ("80/tcp" -> host bindings or null)."""
    ports = []
    for spec, bindings in (raw or {}).items():
        port, _, protocol = spec.partition("/")
        if not bindings:
            ports.append(PortBinding(container_port=int(port), protocol=protocol or "tcp"))
            continue
        for binding in bindings:
            host_port = binding.get("HostPort")
            ports.append(
                PortBinding(
                    container_port=int(port),
                    host_port=int(host_port) if host_port else None,
                    protocol=protocol or "tcp",
                    host_ip=binding.get("HostIp", ""),
                )
            )
    return ports


def container_from_api(item: dict[str, Any]) -> Container:
    """Build a Container from one entry of the engine's container list."""
    names = item.get("Names") or []
    container_id = item.get("Id", "")
    name = names[0].lstrip("/") if names else container_id[:12]

    raw_state = str(item.get("State") or "").lower()
    try:
        state = ContainerState(raw_state)
    except ValueError:
        state = _STATE_ALIASES.get(raw_state, ContainerState.DEAD)

    ports = [
        PortBinding(
            container_port=int(p.get("PrivatePort", 0)),
            host_port=p.get("PublicPort"),
            protocol=p.get("Type", "tcp"),
            host_ip=p.get("IP", ""),
        )
        for p in item.get("Ports") or []
    ]
    networks = _networks_from_api((item.get("NetworkSettings") or {}).get("Networks"))
    mounts = _mounts_from_api(item.get("Mounts"))

    return Container(
        id=container_id,
        name=name,
        image=item.get("Image", ""),
        image_id=item.get("ImageID", ""),
        command=item.get("Command", ""),
        created=int(item.get("Created", 0)),
        state=state,
        status=item.get("Status", ""),
        ports=ports,
        labels=dict(item.get("Labels") or {}),
        size_rw=item.get("SizeRw"),
        size_root_fs=item.get("SizeRootFs"),
        networks=networks,
        mounts=mounts,
    )


def details_from_api(item: dict[str, Any]) -> ContainerDetails:
    """Build ContainerDetails from the engine's inspect response."""
    raw_state = item.get("State") or {}
    raw_config = item.get("Config") or {}
    raw_network = item.get("NetworkSettings") or {}

    return ContainerDetails(
        id=item.get("Id", ""),
        name=str(item.get("Name", "")).lstrip("/"),
        image=raw_config.get("Image") or item.get("Image", ""),
        created=item.get("Created", ""),
        path=item.get("Path", ""),
        args=list(item.get("Args") or []),
        state=ContainerStateDetails(
            status=raw_state.get("Status", ""),
            running=bool(raw_state.get("Running", False)),
            paused=bool(raw_state.get("Paused", False)),
            restarting=bool(raw_state.get("Restarting", False)),
            oom_killed=bool(raw_state.get("OOMKilled", False)),
            dead=bool(raw_state.get("Dead", False)),
            pid=int(raw_state.get("Pid") or 0),
            exit_code=int(raw_state.get("ExitCode") or 0),
            error=raw_state.get("Error", ""),
            started_at=raw_state.get("StartedAt", ""),
            finished_at=raw_state.get("FinishedAt", ""),
        ),
        restart_count=int(item.get("RestartCount") or 0),
        driver=item.get("Driver", ""),
        platform=item.get("Platform", ""),
        config=ContainerConfig(
            hostname=raw_config.get("Hostname", ""),
            domainname=raw_config.get("Domainname", ""),
            user=raw_config.get("User", ""),
            tty=bool(raw_config.get("Tty", False)),
            env=list(raw_config.get("Env") or []),
            cmd=raw_config.get("Cmd"),
            entrypoint=raw_config.get("Entrypoint"),
            image=raw_config.get("Image", ""),
            working_dir=raw_config.get("WorkingDir", ""),
            labels=dict(raw_config.get("Labels") or {}),
        ),
        network_settings=NetworkSettings(
            gateway=raw_network.get("Gateway", ""),
            ip_address=raw_network.get("IPAddress", ""),
            ip_prefix_len=int(raw_network.get("IPPrefixLen") or 0),
            mac_address=raw_network.get("MacAddress", ""),
            sandbox_key=raw_network.get("SandboxKey", ""),
            ports=_published_ports(raw_network.get("Ports")),
            networks=_networks_from_api(raw_network.get("Networks")),
        ),
        mounts=_mounts_from_api(item.get("Mounts")),
    )


def _is_wsl() -> bool:
    try:
        with open("/proc/version", "r") as f:
            contents = f.read().lower()
    except OSError:
        return False
    return "microsoft" in contents or "wsl" in contents


def _socket_path(base_url: str) -> str | None:
    if base_url.startswith("unix://"):
        return base_url[len("unix://"):]
    return None


class DockerEngineBackend:
    """Runtime backend for Docker and Podman built on the Docker SDK."""

    def __init__(self, settings: HarborSettings | None = None) -> None:
        settings = settings or HarborConfig.settings()
        self._endpoints = list(settings.backend.endpoints)
        if settings.backend.include_rootless_podman:
            runtime_dir = os.environ.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}"
            self._endpoints.append(
                EndpointConfig(kind="podman", base_url=f"unix://{runtime_dir}/podman/podman.sock", mode="rootless")
            )
        self._api_timeout = settings.backend.api_timeout
        self._poll_interval = settings.polling.interval
        self._check_timeout = settings.polling.check_timeout
        self._max_backoff_exponent = settings.polling.max_backoff_exponent
        self._detection_timeout = settings.detection.timeout
        self._cache = DetectionCache(ttl=settings.detection.cache_ttl)

        self._clients: dict[str, docker.DockerClient] = {}
        self._base_urls: dict[str, str] = {}
        self._runtimes: list[Runtime] = []
        self._subscribers: dict[str, list[StatusHandler]] = {}
        self._poll_task: asyncio.Task | None = None
        self._failures: dict[str, int] = {}
        self._skip_ticks: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect(self, force: bool = False) -> DetectionResult:
        """Detect Docker and Podman, reusing cached results unless forced."""
        start = time.monotonic()
        if force:
            self._cache.clear()

        runtimes: list[Runtime] = []
        errors: list[DetectionError] = []
        for kind in RuntimeKind:
            result = self._cache.get(kind)
            if result is None:
                result = await asyncio.to_thread(self._detect_kind, kind)
                self._cache.set(kind, result)
            runtimes.extend(result.runtimes)
            errors.extend(result.errors)

        self._runtimes = runtimes
        duration = int((time.monotonic() - start) * 1000)
        logger.info(f"Detected {len(runtimes)} runtimes in {duration}ms ({len(errors)} errors)")
        return DetectionResult(runtimes=runtimes, detected_at=utcnow(), duration=duration, errors=errors)

    def _detect_kind(self, kind: RuntimeKind) -> DetectionResult:
        start = time.monotonic()
        runtimes: list[Runtime] = []
        errors: list[DetectionError] = []
        executable = shutil.which(kind.value) or ""
        is_wsl = _is_wsl()

        for endpoint in self._endpoints:
            if endpoint.kind != kind.value:
                continue
            socket_path = _socket_path(endpoint.base_url)
            if socket_path is not None and not os.path.exists(socket_path) and not executable:
                continue

            try:
                runtimes.append(self._probe(kind, endpoint, executable, is_wsl))
            except (ValueError, OSError, subprocess.SubprocessError, *ENGINE_ERRORS) as e:
                logger.warning(f"{kind.value} detection failed at {endpoint.base_url}: {e}")
                errors.append(DetectionError(kind=kind, path=executable or endpoint.base_url, error=str(e)))

            if time.monotonic() - start > self._detection_timeout:
                errors.append(DetectionError(kind=kind, path=executable, error="Detection timeout exceeded"))
                break

        return DetectionResult(
            runtimes=runtimes,
            detected_at=utcnow(),
            duration=int((time.monotonic() - start) * 1000),
            errors=errors,
        )

    def _probe(self, kind: RuntimeKind, endpoint: EndpointConfig, executable: str, is_wsl: bool) -> Runtime:
        """
        Probe one engine endpoint.

        A reachable daemon reports its own version; an unreachable one is
        still a detected runtime when its executable can report a version.
        """
        runtime_id = f"{kind.value}-{endpoint.base_url}"
        status = RuntimeStatus.STOPPED
        error: str | None = None
        version_text = ""

        client: docker.DockerClient | None = None
        try:
            client = docker.DockerClient(base_url=endpoint.base_url, timeout=self._api_timeout)
            version_text = str(client.version().get("Version", ""))
            status = RuntimeStatus.RUNNING
            previous = self._clients.get(runtime_id)
            if previous is not None and previous is not client:
                previous.close()
            self._clients[runtime_id] = client
        except ENGINE_ERRORS as e:
            if client is not None:
                client.close()
            status = status_from_error(e)
            if status == RuntimeStatus.ERROR:
                error = str(e)

        if not version_text:
            if not executable:
                raise ValueError(f"{kind.value} daemon unreachable and no executable found")
            version_text = self._executable_version(executable)

        version = parse_version(version_text)
        self._base_urls[runtime_id] = endpoint.base_url
        mode = RuntimeMode(endpoint.mode) if kind == RuntimeKind.PODMAN and endpoint.mode else None
        now = utcnow()
        return Runtime(
            id=runtime_id,
            kind=kind,
            path=executable,
            version=version,
            status=status,
            last_checked=now,
            detected_at=now,
            mode=mode,
            is_wsl=True if is_wsl else None,
            error=error,
            version_warning=None if meets_minimum(kind, version) else True,
        )

    def _executable_version(self, executable: str) -> str:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=self._detection_timeout,
            check=True,
        )
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Status polling
    # ------------------------------------------------------------------

    async def start_polling(self) -> None:
        """Start the status polling loop. Calling it again is a no-op."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info(f"Status polling started (interval: {self._poll_interval}s)")

    async def stop_polling(self) -> None:
        """Stop the status polling loop. Calling it when stopped is a no-op."""
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Status polling stopped")

    async def subscribe(self, event: str, handler: StatusHandler) -> Unsubscribe:
        handlers = self._subscribers.setdefault(event, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            await self.poll_once()

    async def poll_once(self) -> None:
        """Check every detected runtime once and emit a status update for each."""
        for runtime in list(self._runtimes):
            if self._should_skip(runtime.id):
                continue

            try:
                status, error = await asyncio.wait_for(
                    asyncio.to_thread(self._check_status, runtime), timeout=self._check_timeout
                )
            except asyncio.TimeoutError:
                status, error = RuntimeStatus.UNKNOWN, None

            if status in (RuntimeStatus.ERROR, RuntimeStatus.UNKNOWN):
                failures = min(self._failures.get(runtime.id, 0) + 1, self._max_backoff_exponent)
                self._failures[runtime.id] = failures
                # Skip 2^n - 1 ticks after the n-th consecutive failure
                self._skip_ticks[runtime.id] = 2 ** failures - 1
            else:
                self._failures.pop(runtime.id, None)
                self._skip_ticks.pop(runtime.id, None)

            self._emit(STATUS_EVENT, StatusUpdate(runtime_id=runtime.id, status=status, timestamp=utcnow(), error=error))

    def _should_skip(self, runtime_id: str) -> bool:
        remaining = self._skip_ticks.get(runtime_id, 0)
        if remaining > 0:
            self._skip_ticks[runtime_id] = remaining - 1
            return True
        return False

    def _check_status(self, runtime: Runtime) -> tuple[RuntimeStatus, str | None]:
        try:
            self._client_for(runtime).ping()
            return RuntimeStatus.RUNNING, None
        except ENGINE_ERRORS as e:
            status = status_from_error(e)
            return status, str(e) if status == RuntimeStatus.ERROR else None

    def _emit(self, event: str, update: StatusUpdate) -> None:
        for handler in list(self._subscribers.get(event, [])):
            try:
                handler(update)
            except Exception as e:
                logger.error(f"Status subscriber error: {e}")

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    async def list_resources(self, runtime: Runtime, options: ListOptions) -> list[Container]:
        raw = await self._call(
            runtime,
            "list containers",
            lambda c: c.api.containers(
                all=options.all,
                limit=options.limit if options.limit is not None else -1,
                size=options.size,
                filters=options.filters,
            ),
        )
        return [container_from_api(item) for item in raw]

    async def inspect(self, runtime: Runtime, container_id: str) -> ContainerDetails:
        raw = await self._call(runtime, "inspect container", lambda c: c.api.inspect_container(container_id))
        return details_from_api(raw)

    async def start(self, runtime: Runtime, container_id: str) -> None:
        await self._call(runtime, "start container", lambda c: c.api.start(container_id))

    async def stop(self, runtime: Runtime, container_id: str, timeout: int | None = None) -> None:
        if timeout is None:
            await self._call(runtime, "stop container", lambda c: c.api.stop(container_id))
        else:
            await self._call(runtime, "stop container", lambda c: c.api.stop(container_id, timeout=timeout))

    async def restart(self, runtime: Runtime, container_id: str, timeout: int | None = None) -> None:
        if timeout is None:
            await self._call(runtime, "restart container", lambda c: c.api.restart(container_id))
        else:
            await self._call(runtime, "restart container", lambda c: c.api.restart(container_id, timeout=timeout))

    async def pause(self, runtime: Runtime, container_id: str) -> None:
        await self._call(runtime, "pause container", lambda c: c.api.pause(container_id))

    async def unpause(self, runtime: Runtime, container_id: str) -> None:
        await self._call(runtime, "unpause container", lambda c: c.api.unpause(container_id))

    async def remove(
        self, runtime: Runtime, container_id: str, force: bool = False, volumes: bool = False
    ) -> None:
        await self._call(
            runtime,
            "remove container",
            lambda c: c.api.remove_container(container_id, v=volumes, force=force),
        )

    async def prune(self, runtime: Runtime) -> PruneResult:
        raw = await self._call(runtime, "prune containers", lambda c: c.api.prune_containers())
        return PruneResult(
            containers_deleted=list(raw.get("ContainersDeleted") or []),
            space_reclaimed=int(raw.get("SpaceReclaimed") or 0),
        )

    async def close(self) -> None:
        """Stop polling and close every engine client."""
        await self.stop_polling()
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, runtime: Runtime, action: str, func: Callable[[docker.DockerClient], Any]) -> Any:
        try:
            return await asyncio.to_thread(lambda: func(self._client_for(runtime)))
        except ENGINE_ERRORS as e:
            explanation = getattr(e, "explanation", None) or str(e)
            raise BackendFailure(f"Failed to {action}: {explanation}") from e

    def _client_for(self, runtime: Runtime) -> docker.DockerClient:
        client = self._clients.get(runtime.id)
        if client is not None:
            return client
        base_url = self._base_urls.get(runtime.id)
        if base_url is None:
            raise BackendFailure(f"Runtime {runtime.id} was not detected by this backend")
        client = docker.DockerClient(base_url=base_url, timeout=self._api_timeout)
        self._clients[runtime.id] = client
        return client
