"""
Typed data structures for the Harbor domain.

Runtimes and containers are frozen dataclasses: every snapshot handed out by
the registry or the list cache is a value, and an updated record is a new
object built with ``dataclasses.replace``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class RuntimeKind(str, enum.Enum):
    DOCKER = "docker"
    PODMAN = "podman"


class RuntimeStatus(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    UNKNOWN = "unknown"


class RuntimeMode(str, enum.Enum):
    """Podman execution mode (security context)."""

    ROOTFUL = "rootful"
    ROOTLESS = "rootless"


class ContainerState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: datetime | str | float | int | None) -> datetime:
    """Normalize a wire timestamp (ISO string, epoch seconds or datetime) to aware UTC."""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = value.strip()
    # Python 3.10 fromisoformat() does not accept a trailing "Z"
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Version:
    """Semantic version of a runtime executable."""

    major: int
    minor: int
    patch: int
    full: str

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def to_dict(self) -> dict[str, Any]:
        return {"major": self.major, "minor": self.minor, "patch": self.patch, "full": self.full}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Version:
        major, minor, patch = int(data["major"]), int(data["minor"]), int(data["patch"])
        return cls(major, minor, patch, data.get("full") or f"{major}.{minor}.{patch}")


@dataclass(frozen=True)
class Runtime:
    """A detected container-engine installation with version and health metadata."""

    id: str
    kind: RuntimeKind
    path: str
    version: Version
    status: RuntimeStatus = RuntimeStatus.UNKNOWN
    last_checked: datetime = field(default_factory=utcnow)
    detected_at: datetime = field(default_factory=utcnow)
    mode: RuntimeMode | None = None
    is_wsl: bool | None = None
    error: str | None = None
    version_warning: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase names of the engine bridge."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "path": self.path,
            "version": self.version.to_dict(),
            "status": self.status.value,
            "lastChecked": self.last_checked.isoformat(),
            "detectedAt": self.detected_at.isoformat(),
        }
        if self.mode is not None:
            data["mode"] = self.mode.value
        if self.is_wsl is not None:
            data["isWsl"] = self.is_wsl
        if self.error is not None:
            data["error"] = self.error
        if self.version_warning is not None:
            data["versionWarning"] = self.version_warning
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Runtime:
        mode = data.get("mode")
        return cls(
            id=data["id"],
            kind=RuntimeKind(data.get("type") or data["kind"]),
            path=data.get("path", ""),
            version=Version.from_dict(data["version"]),
            status=RuntimeStatus(data.get("status", RuntimeStatus.UNKNOWN.value)),
            last_checked=parse_timestamp(data.get("lastChecked")),
            detected_at=parse_timestamp(data.get("detectedAt")),
            mode=RuntimeMode(mode) if mode else None,
            is_wsl=data.get("isWsl"),
            error=data.get("error"),
            version_warning=data.get("versionWarning"),
        )


@dataclass(frozen=True)
class DetectionError:
    """Non-fatal failure while detecting one runtime kind."""

    kind: RuntimeKind
    path: str
    error: str


@dataclass(frozen=True)
class DetectionResult:
    runtimes: list[Runtime] = field(default_factory=list)
    detected_at: datetime = field(default_factory=utcnow)
    duration: int = 0  # milliseconds
    errors: list[DetectionError] = field(default_factory=list)


@dataclass(frozen=True)
class StatusUpdate:
    """Health change for one runtime, pushed by the backend."""

    runtime_id: str
    status: RuntimeStatus
    timestamp: datetime = field(default_factory=utcnow)
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusUpdate:
        return cls(
            runtime_id=data.get("runtimeId") or data["runtime_id"],
            status=RuntimeStatus(data["status"]),
            timestamp=parse_timestamp(data.get("timestamp")),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class PortBinding:
    container_port: int
    host_port: int | None = None
    protocol: str = "tcp"
    host_ip: str = ""


@dataclass(frozen=True)
class ContainerNetwork:
    name: str
    network_id: str = ""
    endpoint_id: str = ""
    gateway: str = ""
    ip_address: str = ""
    mac_address: str = ""


@dataclass(frozen=True)
class Mount:
    type: str
    source: str
    destination: str
    mode: str = ""
    rw: bool = True
    propagation: str = ""


@dataclass(frozen=True)
class Container:
    """A managed container as of the last list fetch."""

    id: str
    name: str
    image: str
    image_id: str = ""
    command: str = ""
    created: int = 0
    state: ContainerState = ContainerState.CREATED
    status: str = ""
    ports: list[PortBinding] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    size_rw: int | None = None
    size_root_fs: int | None = None
    networks: list[ContainerNetwork] = field(default_factory=list)
    mounts: list[Mount] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "imageId": self.image_id,
            "command": self.command,
            "created": self.created,
            "state": self.state.value,
            "status": self.status,
            "ports": [
                {
                    "containerPort": p.container_port,
                    "hostPort": p.host_port,
                    "protocol": p.protocol,
                    "hostIp": p.host_ip,
                }
                for p in self.ports
            ],
            "labels": dict(self.labels),
            "sizeRw": self.size_rw,
            "sizeRootFs": self.size_root_fs,
            "networks": [n.name for n in self.networks],
            "mounts": [m.destination for m in self.mounts],
        }


@dataclass(frozen=True)
class ContainerStateDetails:
    status: str = ""
    running: bool = False
    paused: bool = False
    restarting: bool = False
    oom_killed: bool = False
    dead: bool = False
    pid: int = 0
    exit_code: int = 0
    error: str = ""
    started_at: str = ""
    finished_at: str = ""


@dataclass(frozen=True)
class ContainerConfig:
    hostname: str = ""
    domainname: str = ""
    user: str = ""
    tty: bool = False
    env: list[str] = field(default_factory=list)
    cmd: list[str] | None = None
    entrypoint: list[str] | None = None
    image: str = ""
    working_dir: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NetworkSettings:
    gateway: str = ""
    ip_address: str = ""
    ip_prefix_len: int = 0
    mac_address: str = ""
    sandbox_key: str = ""
    ports: list[PortBinding] = field(default_factory=list)
    networks: list[ContainerNetwork] = field(default_factory=list)


@dataclass(frozen=True)
class ContainerDetails:
    """Full inspection record of one container."""

    id: str
    name: str
    image: str
    created: str = ""
    path: str = ""
    args: list[str] = field(default_factory=list)
    state: ContainerStateDetails = field(default_factory=ContainerStateDetails)
    restart_count: int = 0
    driver: str = ""
    platform: str = ""
    config: ContainerConfig = field(default_factory=ContainerConfig)
    network_settings: NetworkSettings = field(default_factory=NetworkSettings)
    mounts: list[Mount] = field(default_factory=list)

    @property
    def environment(self) -> list[tuple[str, str]]:
        """Environment as (key, value) pairs sorted by key; entries without '=' have an empty value."""
        pairs = []
        for entry in self.config.env:
            key, _, value = entry.partition("=")
            pairs.append((key, value))
        return sorted(pairs, key=lambda pair: pair[0])


@dataclass(frozen=True)
class ListOptions:
    """Options for listing containers."""

    all: bool = True
    limit: int | None = None
    size: bool = False
    filters: dict[str, str] | None = None


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one item of a batch operation."""

    resource_id: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.resource_id, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class PruneResult:
    containers_deleted: list[str] = field(default_factory=list)
    space_reclaimed: int = 0


@dataclass(frozen=True)
class RuntimePreferences:
    """Persisted runtime selection preferences."""

    selected_runtime_id: str | None = None
    preferred_kind: RuntimeKind | None = None


@dataclass(frozen=True)
class Lease:
    """In-flight marker for one container operation."""

    resource_id: str
    operation: str
    token: int
    acquired_at: datetime = field(default_factory=utcnow)
