"""
Pydantic models for Harbor configuration.

Provides typed access to all harbor.yml settings via HarborConfig.settings().
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from harbor.config.settings import DEFAULT_POLL_INTERVAL, DEFAULT_REFRESH_INTERVAL


class DetectionConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cache_ttl: int = 60
    timeout: float = 5.0


class PollingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interval: float = DEFAULT_POLL_INTERVAL
    check_timeout: float = 3.0
    max_backoff_exponent: int = 5


class EndpointConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: str = "docker"
    base_url: str = "unix:///var/run/docker.sock"
    mode: str | None = None


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    endpoints: list[EndpointConfig] = [
        EndpointConfig(kind="docker", base_url="unix:///var/run/docker.sock"),
        EndpointConfig(kind="podman", base_url="unix:///run/podman/podman.sock", mode="rootful"),
    ]
    include_rootless_podman: bool = True
    api_timeout: int = 30


class MonitorConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel_size: int = 256


class ContainersConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auto_refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    list_all: bool = True
    list_size: bool = False


class PreferencesConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = "~/.config/harbormaster/preferences.yml"
    preferred_kind: str | None = "docker"


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: str = "INFO"


class HarborSettings(BaseModel):
    """Root settings model mirroring harbor.yml structure."""

    model_config = ConfigDict(extra="ignore")

    detection: DetectionConfig = DetectionConfig()
    polling: PollingConfig = PollingConfig()
    backend: BackendConfig = BackendConfig()
    monitor: MonitorConfig = MonitorConfig()
    containers: ContainersConfig = ContainersConfig()
    preferences: PreferencesConfig = PreferencesConfig()
    logging: LoggingConfig = LoggingConfig()
