"""Configuration module for Harbor."""

from harbor.config.settings import (
    STATUS_EVENT,
    MIN_DOCKER_VERSION,
    MIN_PODMAN_VERSION,
    ALREADY_IN_PROGRESS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REFRESH_INTERVAL,
    get_env,
)
from harbor.config.loader import (
    HarborConfig,
    CONFIG_PATH,
    HARBOR_CONFIG_FILE,
)

__all__ = [
    "STATUS_EVENT",
    "MIN_DOCKER_VERSION",
    "MIN_PODMAN_VERSION",
    "ALREADY_IN_PROGRESS",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_REFRESH_INTERVAL",
    "get_env",
    "HarborConfig",
    "CONFIG_PATH",
    "HARBOR_CONFIG_FILE",
]
