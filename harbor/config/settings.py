"""
Constants and settings for Harbor.
"""

import os

# =============================================================================
# Constants
# =============================================================================

# Event name used by backends to push runtime health changes
STATUS_EVENT = "runtime-status-update"

# Minimum supported engine versions (major, minor, patch)
MIN_DOCKER_VERSION = (20, 10, 0)
MIN_PODMAN_VERSION = (3, 0, 0)

# Result text for batch items whose container already has an operation running
ALREADY_IN_PROGRESS = "Operation already in progress"

# Default status polling interval in seconds
DEFAULT_POLL_INTERVAL = 5.0

# Default list auto-refresh interval in seconds
DEFAULT_REFRESH_INTERVAL = 5.0


def get_env(key: str, default: str | None = None, required: bool = False) -> str | None:
    """
    Retrieve a configuration value from the environment.

    Args:
        key: Configuration key (``config_path`` reads ``HARBOR_CONFIG_PATH``)
        default: Default value
        required: Whether the value is required

    Returns:
        Configuration value

    Raises:
        ValueError: If required value is missing
    """
    env_key = "HARBOR_" + key.upper().replace("-", "_")
    value = os.environ.get(env_key, default)
    if required and not value:
        raise ValueError(f"Required configuration missing: {env_key}")
    return value
