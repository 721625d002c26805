"""
Factory for creating runtime backends.
"""

from __future__ import annotations

import logging
import threading

from typing import Any

from harbor.config.loader import HarborConfig
from harbor.domain.backend.base import RuntimeBackend

logger = logging.getLogger("harbor")

# Singleton instance
_lock = threading.Lock()
_backend: Any = None


def get_backend() -> RuntimeBackend:
    """
    Get the configured runtime backend.

    Uses double-checked locking to ensure only one backend instance
    exists even when accessed concurrently from multiple threads.

    Returns:
        RuntimeBackend instance
    """
    global _backend

    if _backend is not None:
        return _backend

    with _lock:
        if _backend is not None:
            return _backend

        settings = HarborConfig.settings()
        endpoints = ", ".join(e.base_url for e in settings.backend.endpoints)
        logger.info(f"Initializing Docker SDK backend ({endpoints})")

        from harbor.domain.backend.docker_backend import DockerEngineBackend

        _backend = DockerEngineBackend(settings)

    return _backend


def reset_backend() -> None:
    """
    Reset the backend singleton.

    Useful for testing or configuration changes.
    """
    global _backend
    with _lock:
        _backend = None
