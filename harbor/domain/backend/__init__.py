"""
Runtime backend module.

Drives Docker and Podman through the Docker SDK for detection, health
polling, container listing and lifecycle operations.
"""

from harbor.domain.backend.base import RuntimeBackend, StatusHandler, Unsubscribe
from harbor.domain.backend.factory import get_backend, reset_backend

__all__ = ["RuntimeBackend", "StatusHandler", "Unsubscribe", "get_backend", "reset_backend"]
