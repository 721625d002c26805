"""
Harbor: client-side orchestration for container runtimes.

This package sits between a container-management UI and the engines it drives:
- Detection of Docker and Podman installations (Docker SDK, both sockets)
- Automatic selection of an active runtime from preferences and health
- Runtime health kept fresh through pushed status updates
- Single-flight lifecycle operations (start/stop/restart/pause/unpause/remove)
- Concurrent batch operations with independent per-container outcomes
- Cached container listing with optional timer-driven refresh
- Typed configuration from YAML, JSON logging and Prometheus metrics
"""

__version__ = "1.0.0"
