"""
Observability module: Prometheus metrics and structured JSON logging.

- Custom metrics for detection, operations, batches and status updates
- JSON structured logging via python-json-logger
"""

import logging
import sys

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Prometheus Custom Metrics
# =============================================================================

RUNTIMES_DETECTED = Gauge(
    "harbor_runtimes_detected",
    "Number of container runtimes found by the last detection cycle",
)

OPERATIONS_TOTAL = Counter(
    "harbor_operations_total",
    "Lifecycle operations by operation and outcome",
    ["operation", "outcome"],
)

OPERATIONS_IN_FLIGHT = Gauge(
    "harbor_operations_in_flight",
    "Number of containers with an operation currently in flight",
)

BATCH_DURATION = Histogram(
    "harbor_batch_duration_seconds",
    "Latency of batch operations, from dispatch to the last outcome",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60),
)

STATUS_UPDATES = Counter(
    "harbor_status_updates_total",
    "Runtime status updates applied to the registry",
)

STATUS_UPDATES_DROPPED = Counter(
    "harbor_status_updates_dropped_total",
    "Runtime status updates discarded because the channel was full",
)

REFRESH_ERRORS = Counter(
    "harbor_refresh_errors_total",
    "Container list refresh failures that were logged and swallowed",
    ["source"],
)


# =============================================================================
# JSON Structured Logging
# =============================================================================

def setup_json_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with JSON structured output.

    Uses python-json-logger's JsonFormatter, writing to stderr.
    """
    from pythonjsonlogger.json import JsonFormatter

    handler = logging.StreamHandler(sys.stderr)
    formatter = JsonFormatter(
        fmt="%(timestamp)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "timestamp"},
        timestamp=True,
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
