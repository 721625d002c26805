"""
Error taxonomy for the Harbor core.

A duplicate request for a container that already has an operation in flight
is not an error: it is reported as ``OperationOutcome.SKIPPED``.
"""


class HarborError(Exception):
    """Base class for errors raised by the orchestration layer."""


class NoActiveRuntime(HarborError):
    """Raised when an operation needs a selected runtime and none is selected."""

    def __init__(self) -> None:
        super().__init__("No runtime selected")


class BackendFailure(HarborError):
    """Opaque failure reported by the runtime backend."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnknownRuntime(HarborError):
    """Raised when selecting a runtime id that is not in the registry."""

    def __init__(self, runtime_id: str) -> None:
        self.runtime_id = runtime_id
        super().__init__(f"Unknown runtime: {runtime_id}")
