"""In-process transports used by the HTTP wrapper."""

from .memory import (
    DEFAULT_TIMEOUT_SECONDS,
    InMemoryTransport,
    PendingRequest,
    PendingState,
    generate_request_id,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "InMemoryTransport",
    "PendingRequest",
    "PendingState",
    "generate_request_id",
]
