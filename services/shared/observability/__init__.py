"""
Shared observability helpers (telemetry, privacy utilities).

The API and the client import from this package so log records share one
shape and never carry raw credentials or personal identifiers.
"""

from .privacy import REDACTED, hash_payload, redact_fields
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextToken,
    bind_account,
    bind_request_context,
    configure_logging,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "REDACTED",
    "hash_payload",
    "redact_fields",
    "CORRELATION_ID_HEADER",
    "RequestContextToken",
    "bind_account",
    "bind_request_context",
    "configure_logging",
    "ensure_request_id",
    "reset_request_context",
    "setup_telemetry",
]
