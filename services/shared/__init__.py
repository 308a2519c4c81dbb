"""
Shared code for the FineBank ledger services.

This package contains code used by both the API and the client:
- ledger_model: domain dataclasses and their camelCase wire codecs
- seed: the deterministic default ledger
- errors: the classified error taxonomy
- ledger_settings: environment-driven configuration
- observability: logging, telemetry and privacy utilities
"""

from .errors import AuthError, ConflictError, LedgerError, NotFoundError, ValidationError
from .ledger_settings import (
    ClientSettings,
    LedgerSettingsError,
    ServerSettings,
    load_client_settings,
    load_server_settings,
)
from .seed import build_seed_ledger

__all__ = [
    "AuthError",
    "ConflictError",
    "LedgerError",
    "NotFoundError",
    "ValidationError",
    "ClientSettings",
    "LedgerSettingsError",
    "ServerSettings",
    "load_client_settings",
    "load_server_settings",
    "build_seed_ledger",
]
