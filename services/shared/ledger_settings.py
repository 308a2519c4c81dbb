from __future__ import annotations

"""
Shared helpers for configuring the ledger API and its client.

Both the FastAPI service and the client library read their tunables from
environment variables. Loading and validating those settings in one place
keeps defaults consistent (token lifetime, database location, base URL,
timeouts) without duplicating parsing logic in every entrypoint.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

DB_URL_ENV_VAR = "LEDGER_DB_URL"
JWT_SECRET_ENV_VAR = "LEDGER_JWT_SECRET"
TOKEN_TTL_ENV_VAR = "LEDGER_TOKEN_TTL_DAYS"
CORS_ENV_VAR = "LEDGER_CORS_ORIGINS"
API_BASE_URL_ENV_VAR = "LEDGER_API_BASE_URL"
API_TIMEOUT_ENV_VAR = "LEDGER_API_TIMEOUT_SECONDS"

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "ledger-api" / "data" / "ledger.db"
DEFAULT_JWT_SECRET = "dev-only-ledger-secret"
DEFAULT_TOKEN_TTL_DAYS = 7
DEFAULT_API_BASE_URL = "http://localhost:4000"
DEFAULT_API_TIMEOUT_SECONDS = 15.0
DEFAULT_CORS_ORIGINS: Tuple[str, ...] = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
)


class LedgerSettingsError(RuntimeError):
    """Raised when ledger configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class ServerSettings:
    database_url: str
    jwt_secret: str
    token_ttl_days: int
    cors_origins: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ClientSettings:
    api_base_url: str
    timeout_seconds: float


def load_server_settings() -> ServerSettings:
    """
    Construct ServerSettings from the environment.

    The JWT secret falls back to a development value so local runs work out of
    the box; deployments are expected to set LEDGER_JWT_SECRET explicitly.
    """

    ttl_days = _parse_int(os.getenv(TOKEN_TTL_ENV_VAR), DEFAULT_TOKEN_TTL_DAYS, TOKEN_TTL_ENV_VAR)
    if ttl_days <= 0:
        raise LedgerSettingsError(f"{TOKEN_TTL_ENV_VAR} must be positive (received '{ttl_days}')")

    return ServerSettings(
        database_url=os.getenv(DB_URL_ENV_VAR) or f"sqlite:///{DEFAULT_DB_PATH}",
        jwt_secret=(os.getenv(JWT_SECRET_ENV_VAR) or DEFAULT_JWT_SECRET).strip(),
        token_ttl_days=ttl_days,
        cors_origins=_parse_origins(os.getenv(CORS_ENV_VAR)),
    )


def load_client_settings() -> ClientSettings:
    timeout = _parse_float(os.getenv(API_TIMEOUT_ENV_VAR), DEFAULT_API_TIMEOUT_SECONDS, API_TIMEOUT_ENV_VAR)
    base_url = (os.getenv(API_BASE_URL_ENV_VAR) or DEFAULT_API_BASE_URL).strip().rstrip("/")
    return ClientSettings(api_base_url=base_url, timeout_seconds=timeout)


def _parse_origins(raw_value: Optional[str]) -> Tuple[str, ...]:
    if not raw_value:
        return DEFAULT_CORS_ORIGINS

    origins = tuple(origin.strip() for origin in raw_value.split(",") if origin.strip())
    if not origins:
        return DEFAULT_CORS_ORIGINS
    # Starlette expects ["*"] instead of mixing '*' with explicit origins.
    if "*" in origins:
        return ("*",)
    return origins


def _parse_float(raw_value: Optional[str], default: float, env_key: str) -> float:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return float(raw_value)
    except ValueError as exc:
        raise LedgerSettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def _parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise LedgerSettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc
