#!/usr/bin/env python3
"""
Diagnostic script to check the ledger API and client environment variables.

Run it in the deployment shell (or locally before `uvicorn main:app`) to see
which LEDGER_* variables are set, which fall back to defaults, and whether the
values parse the way the services will parse them.
"""

import os
import sys
from pathlib import Path
from typing import Any

SERVICES_ROOT = Path(__file__).resolve().parents[1] / "services"
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from shared.ledger_settings import (  # noqa: E402
    API_BASE_URL_ENV_VAR,
    API_TIMEOUT_ENV_VAR,
    CORS_ENV_VAR,
    DB_URL_ENV_VAR,
    DEFAULT_JWT_SECRET,
    JWT_SECRET_ENV_VAR,
    TOKEN_TTL_ENV_VAR,
    LedgerSettingsError,
    load_client_settings,
    load_server_settings,
)

SERVER_VARS = (DB_URL_ENV_VAR, JWT_SECRET_ENV_VAR, TOKEN_TTL_ENV_VAR, CORS_ENV_VAR)
CLIENT_VARS = (API_BASE_URL_ENV_VAR, API_TIMEOUT_ENV_VAR)


def check_env_var(key: str) -> dict[str, Any]:
    """Report whether an environment variable is set, redacting secrets."""
    value = os.getenv(key)
    is_set = value is not None and value.strip() != ""

    result = {"key": key, "is_set": is_set, "value": value if is_set else None, "is_redacted": False}
    if is_set and ("SECRET" in key.upper() or "KEY" in key.upper()):
        result["value"] = f"{value[:3]}...{value[-2:]}" if len(value) > 8 else "***REDACTED***"
        result["is_redacted"] = True
    return result


def _print_vars(title: str, keys: tuple[str, ...], resolved: dict[str, Any]) -> None:
    print(f"{title}:")
    print("-" * 70)
    for key in keys:
        result = check_env_var(key)
        if result["is_set"]:
            print(f"✓ {key:32} = {result['value']}")
        else:
            print(f"○ {key:32} = NOT SET (using: {resolved.get(key)})")
    print()


def main() -> int:
    """Load both settings objects and report problems."""
    print("=" * 70)
    print("Ledger Environment Diagnostic")
    print("=" * 70)
    print()

    issues: list[str] = []
    try:
        server = load_server_settings()
    except LedgerSettingsError as exc:
        issues.append(str(exc))
        server = None
    try:
        client = load_client_settings()
    except LedgerSettingsError as exc:
        issues.append(str(exc))
        client = None

    server_defaults = {}
    if server is not None:
        server_defaults = {
            DB_URL_ENV_VAR: server.database_url,
            JWT_SECRET_ENV_VAR: "development secret",
            TOKEN_TTL_ENV_VAR: server.token_ttl_days,
            CORS_ENV_VAR: ", ".join(server.cors_origins),
        }
        if server.jwt_secret == DEFAULT_JWT_SECRET:
            issues.append(f"{JWT_SECRET_ENV_VAR} is not set; tokens are signed with the development secret")

    client_defaults = {}
    if client is not None:
        client_defaults = {API_BASE_URL_ENV_VAR: client.api_base_url, API_TIMEOUT_ENV_VAR: client.timeout_seconds}

    _print_vars("LEDGER API", SERVER_VARS, server_defaults)
    _print_vars("LEDGER CLIENT", CLIENT_VARS, client_defaults)
    print("=" * 70)

    if issues:
        print("❌ ISSUES FOUND:")
        for issue in issues:
            print(f"   - {issue}")
        return 1

    print("✓ Ledger configuration looks good!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
