"""
Credential issuance and verification for the ledger API.

Passwords are stored as bcrypt hashes; sessions are stateless HS256 JWTs
carrying the account id (`sub`) and email. `current_account_id` is the
FastAPI dependency every finance route uses, so a missing or invalid token
is rejected before any ledger data is read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.errors import AuthError
from shared.ledger_settings import ServerSettings, load_server_settings
from shared.observability import bind_account

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash; treat as a failed login rather than a server error.
        return False


def issue_token(account_id: str, email: str, settings: ServerSettings | None = None) -> str:
    settings = settings or load_server_settings()
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": account_id,
        "email": email,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.token_ttl_days),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=TOKEN_ALGORITHM)


def decode_token(token: str, settings: ServerSettings | None = None) -> str:
    """Return the account id carried by a valid token or raise AuthError."""
    settings = settings or load_server_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    account_id = claims.get("sub")
    if not isinstance(account_id, str) or not account_id:
        raise AuthError("Invalid token")
    return account_id


async def current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.info({"event": "auth_rejected", "reason": "missing_credential"})
        raise AuthError("Missing bearer token")

    try:
        account_id = decode_token(credentials.credentials)
    except AuthError as exc:
        logger.info({"event": "auth_rejected", "reason": exc.message})
        raise

    bind_account(account_id)
    return account_id
