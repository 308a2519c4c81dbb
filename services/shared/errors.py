"""Error taxonomy shared by the ledger API and its client."""

from __future__ import annotations

from typing import Dict, Type


class LedgerError(Exception):
    """Base class for classified ledger failures."""

    error_code = "ledger_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"error": self.error_code, "details": self.message}


class ValidationError(LedgerError):
    """A required field is missing or malformed; nothing was written."""

    error_code = "validation_error"
    status_code = 400


class AuthError(LedgerError):
    """Missing, invalid or expired credential, or wrong email/password."""

    error_code = "auth_error"
    status_code = 401


class ConflictError(LedgerError):
    """Duplicate identity or a delete blocked by referencing rows."""

    error_code = "conflict"
    status_code = 409


class NotFoundError(LedgerError):
    """The id does not exist for the authenticated account."""

    error_code = "not_found"
    status_code = 404


ERRORS_BY_CODE: Dict[str, Type[LedgerError]] = {
    cls.error_code: cls for cls in (ValidationError, AuthError, ConflictError, NotFoundError)
}
ERRORS_BY_STATUS: Dict[int, Type[LedgerError]] = {
    cls.status_code: cls for cls in (ValidationError, AuthError, ConflictError, NotFoundError)
}


def error_from_payload(status_code: int, payload: object) -> LedgerError:
    """
    Rebuild a classified error from an API error body.

    The `error` code wins; the HTTP status is used when the body is missing or
    unrecognised. Anything else becomes a plain LedgerError.
    """

    code = None
    message = None
    if isinstance(payload, dict):
        code = payload.get("error")
        message = payload.get("details") or payload.get("message")

    error_cls = ERRORS_BY_CODE.get(code) if isinstance(code, str) else None
    if error_cls is None:
        error_cls = ERRORS_BY_STATUS.get(status_code, LedgerError)
    return error_cls(str(message or f"Request failed with status {status_code}"))
