"""
Ledger API: the server of record for accounts, categories, transactions,
budgets and settings. Every finance route is scoped to the account named by
the bearer token.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

SERVICES_ROOT = SRC_DIR.parents[1]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from auth import current_account_id, hash_password, issue_token, verify_password
from persistence.database import get_session, init_db
from persistence.models import Account
from persistence.repository import AccountRepository, LedgerRepository
from schemas import (
    BudgetPut,
    CategoryCreate,
    CategoryUpdate,
    LoginPayload,
    RegisterPayload,
    SettingsPatch,
    TransactionCreate,
    TransactionUpdate,
)
from shared.errors import AuthError, LedgerError, NotFoundError
from shared.ledger_model import Category, Transaction, budget_to_wire, snapshot_to_wire
from shared.ledger_settings import load_server_settings
from shared.observability import (
    bind_request_context,
    ensure_request_id,
    hash_payload,
    redact_fields,
    reset_request_context,
    setup_telemetry,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "ledger-api"
LOGGABLE_SETTINGS_FIELDS = ("currency", "first_day_of_month", "theme")

app = FastAPI(title="Ledger API")
setup_telemetry(app, service_name=SERVICE_NAME)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = ensure_request_id(request)
    token = bind_request_context(request_id)
    try:
        response = await call_next(request)
        response.headers.setdefault("x-request-id", request_id)
        return response
    finally:
        reset_request_context(token)


app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_server_settings().cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


def error_response(status_code: int, error_code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        {
            "event": "request_rejected",
            "path": request.url.path,
            "method": request.method,
            "error": exc.error_code,
            "details": exc.message,
        }
    )
    return error_response(exc.status_code, exc.error_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    details = "; ".join(problems) or "Invalid request"
    logger.info({"event": "request_rejected", "path": request.url.path, "error": "validation_error", "details": details})
    return error_response(400, "validation_error", details)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize persistence before serving requests."""
    init_db()


def _public_user(account: Account) -> Dict[str, str]:
    fallback = account.email.split("@")[0] or "User"
    return {"id": account.id, "email": account.email, "name": account.full_name or fallback}


def _auth_payload(account: Account) -> Dict[str, Any]:
    return {"token": issue_token(account.id, account.email), "user": _public_user(account)}


@app.get("/api/health")
def health_check() -> dict:
    return {"status": "ok", "service": SERVICE_NAME}


# Auth


@app.post("/api/auth/register")
def register(payload: RegisterPayload, db: Session = Depends(get_session)) -> Dict[str, Any]:
    accounts = AccountRepository(db)
    account = accounts.create_account(
        payload.email,
        hash_password(payload.password),
        full_name=payload.full_name or None,
    )
    LedgerRepository(db, account.id).seed_if_empty()
    logger.info({"event": "account_registered", "account_id": account.id, "email_hash": hash_payload(account.email)})
    return _auth_payload(account)


@app.post("/api/auth/login")
def login(payload: LoginPayload, db: Session = Depends(get_session)) -> Dict[str, Any]:
    account = AccountRepository(db).find_by_email(payload.email)
    if account is None or not verify_password(payload.password, account.password_hash):
        logger.info({"event": "login_failed", "email_hash": hash_payload(payload.email)})
        raise AuthError("Invalid credentials")

    LedgerRepository(db, account.id).seed_if_empty()
    logger.info({"event": "login", "account_id": account.id})
    return _auth_payload(account)


@app.get("/api/auth/me")
def me(account_id: str = Depends(current_account_id), db: Session = Depends(get_session)) -> Dict[str, str]:
    account = AccountRepository(db).get_account(account_id)
    if account is None:
        raise NotFoundError("User not found")
    return _public_user(account)


# Finance


@app.get("/api/finance/state")
def finance_state(account_id: str = Depends(current_account_id), db: Session = Depends(get_session)) -> Dict[str, Any]:
    repo = LedgerRepository(db, account_id)
    if repo.seed_if_empty():
        logger.info({"event": "ledger_seeded", "account_id": account_id})
    return snapshot_to_wire(repo.load_state())


@app.post("/api/finance/reset")
def finance_reset(account_id: str = Depends(current_account_id), db: Session = Depends(get_session)) -> Dict[str, bool]:
    LedgerRepository(db, account_id).reset()
    logger.info({"event": "ledger_reset", "account_id": account_id})
    return {"ok": True}


@app.patch("/api/finance/settings")
def finance_settings(
    payload: SettingsPatch,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, bool]:
    changes = payload.model_dump(exclude_none=True)
    LedgerRepository(db, account_id).update_settings(**changes)
    logger.info(
        {
            "event": "settings_updated",
            "account_id": account_id,
            "changes": redact_fields(changes, LOGGABLE_SETTINGS_FIELDS),
        }
    )
    return {"ok": True}


@app.post("/api/finance/categories")
def create_category(
    payload: CategoryCreate,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, str]:
    category = Category(
        id=payload.id or f"cat_{uuid4().hex}",
        name=payload.name,
        type=payload.type,
        color=payload.color,
        icon=payload.icon,
    )
    LedgerRepository(db, account_id).create_category(category)
    logger.info({"event": "category_created", "account_id": account_id, "category_id": category.id})
    return {"id": category.id}


@app.put("/api/finance/categories/{category_id}")
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, bool]:
    LedgerRepository(db, account_id).update_category(category_id, payload.model_dump(exclude_none=True))
    logger.info({"event": "category_updated", "account_id": account_id, "category_id": category_id})
    return {"ok": True}


@app.delete("/api/finance/categories/{category_id}")
def delete_category(
    category_id: str,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, bool]:
    LedgerRepository(db, account_id).delete_category(category_id)
    logger.info({"event": "category_deleted", "account_id": account_id, "category_id": category_id})
    return {"ok": True}


@app.post("/api/finance/transactions")
def create_transaction(
    payload: TransactionCreate,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, str]:
    transaction = Transaction(
        id=payload.id or str(uuid4()),
        category_id=payload.category_id,
        type=payload.type,
        amount=float(payload.amount),
        date=payload.date,
        merchant=payload.merchant,
        notes=payload.notes,
        tags=tuple(payload.tags),
        is_recurring=payload.is_recurring,
        recurring_rule=payload.recurring_rule,
    )
    LedgerRepository(db, account_id).create_transaction(transaction)
    logger.info(
        {
            "event": "transaction_created",
            "account_id": account_id,
            "transaction_id": transaction.id,
            "type": transaction.type,
        }
    )
    return {"id": transaction.id}


@app.put("/api/finance/transactions/{transaction_id}")
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, bool]:
    changes = payload.model_dump(exclude_none=True)
    LedgerRepository(db, account_id).update_transaction(transaction_id, changes)
    logger.info(
        {
            "event": "transaction_updated",
            "account_id": account_id,
            "transaction_id": transaction_id,
            "fields": sorted(changes),
        }
    )
    return {"ok": True}


@app.delete("/api/finance/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: str,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, bool]:
    LedgerRepository(db, account_id).delete_transaction(transaction_id)
    logger.info({"event": "transaction_deleted", "account_id": account_id, "transaction_id": transaction_id})
    return {"ok": True}


@app.put("/api/finance/budgets")
def put_budget(
    payload: BudgetPut,
    account_id: str = Depends(current_account_id),
    db: Session = Depends(get_session),
) -> Dict[str, str]:
    budget = LedgerRepository(db, account_id).set_budget(
        category_id=payload.category_id or None,
        month=payload.month,
        year=payload.year,
        amount=float(payload.amount),
        rollover_enabled=payload.rollover_enabled,
    )
    logger.info({"event": "budget_set", "account_id": account_id, **budget_to_wire(budget)})
    return {"id": budget.id}
