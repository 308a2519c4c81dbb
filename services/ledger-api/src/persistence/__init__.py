"""Persistence primitives for the ledger API."""

from persistence.database import SessionLocal, get_database_url, get_engine, get_session, init_db
from persistence.models import Account, Base, BudgetRecord, CategoryRecord, SettingsRecord, TransactionRecord
from persistence.repository import AccountRepository, LedgerRepository

__all__ = [
    "Account",
    "AccountRepository",
    "Base",
    "BudgetRecord",
    "CategoryRecord",
    "LedgerRepository",
    "SessionLocal",
    "SettingsRecord",
    "TransactionRecord",
    "get_database_url",
    "get_engine",
    "get_session",
    "init_db",
]
