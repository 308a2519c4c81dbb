"""Pytest configuration for root-level integration tests.

Adds the ledger service and client src directories (and the services root,
for `shared`) to sys.path, and points the API at a throwaway SQLite file.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

SERVICES_ROOT = Path(__file__).resolve().parents[1] / "services"

SERVICE_PATHS = [
    SERVICES_ROOT / "ledger-api" / "src",
    SERVICES_ROOT / "ledger-client" / "src",
    SERVICES_ROOT,
]

for path in SERVICE_PATHS:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

os.environ.setdefault(
    "LEDGER_DB_URL",
    f"sqlite:///{Path(tempfile.mkdtemp(prefix='ledger-integration-')) / 'ledger.db'}",
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clean_db():
    from persistence.database import SessionLocal, init_db
    from persistence.models import Account, BudgetRecord, CategoryRecord, SettingsRecord, TransactionRecord

    init_db()
    yield
    session = SessionLocal()
    for model in (TransactionRecord, BudgetRecord, CategoryRecord, SettingsRecord, Account):
        session.query(model).delete()
    session.commit()
    session.close()
