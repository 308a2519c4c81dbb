"""Pytest configuration for ledger-api tests.

Puts this service's src directory (and the services root, for `shared`) on
sys.path and points the API at a throwaway SQLite file before the
persistence package creates its engine.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Dict

import pytest

SERVICES_ROOT = Path(__file__).resolve().parents[2]
SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
for path in (SERVICES_ROOT, SERVICE_SRC):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault(
    "LEDGER_DB_URL",
    f"sqlite:///{Path(tempfile.mkdtemp(prefix='ledger-api-tests-')) / 'ledger.db'}",
)


@pytest.fixture(autouse=True)
def reset_db():
    from persistence.database import SessionLocal, init_db
    from persistence.models import Account, BudgetRecord, CategoryRecord, SettingsRecord, TransactionRecord

    init_db()
    yield
    session = SessionLocal()
    for model in (TransactionRecord, BudgetRecord, CategoryRecord, SettingsRecord, Account):
        session.query(model).delete()
    session.commit()
    session.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(client) -> Dict[str, str]:
    response = client.post(
        "/api/auth/register",
        json={"email": "ana@example.com", "password": "s3cret!", "fullName": "Ana"},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
