from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker

from persistence.models import Base, BudgetRecord, SettingsRecord
from persistence.repository import AccountRepository, LedgerRepository
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.ledger_model import AccountSettings, Category, Transaction


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, expire_on_commit=False, future=True)
    engine.dispose()


@pytest.fixture
def account_id(session_factory) -> str:
    with session_factory() as session:
        account = AccountRepository(session).create_account("thu@example.com", "hash")
        LedgerRepository(session, account.id).seed_if_empty()
        return account.id


def _transaction(tx_id: str = "tx-1", category_id: str = "dining") -> Transaction:
    return Transaction(
        id=tx_id,
        category_id=category_id,
        type="expense",
        amount=120000.0,
        date=datetime(2024, 3, 10, 8, 30),
        tags=("coffee",),
    )


def test_ledger_survives_new_engine(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'durable.db'}"
    engine_one = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    Base.metadata.create_all(bind=engine_one)
    with sessionmaker(bind=engine_one, expire_on_commit=False, future=True)() as session:
        account = AccountRepository(session).create_account("durable@example.com", "hash")
        repo = LedgerRepository(session, account.id)
        repo.seed_if_empty()
        repo.create_transaction(_transaction())
        account_id = account.id
    engine_one.dispose()

    engine_two = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    with sessionmaker(bind=engine_two, expire_on_commit=False, future=True)() as session:
        restored = LedgerRepository(session, account_id).load_state()
    engine_two.dispose()

    assert restored.transactions == (_transaction(),)
    assert len(restored.categories) == 8


def test_seed_if_empty_is_idempotent(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        assert repo.seed_if_empty() is False
        assert len(repo.load_state().categories) == 8


def test_seed_if_empty_backfills_missing_settings_only(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.delete_category("healthcare")
        session.execute(delete(SettingsRecord).where(SettingsRecord.account_id == account_id))
        session.commit()

        assert repo.seed_if_empty() is True
        state = repo.load_state()

    assert len(state.categories) == 7
    assert state.settings == AccountSettings(currency="VND", first_day_of_month=1, theme="system")


def test_set_budget_replaces_row_for_same_natural_key(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.set_budget(category_id="dining", month=3, year=2024, amount=1_000_000, rollover_enabled=True)
        updated = repo.set_budget(category_id="dining", month=3, year=2024, amount=1_500_000, rollover_enabled=False)

        rows = session.scalars(select(BudgetRecord).where(BudgetRecord.account_id == account_id)).all()

    assert updated.id == "2024-3-dining"
    assert len(rows) == 1
    assert rows[0].amount == 1_500_000
    assert rows[0].rollover_enabled is False


def test_overall_and_category_budgets_are_distinct_keys(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.set_budget(category_id=None, month=3, year=2024, amount=5, rollover_enabled=False)
        repo.set_budget(category_id="dining", month=3, year=2024, amount=3, rollover_enabled=False)
        repo.set_budget(category_id="dining", month=4, year=2024, amount=4, rollover_enabled=False)

        ids = [budget.id for budget in repo.load_state().budgets]

    assert ids == ["2024-3-dining", "2024-3-overall", "2024-4-dining"]


def test_set_budget_for_unknown_category_is_rejected(session_factory, account_id) -> None:
    with session_factory() as session:
        with pytest.raises(ValidationError):
            LedgerRepository(session, account_id).set_budget(
                category_id="pets", month=3, year=2024, amount=1, rollover_enabled=False
            )


def test_delete_category_in_use_raises_conflict_and_keeps_rows(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.create_transaction(_transaction())
        repo.set_budget(category_id="dining", month=3, year=2024, amount=1, rollover_enabled=False)

        with pytest.raises(ConflictError):
            repo.delete_category("dining")

        state = repo.load_state()

    assert "dining" in {category.id for category in state.categories}
    assert len(state.transactions) == 1
    assert len(state.budgets) == 1


def test_update_settings_merges_fields(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.update_settings(theme="dark")
        merged = repo.update_settings(first_day_of_month=15)

    assert merged.currency == "VND"
    assert merged.theme == "dark"
    assert merged.first_day_of_month == 15


def test_update_transaction_to_unknown_category_is_rejected(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.create_transaction(_transaction())

        with pytest.raises(ValidationError):
            repo.update_transaction("tx-1", {"category_id": "pets"})
        with pytest.raises(NotFoundError):
            repo.update_transaction("tx-404", {"amount": 1.0})

        assert repo.load_state().transactions[0].category_id == "dining"


def test_reset_reseeds_categories_and_settings(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        repo.create_transaction(_transaction())
        repo.set_budget(category_id=None, month=3, year=2024, amount=1, rollover_enabled=False)
        repo.update_settings(currency="EUR")

        repo.reset()
        state = repo.load_state()

    assert state.transactions == ()
    assert state.budgets == ()
    assert len(state.categories) == 8
    assert state.settings.currency == "VND"


def test_create_account_duplicate_email_conflicts(session_factory, account_id) -> None:
    with session_factory() as session:
        with pytest.raises(ConflictError):
            AccountRepository(session).create_account("thu@example.com", "other-hash")


def test_reserved_overall_category_id_is_rejected(session_factory, account_id) -> None:
    with session_factory() as session:
        repo = LedgerRepository(session, account_id)
        with pytest.raises(ValidationError):
            repo.create_category(Category(id="overall", name="All", type="expense", color="#000000", icon="other"))

        assert all(category.id != "overall" for category in repo.load_state().categories)


def test_deleting_an_account_cascades_to_its_ledger() -> None:
    from persistence.database import SessionLocal, get_engine
    from persistence.models import Account, CategoryRecord

    with get_engine().connect() as connection:
        assert connection.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1

    with SessionLocal() as session:
        account = AccountRepository(session).create_account("cascade@example.com", "hash")
        LedgerRepository(session, account.id).seed_if_empty()
        account_id = account.id

    with SessionLocal() as session:
        session.delete(session.get(Account, account_id))
        session.commit()

    with SessionLocal() as session:
        remaining = session.scalars(select(CategoryRecord).where(CategoryRecord.account_id == account_id)).all()
        assert remaining == []
        assert session.get(SettingsRecord, account_id) is None
