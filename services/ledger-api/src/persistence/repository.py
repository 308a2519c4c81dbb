"""Account and ledger data access helpers."""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from persistence.models import Account, BudgetRecord, CategoryRecord, SettingsRecord, TransactionRecord
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.ledger_model import (
    AccountSettings,
    Budget,
    Category,
    OVERALL_BUDGET_SCOPE,
    LedgerSnapshot,
    Transaction,
    budget_id,
    budget_key,
    format_timestamp,
    parse_timestamp,
)
from shared.seed import seed_categories, seed_settings

CATEGORY_FIELDS = frozenset({"name", "type", "color", "icon"})
TRANSACTION_FIELDS = frozenset(
    {"category_id", "type", "amount", "date", "merchant", "notes", "tags", "is_recurring", "recurring_rule"}
)


class AccountRepository:
    """Credential-side persistence: account rows only, never ledger data."""

    def __init__(self, db: Session):
        self._db = db

    def create_account(self, email: str, password_hash: str, full_name: str | None = None) -> Account:
        if self.find_by_email(email) is not None:
            raise ConflictError("Email already exists")

        record = Account(id=str(uuid4()), email=email, password_hash=password_hash, full_name=full_name)
        self._db.add(record)
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise ConflictError("Email already exists") from exc
        self._db.refresh(record)
        return record

    def find_by_email(self, email: str) -> Account | None:
        return self._db.scalars(select(Account).where(Account.email == email)).first()

    def get_account(self, account_id: str) -> Account | None:
        return self._db.get(Account, account_id)


class LedgerRepository:
    """
    Ledger persistence for a single account.

    Every public method runs as one unit of work: it either commits all of its
    rows or raises before anything is written.
    """

    def __init__(self, db: Session, account_id: str):
        self._db = db
        self._account_id = account_id

    # Seeding and reset

    def seed_if_empty(self) -> bool:
        """
        Insert the seed categories and/or settings when the account lacks them.

        Covers fresh registrations and accounts created before seeding existed.
        Returns True when anything was written.
        """

        seeded = self._stage_seed()
        if seeded:
            self._db.commit()
        return seeded

    def reset(self) -> None:
        """Clear every ledger row, then reseed categories and settings in the same commit."""
        for model in (TransactionRecord, BudgetRecord, CategoryRecord, SettingsRecord):
            self._db.execute(delete(model).where(model.account_id == self._account_id))
        self._db.flush()
        self._stage_seed()
        self._db.commit()

    def _stage_seed(self) -> bool:
        category_count = self._db.scalar(
            select(func.count()).select_from(CategoryRecord).where(CategoryRecord.account_id == self._account_id)
        )
        has_settings = self._db.get(SettingsRecord, self._account_id) is not None
        if category_count and has_settings:
            return False

        if not has_settings:
            defaults = seed_settings()
            self._db.add(
                SettingsRecord(
                    account_id=self._account_id,
                    currency=defaults.currency,
                    first_day_of_month=defaults.first_day_of_month,
                    theme=defaults.theme,
                )
            )
        if not category_count:
            self._db.add_all(self._category_record(category) for category in seed_categories())
        return True

    # Reads

    def load_state(self) -> LedgerSnapshot:
        categories = self._db.scalars(
            select(CategoryRecord)
            .where(CategoryRecord.account_id == self._account_id)
            .order_by(CategoryRecord.created_at, CategoryRecord.id)
        ).all()
        records = self._db.scalars(
            select(TransactionRecord).where(TransactionRecord.account_id == self._account_id)
        ).all()
        # occurred_at is ISO text with arbitrary offsets; order by the instant, newest first.
        transactions = sorted(
            (_to_transaction(record) for record in records),
            key=lambda transaction: transaction.date.timestamp(),
            reverse=True,
        )
        budgets = self._db.scalars(
            select(BudgetRecord)
            .where(BudgetRecord.account_id == self._account_id)
            .order_by(BudgetRecord.year, BudgetRecord.month, BudgetRecord.scope)
        ).all()
        settings = self._db.get(SettingsRecord, self._account_id)

        return LedgerSnapshot(
            categories=tuple(_to_category(record) for record in categories),
            transactions=tuple(transactions),
            budgets=tuple(_to_budget(record) for record in budgets),
            settings=_to_settings(settings) if settings else seed_settings(),
        )

    # Settings

    def update_settings(
        self,
        *,
        currency: Optional[str] = None,
        first_day_of_month: Optional[int] = None,
        theme: Optional[str] = None,
    ) -> AccountSettings:
        """
        Merge the provided fields over the stored settings row.

        This is a read-modify-write: two concurrent updates for the same account
        can lose one of the writes. Accepted under the single-writer model.
        """

        record = self._db.get(SettingsRecord, self._account_id)
        if record is None:
            defaults = seed_settings()
            record = SettingsRecord(
                account_id=self._account_id,
                currency=defaults.currency,
                first_day_of_month=defaults.first_day_of_month,
                theme=defaults.theme,
            )
            self._db.add(record)

        if currency is not None:
            record.currency = currency
        if first_day_of_month is not None:
            record.first_day_of_month = first_day_of_month
        if theme is not None:
            record.theme = theme

        self._db.commit()
        return _to_settings(record)

    # Categories

    def create_category(self, category: Category) -> Category:
        if category.id == OVERALL_BUDGET_SCOPE:
            raise ValidationError(f"'{OVERALL_BUDGET_SCOPE}' is reserved for the overall budget")
        if self._get_category(category.id) is not None:
            raise ConflictError("Category already exists")
        self._db.add(self._category_record(category))
        self._db.commit()
        return category

    def update_category(self, category_id: str, changes: Mapping[str, Any]) -> Category:
        record = self._get_category(category_id)
        if record is None:
            raise NotFoundError("Category not found")
        for name, value in changes.items():
            if name in CATEGORY_FIELDS and value is not None:
                setattr(record, name, value)
        self._db.commit()
        return _to_category(record)

    def delete_category(self, category_id: str) -> None:
        """
        Delete a category together with the budgets keyed to it.

        Refused with ConflictError while any transaction still references the
        category; nothing is deleted in that case.
        """

        record = self._get_category(category_id)
        if record is None:
            raise NotFoundError("Category not found")

        in_use = self._db.scalar(
            select(func.count())
            .select_from(TransactionRecord)
            .where(TransactionRecord.account_id == self._account_id, TransactionRecord.category_id == category_id)
        )
        if in_use:
            raise ConflictError("Category is in use")

        self._db.execute(
            delete(BudgetRecord).where(
                BudgetRecord.account_id == self._account_id,
                BudgetRecord.category_id == category_id,
            )
        )
        self._db.delete(record)
        self._db.commit()

    # Transactions

    def create_transaction(self, transaction: Transaction) -> Transaction:
        self._require_category(transaction.category_id)
        if self._get_transaction(transaction.id) is not None:
            raise ConflictError("Transaction already exists")

        self._db.add(
            TransactionRecord(
                account_id=self._account_id,
                id=transaction.id,
                category_id=transaction.category_id,
                type=transaction.type,
                amount=transaction.amount,
                occurred_at=format_timestamp(transaction.date),
                merchant=transaction.merchant,
                notes=transaction.notes,
                tags=list(transaction.tags),
                is_recurring=transaction.is_recurring,
                recurring_rule=transaction.recurring_rule,
            )
        )
        self._db.commit()
        return transaction

    def update_transaction(self, transaction_id: str, changes: Mapping[str, Any]) -> Transaction:
        record = self._get_transaction(transaction_id)
        if record is None:
            raise NotFoundError("Transaction not found")

        applied = {name: value for name, value in changes.items() if name in TRANSACTION_FIELDS and value is not None}
        if "category_id" in applied:
            self._require_category(applied["category_id"])

        for name, value in applied.items():
            if name == "date":
                record.occurred_at = format_timestamp(value)
            elif name == "tags":
                record.tags = list(value)
            else:
                setattr(record, name, value)
        self._db.commit()
        return _to_transaction(record)

    def delete_transaction(self, transaction_id: str) -> None:
        record = self._get_transaction(transaction_id)
        if record is None:
            raise NotFoundError("Transaction not found")
        self._db.delete(record)
        self._db.commit()

    # Budgets

    def set_budget(
        self,
        *,
        category_id: Optional[str],
        month: int,
        year: int,
        amount: float,
        rollover_enabled: bool,
    ) -> Budget:
        """
        Upsert the budget for (year, month, category or overall).

        `merge` targets the natural-key primary key, so an existing row is
        replaced wholesale in the same commit instead of delete-then-insert.
        """

        if category_id:
            self._require_category(category_id)

        key_year, key_month, scope = budget_key(category_id, month, year)
        record = BudgetRecord(
            account_id=self._account_id,
            year=key_year,
            month=key_month,
            scope=scope,
            id=budget_id(category_id, month, year),
            category_id=category_id or None,
            amount=amount,
            rollover_enabled=rollover_enabled,
        )
        merged = self._db.merge(record)
        self._db.commit()
        return _to_budget(merged)

    # Helpers

    def _get_category(self, category_id: str) -> CategoryRecord | None:
        return self._db.get(CategoryRecord, (self._account_id, category_id))

    def _get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        return self._db.get(TransactionRecord, (self._account_id, transaction_id))

    def _require_category(self, category_id: str) -> None:
        if self._get_category(category_id) is None:
            raise ValidationError(f"Unknown category '{category_id}'")

    def _category_record(self, category: Category) -> CategoryRecord:
        return CategoryRecord(
            account_id=self._account_id,
            id=category.id,
            name=category.name,
            type=category.type,
            color=category.color,
            icon=category.icon,
        )


def _to_category(record: CategoryRecord) -> Category:
    return Category(id=record.id, name=record.name, type=record.type, color=record.color, icon=record.icon)


def _to_transaction(record: TransactionRecord) -> Transaction:
    return Transaction(
        id=record.id,
        category_id=record.category_id,
        type=record.type,
        amount=record.amount,
        date=parse_timestamp(record.occurred_at),
        merchant=record.merchant,
        notes=record.notes,
        tags=tuple(record.tags or ()),
        is_recurring=bool(record.is_recurring),
        recurring_rule=record.recurring_rule,
    )


def _to_budget(record: BudgetRecord) -> Budget:
    return Budget(
        id=record.id,
        category_id=record.category_id,
        month=record.month,
        year=record.year,
        amount=record.amount,
        rollover_enabled=bool(record.rollover_enabled),
    )


def _to_settings(record: SettingsRecord) -> AccountSettings:
    return AccountSettings(
        currency=record.currency,
        first_day_of_month=record.first_day_of_month,
        theme=record.theme,
    )
