"""
Deterministic default ledger used for first runs, placeholders and resets.

`build_seed_ledger` is pure: the same `now` always yields the same snapshot.
The server only reuses the categories and settings (see `seed_categories`
and `seed_settings`); sample transactions and budgets are client-side
placeholder data.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Tuple

from .ledger_model import (
    AccountSettings,
    Budget,
    Category,
    LedgerSnapshot,
    Transaction,
    budget_id,
)

SEED_CURRENCY = "VND"

_CATEGORIES: Tuple[Category, ...] = (
    Category(id="dining", name="Ăn Uống", type="expense", color="#ef4444", icon="food"),
    Category(id="transport", name="Giao Thông", type="expense", color="#3b82f6", icon="transport"),
    Category(id="groceries", name="Tạp Hóa", type="expense", color="#10b981", icon="shopping"),
    Category(id="entertainment", name="Giải Trí", type="expense", color="#8b5cf6", icon="entertainment"),
    Category(id="utilities", name="Tiện Ích", type="expense", color="#f59e0b", icon="utilities"),
    Category(id="healthcare", name="Y Tế", type="expense", color="#ec4899", icon="health"),
    Category(id="salary", name="Lương", type="income", color="#10b981", icon="salary"),
    Category(id="freelance", name="Tự Do", type="income", color="#06b6d4", icon="freelance"),
)

# (id, days before now, type, amount, merchant, category, notes, tags, recurring rule)
_SAMPLE_TRANSACTIONS = (
    ("1", 1, "expense", 250_000.0, "Nhà Hàng Địa Phương", "dining", "Ăn tối với gia đình", ("thực phẩm", "gia đình"), None),
    ("2", 2, "expense", 150_000.0, "Grab", "transport", "Đi lại trong ngày", ("di chuyển",), None),
    ("3", 3, "expense", 850_000.0, "Siêu Thị", "groceries", "Mua sắm hàng tuần", ("thực phẩm", "nhà cửa"), None),
    ("4", 4, "income", 3_000_000.0, "Freelance", "freelance", "Dự án phụ", ("thu nhập",), None),
    ("5", 5, "income", 15_000_000.0, "Công ty", "salary", "Lương tháng", ("lương",), "monthly"),
)

_SAMPLE_BUDGETS = (
    ("dining", 3_000_000.0),
    ("transport", 1_500_000.0),
    ("groceries", 4_000_000.0),
)


def seed_categories() -> Tuple[Category, ...]:
    return _CATEGORIES


def seed_settings() -> AccountSettings:
    return AccountSettings(currency=SEED_CURRENCY, first_day_of_month=1, theme="system")


def build_seed_ledger(now: datetime) -> LedgerSnapshot:
    """
    Build the seed ledger relative to `now`.

    Args:
        now: Reference timestamp; transactions land 1-5 days before it and the
            budgets target its calendar month/year.
    Returns:
        LedgerSnapshot with 8 categories, 5 transactions and 3 budgets.
    """

    transactions = tuple(
        Transaction(
            id=tx_id,
            category_id=category_id,
            type=entry_type,
            amount=amount,
            date=now - timedelta(days=days_back),
            merchant=merchant,
            notes=notes,
            tags=tags,
            is_recurring=rule is not None,
            recurring_rule=rule,
        )
        for tx_id, days_back, entry_type, amount, merchant, category_id, notes, tags, rule in _SAMPLE_TRANSACTIONS
    )

    budgets = tuple(
        Budget(
            id=budget_id(category_id, now.month, now.year),
            category_id=category_id,
            month=now.month,
            year=now.year,
            amount=amount,
            rollover_enabled=False,
        )
        for category_id, amount in _SAMPLE_BUDGETS
    )

    return LedgerSnapshot(
        categories=seed_categories(),
        transactions=transactions,
        budgets=budgets,
        settings=seed_settings(),
    )
