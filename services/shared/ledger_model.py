from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Optional, Tuple

EntryType = Literal["income", "expense"]
RecurringRule = Literal["weekly", "monthly", "yearly"]
Theme = Literal["light", "dark", "system"]

ENTRY_TYPES = frozenset({"income", "expense"})
RECURRING_RULES = frozenset({"weekly", "monthly", "yearly"})
THEMES = frozenset({"light", "dark", "system"})

# Natural-key scope used when a budget covers every expense category.
OVERALL_BUDGET_SCOPE = "overall"

BudgetKey = Tuple[int, int, str]


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    type: EntryType
    color: str
    icon: str


@dataclass(frozen=True, slots=True)
class Transaction:
    id: str
    category_id: str
    type: EntryType
    amount: float
    date: datetime
    merchant: Optional[str] = None
    notes: Optional[str] = None
    tags: Tuple[str, ...] = ()
    is_recurring: bool = False
    # Informational only; nothing generates future transactions from it.
    recurring_rule: Optional[RecurringRule] = None


@dataclass(frozen=True, slots=True)
class Budget:
    """
    Monthly spending limit for one expense category, or for all of them when
    `category_id` is None.

    `rollover_enabled` is stored and round-tripped but no calculation reads it.
    """

    id: str
    category_id: Optional[str]
    month: int
    year: int
    amount: float
    rollover_enabled: bool = False

    @property
    def natural_key(self) -> BudgetKey:
        return budget_key(self.category_id, self.month, self.year)


@dataclass(frozen=True, slots=True)
class AccountSettings:
    """Server-synced preferences for an account."""

    currency: str = "VND"
    first_day_of_month: int = 1
    theme: Theme = "system"


@dataclass(frozen=True, slots=True)
class LocalPreferences:
    """Client-held preferences that never leave the device."""

    local_api_key: Optional[str] = None
    timezone: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Settings:
    """Read-boundary view combining AccountSettings and LocalPreferences."""

    currency: str
    first_day_of_month: int
    theme: Theme
    local_api_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    categories: Tuple[Category, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    budgets: Tuple[Budget, ...] = ()
    settings: AccountSettings = field(default_factory=AccountSettings)


def budget_key(category_id: Optional[str], month: int, year: int) -> BudgetKey:
    return (year, month, category_id or OVERALL_BUDGET_SCOPE)


def budget_id(category_id: Optional[str], month: int, year: int) -> str:
    """Serialize a budget's natural key; this string doubles as its storage id."""
    year_part, month_part, scope = budget_key(category_id, month, year)
    return f"{year_part}-{month_part}-{scope}"


def merge_settings(account: AccountSettings, local: LocalPreferences) -> Settings:
    return Settings(
        currency=account.currency,
        first_day_of_month=account.first_day_of_month,
        theme=account.theme,
        local_api_key=local.local_api_key,
    )


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return datetime.fromisoformat(raw)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


# Wire codecs (camelCase JSON <-> dataclasses)


def category_to_wire(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type,
        "color": category.color,
        "icon": category.icon,
    }


def category_from_wire(payload: Mapping[str, Any]) -> Category:
    return Category(
        id=str(payload["id"]),
        name=payload["name"],
        type=payload["type"],
        color=payload["color"],
        icon=payload["icon"],
    )


def transaction_to_wire(transaction: Transaction) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": transaction.id,
        "categoryId": transaction.category_id,
        "type": transaction.type,
        "amount": transaction.amount,
        "date": format_timestamp(transaction.date),
        "tags": list(transaction.tags),
        "isRecurring": transaction.is_recurring,
    }
    if transaction.merchant is not None:
        payload["merchant"] = transaction.merchant
    if transaction.notes is not None:
        payload["notes"] = transaction.notes
    if transaction.recurring_rule is not None:
        payload["recurringRule"] = transaction.recurring_rule
    return payload


def transaction_from_wire(payload: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=str(payload["id"]),
        category_id=payload["categoryId"],
        type=payload["type"],
        amount=float(payload["amount"]),
        date=parse_timestamp(payload["date"]),
        merchant=payload.get("merchant"),
        notes=payload.get("notes"),
        tags=tuple(payload.get("tags") or ()),
        is_recurring=bool(payload.get("isRecurring", False)),
        recurring_rule=payload.get("recurringRule"),
    )


def budget_to_wire(budget: Budget) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": budget.id,
        "month": budget.month,
        "year": budget.year,
        "amount": budget.amount,
        "rolloverEnabled": budget.rollover_enabled,
    }
    if budget.category_id is not None:
        payload["categoryId"] = budget.category_id
    return payload


def budget_from_wire(payload: Mapping[str, Any]) -> Budget:
    return Budget(
        id=str(payload["id"]),
        category_id=payload.get("categoryId") or None,
        month=int(payload["month"]),
        year=int(payload["year"]),
        amount=float(payload["amount"]),
        rollover_enabled=bool(payload.get("rolloverEnabled", False)),
    )


def settings_to_wire(settings: AccountSettings) -> Dict[str, Any]:
    return {
        "currency": settings.currency,
        "firstDayOfMonth": settings.first_day_of_month,
        "theme": settings.theme,
    }


def settings_from_wire(payload: Mapping[str, Any]) -> AccountSettings:
    defaults = AccountSettings()
    return AccountSettings(
        currency=payload.get("currency") or defaults.currency,
        first_day_of_month=int(payload.get("firstDayOfMonth") or defaults.first_day_of_month),
        theme=payload.get("theme") or defaults.theme,
    )


def snapshot_to_wire(snapshot: LedgerSnapshot) -> Dict[str, Any]:
    return {
        "categories": [category_to_wire(category) for category in snapshot.categories],
        "transactions": [transaction_to_wire(transaction) for transaction in snapshot.transactions],
        "budgets": [budget_to_wire(budget) for budget in snapshot.budgets],
        "settings": settings_to_wire(snapshot.settings),
    }


def snapshot_from_wire(payload: Mapping[str, Any]) -> LedgerSnapshot:
    return LedgerSnapshot(
        categories=tuple(category_from_wire(item) for item in payload.get("categories") or ()),
        transactions=tuple(transaction_from_wire(item) for item in payload.get("transactions") or ()),
        budgets=tuple(budget_from_wire(item) for item in payload.get("budgets") or ()),
        settings=settings_from_wire(payload.get("settings") or {}),
    )
