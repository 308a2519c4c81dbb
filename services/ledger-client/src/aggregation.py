from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import List, Optional, Tuple

from shared.ledger_model import Budget, Category, LedgerSnapshot, Transaction


@dataclass(frozen=True, slots=True)
class MonthlyStats:
    total_income: float
    total_expenses: float
    net_amount: float
    budget_total: float
    budget_remaining: float


@dataclass(frozen=True, slots=True)
class BudgetProgress:
    budget: Budget
    spent: float
    percentage: float

    @property
    def is_over_budget(self) -> bool:
        return self.percentage > 100


@dataclass(frozen=True, slots=True)
class CategorySpend:
    category: Category
    total: float
    share: float


@dataclass(frozen=True, slots=True)
class MonthTrend:
    month: int
    year: int
    income: float
    expenses: float
    net: float


@dataclass(frozen=True, slots=True)
class BudgetOverview:
    total_budgeted: float
    total_spent: float
    remaining: float
    over_budget_count: int
    items: Tuple[BudgetProgress, ...]


def calendar_month(timestamp: datetime, tz: Optional[tzinfo] = None) -> Tuple[int, int]:
    """
    Return (month, year) of `timestamp` as seen in `tz`.

    Naive timestamps are taken to already be local. Aware ones are converted to
    `tz`, or to the process's local timezone when `tz` is None.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(tz)
    return timestamp.month, timestamp.year


def monthly_transactions(
    snapshot: LedgerSnapshot, month: int, year: int, tz: Optional[tzinfo] = None
) -> List[Transaction]:
    return [tx for tx in snapshot.transactions if calendar_month(tx.date, tz) == (month, year)]


def category_transactions(
    snapshot: LedgerSnapshot, category_id: str, month: int, year: int, tz: Optional[tzinfo] = None
) -> List[Transaction]:
    return [tx for tx in monthly_transactions(snapshot, month, year, tz) if tx.category_id == category_id]


def monthly_stats(snapshot: LedgerSnapshot, month: int, year: int, tz: Optional[tzinfo] = None) -> MonthlyStats:
    """
    Totals for one calendar month.

    Args:
        snapshot: Current ledger snapshot; not mutated.
        month: Calendar month, 1-12.
        year: Calendar year.
        tz: Timezone used to place transactions in a month.
    Returns:
        MonthlyStats where net_amount = total_income - total_expenses and
        budget_remaining = budget_total - total_expenses. budget_total adds up
        every budget for the month, category and overall alike. Rollover flags
        are not consulted.
    """
    transactions = monthly_transactions(snapshot, month, year, tz)
    total_income = float(sum(tx.amount for tx in transactions if tx.type == "income"))
    total_expenses = float(sum(tx.amount for tx in transactions if tx.type == "expense"))
    budget_total = float(sum(budget.amount for budget in _month_budgets(snapshot, month, year)))

    return MonthlyStats(
        total_income=total_income,
        total_expenses=total_expenses,
        net_amount=total_income - total_expenses,
        budget_total=budget_total,
        budget_remaining=budget_total - total_expenses,
    )


def budget_progress(
    snapshot: LedgerSnapshot, month: int, year: int, tz: Optional[tzinfo] = None
) -> List[BudgetProgress]:
    """
    Spending against each budget of the month, in snapshot order.

    Category budgets count that category's transactions; the overall budget
    counts all expenses. A zero-amount budget reports 0 percent.
    """
    total_expenses: Optional[float] = None
    progress: List[BudgetProgress] = []
    for budget in _month_budgets(snapshot, month, year):
        if budget.category_id:
            spent = float(sum(tx.amount for tx in category_transactions(snapshot, budget.category_id, month, year, tz)))
        else:
            if total_expenses is None:
                total_expenses = monthly_stats(snapshot, month, year, tz).total_expenses
            spent = total_expenses
        percentage = spent / budget.amount * 100 if budget.amount > 0 else 0.0
        progress.append(BudgetProgress(budget=budget, spent=spent, percentage=percentage))
    return progress


def budget_overview(
    snapshot: LedgerSnapshot, month: int, year: int, tz: Optional[tzinfo] = None
) -> BudgetOverview:
    items = budget_progress(snapshot, month, year, tz)
    total_budgeted = float(sum(item.budget.amount for item in items))
    total_spent = float(sum(item.spent for item in items))
    return BudgetOverview(
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        remaining=total_budgeted - total_spent,
        over_budget_count=sum(1 for item in items if item.is_over_budget),
        items=tuple(sorted(items, key=lambda item: item.percentage, reverse=True)),
    )


def category_breakdown(
    snapshot: LedgerSnapshot, month: int, year: int, tz: Optional[tzinfo] = None
) -> List[CategorySpend]:
    """Expense categories with spending this month, largest first; `share` is of total expenses."""
    transactions = monthly_transactions(snapshot, month, year, tz)
    totals = []
    for category in snapshot.categories:
        if category.type != "expense":
            continue
        total = float(sum(tx.amount for tx in transactions if tx.category_id == category.id))
        if total > 0:
            totals.append((category, total))

    grand_total = sum(total for _, total in totals)
    breakdown = [
        CategorySpend(category=category, total=total, share=total / grand_total if grand_total else 0.0)
        for category, total in totals
    ]
    return sorted(breakdown, key=lambda item: item.total, reverse=True)


def monthly_trend(
    snapshot: LedgerSnapshot, month: int, year: int, months: int = 6, tz: Optional[tzinfo] = None
) -> List[MonthTrend]:
    """Income, expenses and net for the `months` calendar months ending at (month, year), oldest first."""
    if months < 1:
        return []

    trend: List[MonthTrend] = []
    for offset in range(months - 1, -1, -1):
        index = year * 12 + (month - 1) - offset
        point_year, point_month = divmod(index, 12)
        stats = monthly_stats(snapshot, point_month + 1, point_year, tz)
        trend.append(
            MonthTrend(
                month=point_month + 1,
                year=point_year,
                income=stats.total_income,
                expenses=stats.total_expenses,
                net=stats.net_amount,
            )
        )
    return trend


def unbudgeted_expense_categories(snapshot: LedgerSnapshot, month: int, year: int) -> List[Category]:
    budgeted = {budget.category_id for budget in _month_budgets(snapshot, month, year)}
    return [
        category for category in snapshot.categories if category.type == "expense" and category.id not in budgeted
    ]


def recent_transactions(snapshot: LedgerSnapshot, limit: int = 5) -> List[Transaction]:
    # timestamp() treats naive values as local time, so naive and aware dates sort together.
    ordered = sorted(snapshot.transactions, key=lambda tx: tx.date.timestamp(), reverse=True)
    return ordered[: max(limit, 0)]


def _month_budgets(snapshot: LedgerSnapshot, month: int, year: int) -> List[Budget]:
    return [budget for budget in snapshot.budgets if budget.month == month and budget.year == year]


TRANSACTION_SORT_KEYS = {
    "date": lambda tx: tx.date.timestamp(),
    "amount": lambda tx: tx.amount,
    "merchant": lambda tx: (tx.merchant or "").casefold(),
}


def filter_transactions(
    snapshot: LedgerSnapshot,
    *,
    search: Optional[str] = None,
    entry_type: Optional[str] = None,
    category_id: Optional[str] = None,
    sort_by: str = "date",
    descending: bool = True,
) -> List[Transaction]:
    """
    Transactions matching every given filter, ordered by `sort_by`.

    `search` matches merchant, notes or any tag, case-insensitively. A None
    filter matches everything. `sort_by` is one of date, amount or merchant;
    a missing merchant sorts as empty text.
    """
    if sort_by not in TRANSACTION_SORT_KEYS:
        raise ValueError(f"sort_by must be one of {', '.join(sorted(TRANSACTION_SORT_KEYS))}")

    needle = search.strip().casefold() if search else ""

    def matches_search(tx: Transaction) -> bool:
        if not needle:
            return True
        haystack = [tx.merchant or "", tx.notes or "", *tx.tags]
        return any(needle in text.casefold() for text in haystack)

    selected = [
        tx
        for tx in snapshot.transactions
        if matches_search(tx)
        and (entry_type is None or tx.type == entry_type)
        and (category_id is None or tx.category_id == category_id)
    ]

    return sorted(selected, key=TRANSACTION_SORT_KEYS[sort_by], reverse=descending)
