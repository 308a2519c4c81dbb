"""
Client-side ledger state.

`apply` is the pure transition function over a closed set of actions;
`LedgerStore` owns the current snapshot and is passed explicitly to whatever
reads or dispatches. Transitions never perform I/O and never fail halfway:
they either return a new snapshot or raise TypeError for an action type that
does not belong to the set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, TypeVar, Union

from shared.ledger_model import AccountSettings, Budget, Category, LedgerSnapshot, Transaction

logger = logging.getLogger(__name__)

_Entity = TypeVar("_Entity", Category, Transaction, AccountSettings)


@dataclass(frozen=True, slots=True)
class AddTransaction:
    transaction: Transaction


@dataclass(frozen=True, slots=True)
class UpdateTransaction:
    transaction_id: str
    updates: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class DeleteTransaction:
    transaction_id: str


@dataclass(frozen=True, slots=True)
class AddCategory:
    category: Category


@dataclass(frozen=True, slots=True)
class UpdateCategory:
    category_id: str
    updates: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class DeleteCategory:
    """Local cascade for a deletion the server has already confirmed."""

    category_id: str


@dataclass(frozen=True, slots=True)
class SetBudget:
    budget: Budget


@dataclass(frozen=True, slots=True)
class UpdateSettings:
    changes: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ReplaceAll:
    snapshot: LedgerSnapshot


LedgerAction = Union[
    AddTransaction,
    UpdateTransaction,
    DeleteTransaction,
    AddCategory,
    UpdateCategory,
    DeleteCategory,
    SetBudget,
    UpdateSettings,
    ReplaceAll,
]


def apply(snapshot: LedgerSnapshot, action: LedgerAction) -> LedgerSnapshot:
    """Return the snapshot that results from applying `action` to `snapshot`."""

    if isinstance(action, AddTransaction):
        return replace(snapshot, transactions=snapshot.transactions + (action.transaction,))

    if isinstance(action, UpdateTransaction):
        return replace(
            snapshot,
            transactions=tuple(
                _merge(tx, action.updates) if tx.id == action.transaction_id else tx for tx in snapshot.transactions
            ),
        )

    if isinstance(action, DeleteTransaction):
        return replace(
            snapshot,
            transactions=tuple(tx for tx in snapshot.transactions if tx.id != action.transaction_id),
        )

    if isinstance(action, AddCategory):
        return replace(snapshot, categories=snapshot.categories + (action.category,))

    if isinstance(action, UpdateCategory):
        return replace(
            snapshot,
            categories=tuple(
                _merge(category, action.updates) if category.id == action.category_id else category
                for category in snapshot.categories
            ),
        )

    if isinstance(action, DeleteCategory):
        category_id = action.category_id
        return replace(
            snapshot,
            categories=tuple(category for category in snapshot.categories if category.id != category_id),
            transactions=tuple(tx for tx in snapshot.transactions if tx.category_id != category_id),
            budgets=tuple(budget for budget in snapshot.budgets if budget.category_id != category_id),
        )

    if isinstance(action, SetBudget):
        key = action.budget.natural_key
        kept = tuple(budget for budget in snapshot.budgets if budget.natural_key != key)
        return replace(snapshot, budgets=kept + (action.budget,))

    if isinstance(action, UpdateSettings):
        return replace(snapshot, settings=_merge(snapshot.settings, action.changes))

    if isinstance(action, ReplaceAll):
        return action.snapshot

    raise TypeError(f"Unsupported ledger action: {type(action).__name__}")


def _merge(entity: _Entity, updates: Mapping[str, Any]) -> _Entity:
    """Shallow-merge known fields; `id` and unknown keys are ignored."""
    allowed = {item.name for item in fields(entity)} - {"id"}
    changes = {name: value for name, value in updates.items() if name in allowed}
    if "tags" in changes:
        changes["tags"] = tuple(changes["tags"] or ())
    return replace(entity, **changes) if changes else entity


class LedgerStore:
    """Holds the authoritative client copy of one account's ledger."""

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None) -> None:
        self._snapshot = snapshot if snapshot is not None else LedgerSnapshot()

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    def dispatch(self, action: LedgerAction) -> LedgerSnapshot:
        self._snapshot = apply(self._snapshot, action)
        logger.debug({"event": "ledger_action", "action": type(action).__name__})
        return self._snapshot
