"""
Commit-then-apply sequencing for ledger mutations.

Every user action is validated locally, sent to the ledger API, and only
applied to the LedgerStore once the API has confirmed it. A rejected call
leaves the store exactly as it was and the error reaches the caller
unchanged, so there is never anything to roll back.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from api_client import LedgerApiClient
from ledger_store import (
    AddCategory,
    AddTransaction,
    DeleteCategory,
    DeleteTransaction,
    LedgerStore,
    ReplaceAll,
    SetBudget,
    UpdateCategory,
    UpdateSettings,
    UpdateTransaction,
)
from local_preferences import InMemoryPreferenceStore, LocalPreferenceStore
from shared.errors import ValidationError
from shared.ledger_model import (
    ENTRY_TYPES,
    OVERALL_BUDGET_SCOPE,
    RECURRING_RULES,
    THEMES,
    Budget,
    Category,
    LedgerSnapshot,
    LocalPreferences,
    Settings,
    Transaction,
    format_timestamp,
    merge_settings,
    parse_timestamp,
)
from shared.observability.privacy import redact_fields
from shared.seed import build_seed_ledger

logger = logging.getLogger(__name__)

ACCOUNT_SETTING_FIELDS = {"currency": "currency", "first_day_of_month": "firstDayOfMonth", "theme": "theme"}
LOCAL_SETTING_FIELDS = frozenset({"local_api_key", "timezone"})
TRANSACTION_WIRE_FIELDS = {
    "category_id": "categoryId",
    "type": "type",
    "amount": "amount",
    "date": "date",
    "merchant": "merchant",
    "notes": "notes",
    "tags": "tags",
    "is_recurring": "isRecurring",
    "recurring_rule": "recurringRule",
}
CATEGORY_FIELDS = frozenset({"name", "type", "color", "icon"})


class SyncCoordinator:
    """Keeps a LedgerStore in step with the ledger API for one signed-in user."""

    def __init__(
        self,
        store: LedgerStore,
        api: LedgerApiClient,
        preferences: LocalPreferenceStore | None = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._api = api
        self._preferences = preferences or InMemoryPreferenceStore()
        self._clock = clock
        self._user: Optional[Dict[str, Any]] = None

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None and bool(self._api.token)

    @property
    def settings(self) -> Settings:
        """Account settings merged with device-local preferences."""
        return merge_settings(self._store.snapshot.settings, self._preferences.load())

    @property
    def timezone(self) -> Optional[ZoneInfo]:
        name = self._preferences.load().timezone
        return ZoneInfo(name) if name else None

    # Session

    async def register(self, email: str, password: str, full_name: str | None = None) -> Dict[str, Any]:
        _require_text(email, "email")
        _require_text(password, "password")
        payload = await self._api.register(email, password, full_name)
        return await self._start_session(payload)

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        _require_text(email, "email")
        _require_text(password, "password")
        payload = await self._api.login(email, password)
        return await self._start_session(payload)

    def sign_out(self) -> None:
        """Drop the credential and fall back to the seed placeholder ledger."""
        self._api.set_token(None)
        self._user = None
        self._store.dispatch(ReplaceAll(build_seed_ledger(self._clock())))
        logger.info({"event": "signed_out"})

    async def load(self) -> LedgerSnapshot:
        snapshot = await self._api.fetch_state()
        self._store.dispatch(ReplaceAll(snapshot))
        logger.info(
            {
                "event": "ledger_loaded",
                "categories": len(snapshot.categories),
                "transactions": len(snapshot.transactions),
                "budgets": len(snapshot.budgets),
            }
        )
        return snapshot

    async def reset(self) -> LedgerSnapshot:
        await self._api.reset_ledger()
        logger.info({"event": "ledger_reset"})
        return await self.load()

    async def _start_session(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self._api.set_token(payload["token"])
        self._user = dict(payload["user"])
        logger.info({"event": "signed_in", "account_id": self._user.get("id")})
        await self.load()
        return self._user

    # Transactions

    async def add_transaction(self, draft: Mapping[str, Any]) -> Transaction:
        fields = _transaction_fields(draft, partial=False)
        transaction_id = await self._api.create_transaction(_transaction_wire(fields))
        transaction = Transaction(id=transaction_id, **fields)
        self._store.dispatch(AddTransaction(transaction))
        self._log_commit("add_transaction", transaction_id=transaction_id)
        return transaction

    async def update_transaction(self, transaction_id: str, updates: Mapping[str, Any]) -> None:
        _require_text(transaction_id, "transaction_id")
        fields = _transaction_fields(updates, partial=True)
        if not fields:
            raise ValidationError("No transaction fields to update")
        await self._api.update_transaction(transaction_id, _transaction_wire(fields))
        self._store.dispatch(UpdateTransaction(transaction_id, fields))
        self._log_commit("update_transaction", transaction_id=transaction_id, fields=sorted(fields))

    async def delete_transaction(self, transaction_id: str) -> None:
        _require_text(transaction_id, "transaction_id")
        await self._api.delete_transaction(transaction_id)
        self._store.dispatch(DeleteTransaction(transaction_id))
        self._log_commit("delete_transaction", transaction_id=transaction_id)

    # Categories

    async def add_category(self, draft: Mapping[str, Any]) -> Category:
        _reject_unknown(draft, CATEGORY_FIELDS | {"id"}, "category")
        name = _require_text(draft.get("name"), "name")
        entry_type = _require_choice(draft.get("type"), ENTRY_TYPES, "type")
        color = _require_text(draft.get("color"), "color")
        icon = _require_text(draft.get("icon"), "icon")
        payload = {"name": name, "type": entry_type, "color": color, "icon": icon}
        if draft.get("id") is not None:
            payload["id"] = _require_category_id(draft.get("id"))

        category_id = await self._api.create_category(payload)
        category = Category(id=category_id, name=name, type=entry_type, color=color, icon=icon)
        self._store.dispatch(AddCategory(category))
        self._log_commit("add_category", category_id=category_id)
        return category

    async def update_category(self, category_id: str, updates: Mapping[str, Any]) -> None:
        _require_text(category_id, "category_id")
        _reject_unknown(updates, CATEGORY_FIELDS, "category")
        changes: Dict[str, Any] = {}
        for name, value in updates.items():
            if value is None:
                continue
            if name == "type":
                changes[name] = _require_choice(value, ENTRY_TYPES, "type")
            else:
                changes[name] = _require_text(value, name)
        if not changes:
            raise ValidationError("No category fields to update")

        await self._api.update_category(category_id, changes)
        self._store.dispatch(UpdateCategory(category_id, changes))
        self._log_commit("update_category", category_id=category_id, fields=sorted(changes))

    async def delete_category(self, category_id: str) -> None:
        """
        Delete a category, cascading locally only after the API confirms.

        The API refuses (ConflictError) while transactions reference the
        category; the store keeps the category, its transactions and budgets.
        """
        _require_text(category_id, "category_id")
        await self._api.delete_category(category_id)
        self._store.dispatch(DeleteCategory(category_id))
        self._log_commit("delete_category", category_id=category_id)

    # Budgets

    async def set_budget(
        self,
        *,
        month: Any,
        year: Any,
        amount: Any,
        category_id: Optional[str] = None,
        rollover_enabled: bool = False,
    ) -> Budget:
        month_value = _require_int(month, "month", minimum=1, maximum=12)
        year_value = _require_int(year, "year", minimum=1, maximum=9999)
        amount_value = _require_amount(amount)
        rollover = _require_bool(rollover_enabled, "rollover_enabled")
        scope = category_id or None
        if scope is not None:
            _require_text(scope, "category_id")

        payload: Dict[str, Any] = {
            "month": month_value,
            "year": year_value,
            "amount": amount_value,
            "rolloverEnabled": rollover,
        }
        if scope is not None:
            payload["categoryId"] = scope

        budget_id = await self._api.put_budget(payload)
        budget = Budget(
            id=budget_id,
            category_id=scope,
            month=month_value,
            year=year_value,
            amount=amount_value,
            rollover_enabled=rollover,
        )
        self._store.dispatch(SetBudget(budget))
        self._log_commit("set_budget", budget_id=budget_id)
        return budget

    # Settings

    async def update_settings(self, changes: Mapping[str, Any]) -> Settings:
        """
        Apply a partial settings update.

        Account fields are PATCHed to the API; `local_api_key` and `timezone`
        are written to the local preference store only and never leave the
        device. A blank `local_api_key` clears it.
        """
        _reject_unknown(changes, set(ACCOUNT_SETTING_FIELDS) | LOCAL_SETTING_FIELDS, "settings")

        account_changes: Dict[str, Any] = {}
        if changes.get("currency") is not None:
            account_changes["currency"] = _require_text(changes["currency"], "currency")
        if changes.get("first_day_of_month") is not None:
            account_changes["first_day_of_month"] = _require_int(
                changes["first_day_of_month"], "first_day_of_month", minimum=1, maximum=28
            )
        if changes.get("theme") is not None:
            account_changes["theme"] = _require_choice(changes["theme"], THEMES, "theme")

        local = self._preferences.load()
        local_changed = False
        if "local_api_key" in changes:
            key = _optional_text(changes["local_api_key"], "local_api_key")
            key = key.strip() if key else None
            local = LocalPreferences(local_api_key=key or None, timezone=local.timezone)
            local_changed = True
        if "timezone" in changes:
            local = LocalPreferences(local_api_key=local.local_api_key, timezone=_timezone_name(changes["timezone"]))
            local_changed = True

        if account_changes:
            await self._api.patch_settings(
                {ACCOUNT_SETTING_FIELDS[name]: value for name, value in account_changes.items()}
            )
        if local_changed:
            self._preferences.save(local)
        if account_changes:
            self._store.dispatch(UpdateSettings(account_changes))

        self._log_commit("update_settings", changes=redact_fields(dict(changes), ACCOUNT_SETTING_FIELDS))
        return self.settings

    def _log_commit(self, operation: str, **details: Any) -> None:
        logger.info({"event": "ledger_committed", "operation": operation, **details})


# Local validation: everything here runs before any network call.


def _reject_unknown(values: Mapping[str, Any], allowed: Iterable[str], entity: str) -> None:
    unknown = sorted(set(values) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown {entity} field(s): {', '.join(unknown)}")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_category_id(value: Any) -> str:
    category_id = _require_text(value, "id")
    if category_id == OVERALL_BUDGET_SCOPE:
        raise ValidationError(f"'{OVERALL_BUDGET_SCOPE}' is reserved for the overall budget")
    return category_id


def _require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    options = sorted(choices)
    if value not in options:
        raise ValidationError(f"{field} must be one of {', '.join(options)}")
    return value


def _require_amount(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("amount must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationError("amount must be a finite number >= 0")
    return float(value)


def _require_int(value: Any, field: str, *, minimum: int, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if not minimum <= value <= maximum:
        raise ValidationError(f"{field} must be between {minimum} and {maximum}")
    return value


def _require_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def _require_date(value: Any) -> datetime:
    if value is None or value == "":
        raise ValidationError("date is required")
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise ValidationError("date must be an ISO 8601 timestamp") from exc


def _optional_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value


def _require_tags(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not all(isinstance(tag, str) for tag in value):
        raise ValidationError("tags must be a list of strings")
    return tuple(value)


def _timezone_name(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    name = _require_text(value, "timezone")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone '{name}'") from exc
    return name


def _transaction_fields(values: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    """Validate and normalise transaction fields; `partial` skips absent ones."""
    _reject_unknown(values, TRANSACTION_WIRE_FIELDS, "transaction")

    validators: Dict[str, Callable[[Any], Any]] = {
        "category_id": lambda value: _require_text(value, "category_id"),
        "type": lambda value: _require_choice(value, ENTRY_TYPES, "type"),
        "amount": _require_amount,
        "date": _require_date,
        "merchant": lambda value: _optional_text(value, "merchant"),
        "notes": lambda value: _optional_text(value, "notes"),
        "tags": _require_tags,
        "is_recurring": lambda value: _require_bool(value, "is_recurring"),
        "recurring_rule": lambda value: _require_choice(value, RECURRING_RULES, "recurring_rule"),
    }
    required = () if partial else ("category_id", "type", "amount", "date")

    fields: Dict[str, Any] = {}
    for name, validate in validators.items():
        value = values.get(name)
        if value is None:
            if name in required:
                validate(value)
            continue
        fields[name] = validate(value)

    if not partial:
        fields.setdefault("tags", ())
        fields.setdefault("is_recurring", False)
    return fields


def _transaction_wire(fields: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "date":
            value = format_timestamp(value)
        elif name == "tags":
            value = list(value)
        payload[TRANSACTION_WIRE_FIELDS[name]] = value
    return payload
