import json
from datetime import datetime
from typing import Any, Callable

import httpx
import pytest
from api_client import LedgerApiClient
from ledger_store import LedgerStore
from local_preferences import InMemoryPreferenceStore
from shared.errors import AuthError, ConflictError, NotFoundError, ValidationError
from shared.ledger_model import LedgerSnapshot, LocalPreferences, snapshot_to_wire
from shared.ledger_settings import ClientSettings
from shared.seed import build_seed_ledger
from sync_coordinator import SyncCoordinator

NOW = datetime(2024, 3, 20, 12, 0)
SETTINGS = ClientSettings(api_base_url="https://ledger.test", timeout_seconds=5.0)


class RecordingApi:
    """MockTransport handler that records calls and answers with canned responses."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond or self._default

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    def bodies(self) -> list[Any]:
        return [json.loads(request.content) if request.content else None for request in self.requests]

    @staticmethod
    def _default(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path.endswith("/transactions"):
            return httpx.Response(201, json={"id": "srv-tx-1"})
        if request.method == "POST" and path.endswith("/categories"):
            return httpx.Response(201, json={"id": "cat_srv"})
        if request.method == "PUT" and path.endswith("/budgets"):
            body = json.loads(request.content)
            scope = body.get("categoryId") or "overall"
            return httpx.Response(200, json={"id": f"{body['year']}-{body['month']}-{scope}"})
        if request.method == "GET" and path.endswith("/state"):
            return httpx.Response(200, json=snapshot_to_wire(build_seed_ledger(NOW)))
        if path.endswith(("/login", "/register")):
            return httpx.Response(200, json={"token": "tok-1", "user": {"id": "acc-1", "email": "ana@example.com"}})
        return httpx.Response(204)


def _coordinator(
    api: RecordingApi,
    *,
    token: str | None = "tok-1",
    snapshot: LedgerSnapshot | None = None,
    preferences: InMemoryPreferenceStore | None = None,
) -> SyncCoordinator:
    client = LedgerApiClient(token=token, transport=httpx.MockTransport(api), settings=SETTINGS)
    store = LedgerStore(snapshot if snapshot is not None else build_seed_ledger(NOW))
    return SyncCoordinator(store, client, preferences, clock=lambda: NOW)


def _valid_draft(**overrides: Any) -> dict[str, Any]:
    draft = {"category_id": "dining", "type": "expense", "amount": 120_000, "date": "2024-03-15T12:00:00"}
    draft.update(overrides)
    return draft


@pytest.mark.anyio
async def test_add_transaction_applies_after_server_confirms() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)

    transaction = await coordinator.add_transaction(_valid_draft(tags=["food"], merchant="Pho 24"))

    assert transaction.id == "srv-tx-1"
    assert coordinator.store.snapshot.transactions[-1] == transaction
    [body] = api.bodies()
    assert body == {
        "categoryId": "dining",
        "type": "expense",
        "amount": 120_000.0,
        "date": "2024-03-15T12:00:00",
        "merchant": "Pho 24",
        "tags": ["food"],
        "isRecurring": False,
    }


@pytest.mark.parametrize(
    "draft",
    [
        _valid_draft(category_id=""),
        _valid_draft(type="transfer"),
        _valid_draft(amount=-1),
        _valid_draft(amount=float("nan")),
        _valid_draft(amount="12"),
        _valid_draft(amount=True),
        _valid_draft(date=None),
        _valid_draft(date="not-a-date"),
        _valid_draft(recurring_rule="daily"),
        _valid_draft(tags="food"),
        _valid_draft(colour="red"),
        _valid_draft(is_recurring="false"),
        _valid_draft(is_recurring=1),
    ],
)
@pytest.mark.anyio
async def test_invalid_transactions_never_reach_the_api(draft: dict[str, Any]) -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)
    before = coordinator.store.snapshot

    with pytest.raises(ValidationError):
        await coordinator.add_transaction(draft)

    assert api.requests == []
    assert coordinator.store.snapshot is before


@pytest.mark.anyio
async def test_rejected_call_leaves_snapshot_untouched() -> None:
    api = RecordingApi(lambda request: httpx.Response(404, json={"error": "not_found", "details": "Transaction not found"}))
    coordinator = _coordinator(api)
    before = coordinator.store.snapshot

    with pytest.raises(NotFoundError):
        await coordinator.update_transaction("1", {"amount": 5})
    with pytest.raises(NotFoundError):
        await coordinator.delete_transaction("1")

    assert coordinator.store.snapshot is before


@pytest.mark.anyio
async def test_mutation_without_token_fails_before_network() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, token=None)

    with pytest.raises(AuthError):
        await coordinator.add_transaction(_valid_draft())

    assert api.requests == []


@pytest.mark.anyio
async def test_update_transaction_sends_only_present_fields() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)

    await coordinator.update_transaction("1", {"amount": 99, "notes": None, "is_recurring": True})

    assert api.bodies() == [{"amount": 99.0, "isRecurring": True}]
    updated = next(tx for tx in coordinator.store.snapshot.transactions if tx.id == "1")
    assert updated.amount == 99.0
    assert updated.is_recurring


@pytest.mark.anyio
async def test_set_budget_twice_keeps_one_budget() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, snapshot=LedgerSnapshot())

    await coordinator.set_budget(category_id="dining", month=3, year=2024, amount=2_000_000)
    budget = await coordinator.set_budget(category_id="dining", month=3, year=2024, amount=3_000_000)

    assert budget.id == "2024-3-dining"
    assert coordinator.store.snapshot.budgets == (budget,)
    assert coordinator.store.snapshot.budgets[0].amount == 3_000_000.0


@pytest.mark.anyio
async def test_overall_budget_omits_category() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, snapshot=LedgerSnapshot())

    budget = await coordinator.set_budget(month=3, year=2024, amount=10)

    assert budget.category_id is None
    assert "categoryId" not in api.bodies()[0]


@pytest.mark.parametrize(
    "overrides",
    [
        {"month": 0},
        {"month": 13},
        {"month": "3"},
        {"month": 3.0},
        {"rollover_enabled": "false"},
        {"rollover_enabled": 0},
    ],
)
@pytest.mark.anyio
async def test_set_budget_validates_fields(overrides: dict[str, Any]) -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)
    fields = {"category_id": "dining", "month": 3, "year": 2024, "amount": 1, **overrides}

    with pytest.raises(ValidationError):
        await coordinator.set_budget(**fields)

    assert api.requests == []


@pytest.mark.anyio
async def test_category_in_use_is_kept_when_delete_conflicts() -> None:
    api = RecordingApi(lambda request: httpx.Response(409, json={"error": "conflict", "details": "Category is in use"}))
    coordinator = _coordinator(api)
    before = coordinator.store.snapshot

    with pytest.raises(ConflictError):
        await coordinator.delete_category("dining")

    assert coordinator.store.snapshot is before
    assert any(category.id == "dining" for category in coordinator.store.snapshot.categories)


@pytest.mark.anyio
async def test_delete_category_cascades_after_confirmation() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)

    await coordinator.delete_category("dining")

    snapshot = coordinator.store.snapshot
    assert all(category.id != "dining" for category in snapshot.categories)
    assert all(budget.category_id != "dining" for budget in snapshot.budgets)


@pytest.mark.anyio
async def test_add_and_update_category() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, snapshot=LedgerSnapshot())

    category = await coordinator.add_category({"name": "Pets", "type": "expense", "color": "#111111", "icon": "paw"})
    await coordinator.update_category(category.id, {"name": "Animals"})

    assert coordinator.store.snapshot.categories[0].name == "Animals"
    assert api.bodies()[1] == {"name": "Animals"}


@pytest.mark.anyio
async def test_local_api_key_never_leaves_the_device() -> None:
    api = RecordingApi()
    preferences = InMemoryPreferenceStore()
    coordinator = _coordinator(api, preferences=preferences)

    settings = await coordinator.update_settings({"theme": "dark", "local_api_key": "sk-local", "timezone": "Asia/Ho_Chi_Minh"})

    assert api.bodies() == [{"theme": "dark"}]
    assert "sk-local" not in api.requests[0].content.decode()
    assert settings.theme == "dark"
    assert settings.local_api_key == "sk-local"
    assert preferences.load() == LocalPreferences(local_api_key="sk-local", timezone="Asia/Ho_Chi_Minh")
    assert coordinator.timezone is not None


@pytest.mark.anyio
async def test_local_only_settings_skip_the_api() -> None:
    api = RecordingApi()
    preferences = InMemoryPreferenceStore(LocalPreferences(local_api_key="old"))
    coordinator = _coordinator(api, preferences=preferences)

    settings = await coordinator.update_settings({"local_api_key": "  "})

    assert api.requests == []
    assert settings.local_api_key is None


@pytest.mark.parametrize(
    "changes",
    [{"first_day_of_month": 29}, {"theme": "neon"}, {"timezone": "Mars/Olympus"}, {"language": "vi"}],
)
@pytest.mark.anyio
async def test_invalid_settings_are_rejected_locally(changes: dict[str, Any]) -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)

    with pytest.raises(ValidationError):
        await coordinator.update_settings(changes)

    assert api.requests == []


@pytest.mark.anyio
async def test_sign_in_loads_state_and_sign_out_restores_seed() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, token=None, snapshot=LedgerSnapshot())

    user = await coordinator.sign_in("ana@example.com", "s3cret!")

    assert user["id"] == "acc-1"
    assert coordinator.is_authenticated
    assert len(coordinator.store.snapshot.categories) == 8
    assert api.requests[1].headers["Authorization"] == "Bearer tok-1"

    coordinator.sign_out()

    assert not coordinator.is_authenticated
    assert coordinator.store.snapshot == build_seed_ledger(NOW)


@pytest.mark.anyio
async def test_reset_reloads_state() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api, snapshot=LedgerSnapshot())

    await coordinator.reset()

    assert [(request.method, request.url.path) for request in api.requests] == [
        ("POST", "/api/finance/reset"),
        ("GET", "/api/finance/state"),
    ]
    assert len(coordinator.store.snapshot.transactions) == 5


@pytest.mark.anyio
async def test_update_transaction_rejects_non_boolean_recurring_flag() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)
    before = coordinator.store.snapshot

    with pytest.raises(ValidationError):
        await coordinator.update_transaction("1", {"is_recurring": "false"})

    assert api.requests == []
    assert coordinator.store.snapshot is before


@pytest.mark.anyio
async def test_reserved_overall_category_id_never_reaches_the_api() -> None:
    api = RecordingApi()
    coordinator = _coordinator(api)

    with pytest.raises(ValidationError):
        await coordinator.add_category(
            {"id": "overall", "name": "All", "type": "expense", "color": "#111111", "icon": "other"}
        )

    assert api.requests == []
