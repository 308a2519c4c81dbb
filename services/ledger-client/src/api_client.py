import logging
import time
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import httpx
from shared.errors import AuthError, LedgerError, error_from_payload
from shared.ledger_model import LedgerSnapshot, snapshot_from_wire
from shared.ledger_settings import ClientSettings, load_client_settings
from shared.observability.telemetry import CORRELATION_ID_HEADER

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0


@dataclass
class RequestMetrics:
    status_code: int
    latency_ms: float


class LedgerApiClient:
    """
    Async httpx wrapper for the ledger API.

    Each call is a single attempt: failures surface immediately, classified
    into the shared error taxonomy for error responses, or as the original
    httpx.RequestError for transport problems. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: httpx.Timeout | float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: ClientSettings | None = None,
    ) -> None:
        settings = settings or load_client_settings()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._timeout = timeout or httpx.Timeout(settings.timeout_seconds, connect=DEFAULT_CONNECT_TIMEOUT)
        self._transport = transport
        self._token = token
        self.last_metrics: RequestMetrics | None = None

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        authenticated: bool = True,
        request_id: str | None = None,
    ) -> Any:
        if authenticated and not self._token:
            raise AuthError("Not authenticated")

        request_id = request_id or str(uuid4())
        url = f"{self._base_url}{path}"
        headers = self._build_headers(request_id, authenticated)
        start_time = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method=method.upper(), url=url, headers=headers, json=json)
        except httpx.RequestError as exc:
            self._log_failure(url, method, request_id, self._latency(start_time), error=str(exc))
            raise

        self.last_metrics = RequestMetrics(status_code=response.status_code, latency_ms=self._latency(start_time))
        if response.is_error:
            error = error_from_payload(response.status_code, _safe_json(response))
            self._log_failure(
                url,
                method,
                request_id,
                self.last_metrics.latency_ms,
                status_code=response.status_code,
                error=error.error_code,
            )
            raise error

        self._log_success(url, method, request_id, self.last_metrics)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Auth

    async def register(self, email: str, password: str, full_name: str | None = None) -> dict[str, Any]:
        body = {"email": email, "password": password}
        if full_name:
            body["fullName"] = full_name
        return await self.request("POST", "/api/auth/register", json=body, authenticated=False)

    async def login(self, email: str, password: str) -> dict[str, Any]:
        return await self.request(
            "POST", "/api/auth/login", json={"email": email, "password": password}, authenticated=False
        )

    async def me(self) -> dict[str, Any]:
        return await self.request("GET", "/api/auth/me")

    # Finance

    async def fetch_state(self) -> LedgerSnapshot:
        return snapshot_from_wire(await self.request("GET", "/api/finance/state"))

    async def reset_ledger(self) -> None:
        await self.request("POST", "/api/finance/reset")

    async def patch_settings(self, changes: Mapping[str, Any]) -> None:
        await self.request("PATCH", "/api/finance/settings", json=dict(changes))

    async def create_category(self, payload: Mapping[str, Any]) -> str:
        return _issued_id(await self.request("POST", "/api/finance/categories", json=dict(payload)))

    async def update_category(self, category_id: str, changes: Mapping[str, Any]) -> None:
        await self.request("PUT", f"/api/finance/categories/{_segment(category_id)}", json=dict(changes))

    async def delete_category(self, category_id: str) -> None:
        await self.request("DELETE", f"/api/finance/categories/{_segment(category_id)}")

    async def create_transaction(self, payload: Mapping[str, Any]) -> str:
        return _issued_id(await self.request("POST", "/api/finance/transactions", json=dict(payload)))

    async def update_transaction(self, transaction_id: str, changes: Mapping[str, Any]) -> None:
        await self.request("PUT", f"/api/finance/transactions/{_segment(transaction_id)}", json=dict(changes))

    async def delete_transaction(self, transaction_id: str) -> None:
        await self.request("DELETE", f"/api/finance/transactions/{_segment(transaction_id)}")

    async def put_budget(self, payload: Mapping[str, Any]) -> str:
        return _issued_id(await self.request("PUT", "/api/finance/budgets", json=dict(payload)))

    def _build_headers(self, request_id: str, authenticated: bool) -> MutableMapping[str, str]:
        headers: MutableMapping[str, str] = {CORRELATION_ID_HEADER: request_id}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _latency(self, start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _log_success(self, url: str, method: str, request_id: str, metrics: RequestMetrics) -> None:
        logger.info(
            {
                "event": "ledger_api_request",
                "outcome": "success",
                "url": url,
                "method": method.upper(),
                "status_code": metrics.status_code,
                "request_id": request_id,
                "latency_ms": metrics.latency_ms,
            }
        )

    def _log_failure(
        self,
        url: str,
        method: str,
        request_id: str,
        latency_ms: float,
        *,
        error: str,
        status_code: int | None = None,
    ) -> None:
        logger.warning(
            {
                "event": "ledger_api_request",
                "outcome": "failure",
                "url": url,
                "method": method.upper(),
                "status_code": status_code,
                "request_id": request_id,
                "latency_ms": latency_ms,
                "error": error,
            }
        )


def _segment(value: str) -> str:
    return quote(value, safe="")


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _issued_id(payload: Any) -> str:
    if not isinstance(payload, dict) or not payload.get("id"):
        raise LedgerError("Ledger API response did not include an id")
    return str(payload["id"])
