"""
HTTP client for the /api/v1 order endpoints.

Every method returns the server's authoritative order dict (or list of
dicts). Non-2xx responses raise OrderApiError carrying the API error code.

Testability: pass a mock ``session`` instead of letting the client create
a real requests.Session.
"""

from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


class OrderApiError(Exception):
    """Raised when the API answers with an error, or cannot be reached."""

    def __init__(self, message: str, status: int | None = None, code: str | None = None,
                 details: dict | None = None) -> None:
        self.status = status
        self.code = code
        self.details = details or {}
        super().__init__(message)


class OrderApiClient:
    def __init__(self, base_url: str, token: str, session: requests.Session | None = None,
                 timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _request(self, method: str, path: str, *, json_body: dict | None = None, params: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method, url,
                json=json_body,
                params=params,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise OrderApiError(f"Request failed: {exc}") from exc

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            raise OrderApiError(
                body.get("error", f"HTTP {resp.status_code}"),
                status=resp.status_code,
                code=body.get("code"),
                details=body.get("details"),
            )
        return body

    # ── Reads ────────────────────────────────────────────────────────────

    def list_orders(self, **filters) -> list[dict]:
        params = dict(filters)
        params.setdefault("limit", 1000)
        return self._request("GET", "/api/v1/orders", params=params)["items"]

    def get_order(self, order_id: str) -> dict:
        return self._request("GET", f"/api/v1/orders/{order_id}")

    # ── Mutations ────────────────────────────────────────────────────────

    def create_order(self, data: dict) -> dict:
        return self._request("POST", "/api/v1/orders", json_body=data)

    def update_order(self, order_id: str, patch: dict) -> dict:
        return self._request("PUT", f"/api/v1/orders/{order_id}", json_body=patch)

    def delete_order(self, order_id: str) -> dict:
        return self._request("DELETE", f"/api/v1/orders/{order_id}")

    def transition(self, order_id: str, action: str) -> dict:
        return self._request("POST", f"/api/v1/orders/{order_id}/transition",
                             json_body={"action": action})["order"]

    def send_back(self, order_id: str, reason: str | None = None, note: str | None = None) -> dict:
        return self._request("POST", f"/api/v1/orders/{order_id}/send-back",
                             json_body={"reason": reason, "note": note})["order"]

    def take(self, order_id: str) -> dict:
        return self._request("POST", f"/api/v1/orders/{order_id}/take")

    def return_to_queue(self, order_id: str) -> dict:
        return self._request("POST", f"/api/v1/orders/{order_id}/return-to-queue")

    def assign_engineer(self, order_id: str, engineer_id: str, engineer_name: str | None = None) -> dict:
        return self._request("PUT", f"/api/v1/orders/{order_id}/engineer",
                             json_body={"engineer_id": engineer_id, "engineer_name": engineer_name})

    def assign_manager(self, order_id: str, manager_id: str, manager_name: str | None = None) -> dict:
        return self._request("PUT", f"/api/v1/orders/{order_id}/manager",
                             json_body={"manager_id": manager_id, "manager_name": manager_name})
