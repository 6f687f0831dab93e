"""
Accounting system adapters.

All reads from an accounting system go through an ``AccountingAdapter``;
services never call ``requests`` directly. The adapter is chosen by the
``ACCOUNTING_PROVIDER`` setting:

  - ``mock`` / ``horizon``: built-in Horizon sample orders
  - ``http``: Horizon-compatible JSON endpoint at ``ACCOUNTING_API_URL``
  - ``visma``: placeholder, returns no orders

No retries: a failed fetch raises AccountingSyncError and the user re-runs
the sync.

Testability: pass a mock ``session`` to HttpAccountingAdapter in tests.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta

import requests

from app.core.exceptions import AccountingSyncError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_HZ_PREFIX = re.compile(r"^hz-?", re.IGNORECASE)


@dataclass(frozen=True)
class AccountingOrder:
    """One order as delivered by an accounting system."""

    external_id: str
    order_number: str
    customer_name: str
    due_date: date
    contract: str | None = None
    category: str | None = None
    product: str | None = None
    product_name: str | None = None
    quantity: int = 1
    priority: str = "normal"
    source_payload: dict = field(default_factory=dict)


def map_horizon_orders(items: list[dict], base_date: date | None = None) -> list[AccountingOrder]:
    """
    Map Horizon order payloads.

    Order numbers become ``HZ-<id without hz- prefix>``; Horizon has no due
    date, so the n-th order is due ``base_date + 7 + n`` days.
    """
    base = base_date or date.today()
    orders = []
    for index, item in enumerate(items):
        raw_id = str(item["id"])
        product = item.get("product") or None
        orders.append(AccountingOrder(
            external_id=raw_id,
            order_number=f"HZ-{_HZ_PREFIX.sub('', raw_id)}",
            customer_name=item.get("customer") or "",
            contract=item.get("contractNo") or None,
            category=item.get("category") or None,
            product=product,
            product_name=product,
            quantity=item.get("quantity") or 1,
            due_date=base + timedelta(days=7 + index),
            priority="normal",
            source_payload=dict(item),
        ))
    return orders


class AccountingAdapter:
    """Base class; subclasses implement ``fetch_orders``."""

    provider = "base"

    def fetch_orders(self) -> list[AccountingOrder]:
        raise NotImplementedError


HORIZON_SAMPLE_ORDERS = [
    {"id": "hz-1001", "contractNo": "VV-1234-26", "customer": "FPgruppen",
     "category": "Wardrobe", "product": "Classic", "quantity": 1, "price": 1200},
    {"id": "hz-1002", "contractNo": "VV-1234-26", "customer": "FPgruppen",
     "category": "Kitchen furniture", "product": "Modern", "quantity": 1, "price": 5000},
    {"id": "hz-1003", "contractNo": "L7-205693-25", "customer": "Woodpainters Production",
     "category": "Sliding doors", "product": "Linea", "quantity": 2, "price": 2100},
    {"id": "hz-1004", "contractNo": "", "customer": "ACME Industries",
     "category": "Custom", "product": "Custom Bracket Assembly", "quantity": 100, "price": 4500},
]


class MockHorizonAdapter(AccountingAdapter):
    provider = "mock"

    def __init__(self, orders: list[dict] | None = None, base_date: date | None = None) -> None:
        self._orders = HORIZON_SAMPLE_ORDERS if orders is None else orders
        self._base_date = base_date

    def fetch_orders(self) -> list[AccountingOrder]:
        return map_horizon_orders(self._orders, self._base_date)


class HttpAccountingAdapter(AccountingAdapter):
    """Reads ``GET <base_url>/orders`` returning ``{"orders": [...]}`` in Horizon shape."""

    provider = "http"

    def __init__(self, base_url: str, token: str | None = None,
                 session: requests.Session | None = None, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def fetch_orders(self) -> list[AccountingOrder]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}/orders"
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as exc:
            logger.warning("Accounting fetch failed url=%s: %s", url, exc)
            raise AccountingSyncError(self.provider, f"request failed: {exc}") from exc
        except ValueError as exc:
            raise AccountingSyncError(self.provider, "response is not valid JSON") from exc

        items = body.get("orders") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise AccountingSyncError(self.provider, "response has no 'orders' list")
        try:
            return map_horizon_orders(items)
        except (KeyError, TypeError) as exc:
            raise AccountingSyncError(self.provider, f"malformed order payload: {exc}") from exc


class VismaAdapter(AccountingAdapter):
    """Placeholder until a Visma API client exists; reports no orders."""

    provider = "visma"

    def fetch_orders(self) -> list[AccountingOrder]:
        return []


def get_accounting_adapter(provider: str | None, *, api_url: str | None = None,
                           api_token: str | None = None,
                           session: requests.Session | None = None) -> AccountingAdapter:
    """Build the adapter for ``provider``; unknown providers fall back to the mock."""
    provider = (provider or "mock").lower()
    if provider in ("mock", "horizon"):
        return MockHorizonAdapter()
    if provider == "http":
        if not api_url:
            raise AccountingSyncError(provider, "ACCOUNTING_API_URL is not configured")
        return HttpAccountingAdapter(api_url, api_token, session=session)
    if provider == "visma":
        return VismaAdapter()
    logger.warning("Unknown accounting provider %r, using mock adapter", provider)
    return MockHorizonAdapter()
