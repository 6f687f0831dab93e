"""
Accounting integration — adapters, mapping, sync upsert and provenance.

Covers:
    1. Provenance rules (can_overwrite / source_after_edit)
    2. Horizon payload mapping (order number prefix, derived due dates)
    3. HttpAccountingAdapter against a fake requests session
    4. sync_accounting_orders: insert, refresh, skip protected rows, hierarchy mapping
    5. get_accounting_adapter provider selection
"""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
import requests

from app.core.exceptions import AccountingSyncError
from app.integrations.accounting import (
    HORIZON_SAMPLE_ORDERS,
    HttpAccountingAdapter,
    MockHorizonAdapter,
    VismaAdapter,
    get_accounting_adapter,
    map_horizon_orders,
)
from app.models.order import Order
from app.services import hierarchy_service
from app.services.accounting_sync_service import sync_accounting_orders
from app.services.provenance import can_overwrite, source_after_edit


# ═════════════════════════════════════════════════════════════════════════════
# 1. Provenance
# ═════════════════════════════════════════════════════════════════════════════


class TestProvenance:
    @pytest.mark.parametrize("existing,incoming,allowed", [
        (None, "accounting", True),
        ("accounting", "accounting", True),
        ("manual", "accounting", False),
        ("excel", "accounting", False),
        ("manual", "excel", True),
        ("accounting", "manual", True),
    ])
    def test_can_overwrite(self, existing, incoming, allowed):
        assert can_overwrite(existing, incoming) is allowed

    def test_source_after_edit(self):
        assert source_after_edit("accounting") == "manual"
        assert source_after_edit("excel") == "excel"
        assert source_after_edit("manual") == "manual"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Mapping
# ═════════════════════════════════════════════════════════════════════════════


class TestHorizonMapping:
    def test_order_numbers_and_due_dates(self):
        base = date(2026, 1, 1)
        orders = map_horizon_orders(HORIZON_SAMPLE_ORDERS[:2], base_date=base)
        assert [o.order_number for o in orders] == ["HZ-1001", "HZ-1002"]
        assert orders[0].due_date == base + timedelta(days=7)
        assert orders[1].due_date == base + timedelta(days=8)
        assert orders[0].external_id == "hz-1001"
        assert orders[0].contract == "VV-1234-26"

    def test_blank_contract_becomes_none(self):
        orders = map_horizon_orders([HORIZON_SAMPLE_ORDERS[3]])
        assert orders[0].contract is None
        assert orders[0].quantity == 100


# ═════════════════════════════════════════════════════════════════════════════
# 3. HTTP adapter
# ═════════════════════════════════════════════════════════════════════════════


def _fake_session(payload=None, exc=None, status=200):
    session = MagicMock()
    if exc is not None:
        session.get.side_effect = exc
        return session
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    session.get.return_value = resp
    return session


class TestHttpAdapter:
    def test_fetches_and_maps(self):
        session = _fake_session({"orders": HORIZON_SAMPLE_ORDERS})
        adapter = HttpAccountingAdapter("https://acc.example/api/", token="t0k", session=session)
        orders = adapter.fetch_orders()
        assert len(orders) == len(HORIZON_SAMPLE_ORDERS)
        url = session.get.call_args.args[0]
        headers = session.get.call_args.kwargs["headers"]
        assert url == "https://acc.example/api/orders"
        assert headers["Authorization"] == "Bearer t0k"

    def test_connection_error(self):
        adapter = HttpAccountingAdapter(
            "https://acc.example", session=_fake_session(exc=requests.ConnectionError("down")),
        )
        with pytest.raises(AccountingSyncError):
            adapter.fetch_orders()

    def test_http_error(self):
        adapter = HttpAccountingAdapter("https://acc.example", session=_fake_session({}, status=503))
        with pytest.raises(AccountingSyncError):
            adapter.fetch_orders()

    def test_missing_orders_list(self):
        adapter = HttpAccountingAdapter("https://acc.example", session=_fake_session({"data": []}))
        with pytest.raises(AccountingSyncError):
            adapter.fetch_orders()

    def test_malformed_order(self):
        adapter = HttpAccountingAdapter("https://acc.example", session=_fake_session({"orders": [{"customer": "x"}]}))
        with pytest.raises(AccountingSyncError):
            adapter.fetch_orders()


# ═════════════════════════════════════════════════════════════════════════════
# 4. Sync
# ═════════════════════════════════════════════════════════════════════════════


class TestSync:
    def test_inserts_new_orders_as_draft(self, actors):
        result = sync_accounting_orders(actors["Admin"], MockHorizonAdapter())
        assert result["inserted"] == len(HORIZON_SAMPLE_ORDERS)
        assert result["skipped"] == []
        order = Order.query.filter_by(order_number="HZ-1003").one()
        assert order.status == "draft"
        assert order.source == "accounting"
        assert order.synced_at is not None
        assert order.quantity == 2
        assert order.source_payload["contractNo"] == "L7-205693-25"

    def test_resync_refreshes_but_keeps_status(self, actors, make_order):
        existing = make_order(order_number="HZ-1001", source="accounting", status="in_engineering",
                              customer_name="Old Name")
        result = sync_accounting_orders(actors["Admin"], MockHorizonAdapter())
        assert result["updated"] == 1
        assert existing.customer_name == "FPgruppen"
        assert existing.status == "in_engineering"

    @pytest.mark.parametrize("source", ["manual", "excel"])
    def test_protected_rows_are_skipped(self, actors, make_order, source):
        existing = make_order(order_number="HZ-1002", source=source, customer_name="Hand entered")
        result = sync_accounting_orders(actors["Admin"], MockHorizonAdapter())
        assert result["skipped"] == ["HZ-1002"]
        assert result["synced"] == len(HORIZON_SAMPLE_ORDERS) - 1
        assert existing.customer_name == "Hand entered"
        assert existing.source == source

    def test_hierarchy_mapped_by_level_key(self, actors, default_tenant):
        contract = hierarchy_service.create_level(default_tenant.id, {"key": "contract", "label": "Contract"})
        category = hierarchy_service.create_level(default_tenant.id, {"key": "category", "label": "Category"})
        sync_accounting_orders(actors["Admin"], MockHorizonAdapter())
        order = Order.query.filter_by(order_number="HZ-1001").one()
        assert order.hierarchy == {contract.id: "VV-1234-26", category.id: "Wardrobe"}

    def test_empty_fetch(self, actors):
        result = sync_accounting_orders(actors["Admin"], VismaAdapter())
        assert result["fetched"] == 0
        assert result["synced"] == 0
        assert Order.query.count() == 0

    def test_other_tenant_rows_untouched(self, actors, make_user, actor_for):
        from app.models import db
        from app.models.auth import Tenant
        other = Tenant(name="Other", slug="other")
        db.session.add(other)
        db.session.commit()
        sync_accounting_orders(actor_for(make_user(other.id, "Admin", is_admin=True)), MockHorizonAdapter())
        result = sync_accounting_orders(actors["Admin"], MockHorizonAdapter())
        assert result["inserted"] == len(HORIZON_SAMPLE_ORDERS)


# ═════════════════════════════════════════════════════════════════════════════
# 5. Adapter factory
# ═════════════════════════════════════════════════════════════════════════════


class TestAdapterFactory:
    @pytest.mark.parametrize("provider,cls", [
        (None, MockHorizonAdapter),
        ("mock", MockHorizonAdapter),
        ("Horizon", MockHorizonAdapter),
        ("visma", VismaAdapter),
        ("unknown", MockHorizonAdapter),
    ])
    def test_provider_selection(self, provider, cls):
        assert isinstance(get_accounting_adapter(provider), cls)

    def test_http_requires_url(self):
        with pytest.raises(AccountingSyncError):
            get_accounting_adapter("http")

    def test_http_adapter(self):
        adapter = get_accounting_adapter("http", api_url="https://acc.example", api_token="x")
        assert isinstance(adapter, HttpAccountingAdapter)
        assert adapter.token == "x"
