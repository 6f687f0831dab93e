"""
Notifications — audience filtering, read tracking and the API.
"""

import pytest

from app.core.exceptions import NotFoundError
from app.models import db
from app.services.notification import NotificationService


@pytest.fixture()
def seeded(default_tenant, users):
    tid = default_tenant.id
    created = {
        "engineering": NotificationService.create(
            tenant_id=tid, title="Queue", audience_roles=["Engineering"],
        ),
        "everyone": NotificationService.create(tenant_id=tid, title="Maintenance tonight"),
        "direct_sales": NotificationService.create(
            tenant_id=tid, title="Assigned", type="assignment", user_id=users["Sales"].id,
        ),
    }
    db.session.commit()
    return created


def _titles(items):
    return sorted(n.title for n in items)


class TestVisibility:
    def test_role_audience(self, default_tenant, users, seeded):
        eng = users["Engineering"]
        items, total = NotificationService.list_for_user(default_tenant.id, eng.id, "Engineering")
        assert total == 2
        assert _titles(items) == ["Maintenance tonight", "Queue"]

    def test_direct_notification_only_for_recipient(self, default_tenant, users, seeded):
        sales = users["Sales"]
        items, _ = NotificationService.list_for_user(default_tenant.id, sales.id, "Sales")
        assert _titles(items) == ["Assigned", "Maintenance tonight"]

        prod = users["Production"]
        items, _ = NotificationService.list_for_user(default_tenant.id, prod.id, "Production")
        assert _titles(items) == ["Maintenance tonight"]

    def test_pagination(self, default_tenant, users, seeded):
        eng = users["Engineering"]
        items, total = NotificationService.list_for_user(default_tenant.id, eng.id, "Engineering", limit=1)
        assert len(items) == 1
        assert total == 2

    def test_status_audience_mapping(self, actors, make_order):
        from app.services.notification import STATUS_AUDIENCE
        order = make_order(status="ready_for_production")
        notif = NotificationService.notify_status_changed(order, "in_engineering", actors["Engineering"])
        assert notif.audience_roles == STATUS_AUDIENCE["ready_for_production"]
        assert notif.data == {"order_id": order.id, "from": "in_engineering", "to": "ready_for_production"}

    def test_unlisted_status_goes_to_everyone(self, actors, make_order):
        order = make_order(status="in_production")
        notif = NotificationService.notify_status_changed(order, "ready_for_production", actors["Production"])
        assert notif.audience_roles is None


class TestReadTracking:
    def test_mark_read(self, default_tenant, users, seeded):
        eng = users["Engineering"]
        notif = NotificationService.mark_read(default_tenant.id, eng.id, "Engineering", seeded["engineering"].id)
        assert notif.is_read
        assert NotificationService.unread_count(default_tenant.id, eng.id, "Engineering") == 1

    def test_cannot_mark_invisible(self, default_tenant, users, seeded):
        prod = users["Production"]
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(default_tenant.id, prod.id, "Production", seeded["direct_sales"].id)

    def test_mark_all_read(self, default_tenant, users, seeded):
        sales = users["Sales"]
        assert NotificationService.mark_all_read(default_tenant.id, sales.id, "Sales") == 2
        assert NotificationService.unread_count(default_tenant.id, sales.id, "Sales") == 0
        # engineering-only broadcast is untouched
        assert seeded["engineering"].read_at is None


class TestNotificationApi:
    def test_list_and_unread_count(self, client, users, auth_headers, seeded):
        headers = auth_headers(users["Engineering"])
        body = client.get("/api/v1/notifications", headers=headers).get_json()
        assert body["total"] == 2
        assert body["unread_count"] == 2

        res = client.get("/api/v1/notifications/unread-count", headers=headers)
        assert res.get_json() == {"count": 2}

    def test_mark_read_endpoints(self, client, users, auth_headers, seeded):
        headers = auth_headers(users["Sales"])
        nid = seeded["direct_sales"].id
        res = client.post(f"/api/v1/notifications/{nid}/read", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        res = client.post("/api/v1/notifications/read-all", headers=headers)
        assert res.get_json() == {"marked_read": 1}

        body = client.get("/api/v1/notifications?unread=1", headers=headers).get_json()
        assert body["items"] == []

    def test_unknown_notification(self, client, users, auth_headers):
        res = client.post("/api/v1/notifications/9999/read", headers=auth_headers(users["Sales"]))
        assert res.status_code == 404

    def test_requires_token(self, client):
        assert client.get("/api/v1/notifications").status_code == 401
