"""
Assignment and send-back flows on the order lifecycle.

Covers:
    1. take_order — Engineering self-assigns from the queue
    2. return_to_queue — status reset rules and history side effects
    3. assign/clear engineer and manager — Sales/admin only, name resolution
    4. send_back — role-dependent target, reason/note validation, comment first
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import PermissionDenied, TransitionError, ValidationError
from app.models.notification import Notification
from app.models.order import OrderComment, OrderStatusEntry
from app.services import order_lifecycle


# ═════════════════════════════════════════════════════════════════════════════
# 1. take_order
# ═════════════════════════════════════════════════════════════════════════════


class TestTakeOrder:
    def test_engineer_takes_unassigned_order(self, actors, make_order):
        order = make_order(status="ready_for_engineering")
        eng = actors["Engineering"]
        order_lifecycle.take_order(order.id, eng)
        assert order.assigned_engineer_id == eng.id
        assert order.assigned_engineer_name == eng.name
        assert order.assigned_engineer_at is not None
        assert order.status == "ready_for_engineering"

    def test_sales_cannot_take(self, actors, make_order):
        order = make_order(status="ready_for_engineering")
        with pytest.raises(PermissionDenied):
            order_lifecycle.take_order(order.id, actors["Sales"])

    def test_already_assigned_order_cannot_be_taken(self, actors, make_order):
        order = make_order(
            status="ready_for_engineering",
            assigned_engineer_id="other", assigned_engineer_name="Other Engineer",
        )
        with pytest.raises(TransitionError):
            order_lifecycle.take_order(order.id, actors["Engineering"])

    def test_only_queue_status_can_be_taken(self, actors, make_order):
        order = make_order(status="draft")
        with pytest.raises(TransitionError):
            order_lifecycle.take_order(order.id, actors["Engineering"])


# ═════════════════════════════════════════════════════════════════════════════
# 2. return_to_queue
# ═════════════════════════════════════════════════════════════════════════════


class TestReturnToQueue:
    @pytest.mark.parametrize("status", ["in_engineering", "engineering_blocked"])
    def test_active_work_resets_to_queue(self, actors, make_order, status):
        eng = actors["Engineering"]
        order = make_order(
            status=status, assigned_engineer_id=eng.id, assigned_engineer_name=eng.name,
            assigned_engineer_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        )
        order_lifecycle.return_to_queue(order.id, eng)
        assert order.assigned_engineer_id is None
        assert order.assigned_engineer_name is None
        assert order.assigned_engineer_at is None
        assert order.status == "ready_for_engineering"
        entries = OrderStatusEntry.query.filter_by(order_id=order.id).all()
        assert [e.status for e in entries] == ["ready_for_engineering"]

    def test_queued_order_keeps_status_without_history(self, actors, make_order):
        eng = actors["Engineering"]
        order = make_order(
            status="ready_for_engineering", assigned_engineer_id=eng.id, assigned_engineer_name=eng.name,
        )
        order_lifecycle.return_to_queue(order.id, eng)
        assert order.assigned_engineer_id is None
        assert order.status == "ready_for_engineering"
        assert OrderStatusEntry.query.filter_by(order_id=order.id).count() == 0

    def test_only_assigned_engineer_can_return(self, actors, make_order):
        order = make_order(status="in_engineering", assigned_engineer_id="someone-else")
        with pytest.raises(PermissionDenied):
            order_lifecycle.return_to_queue(order.id, actors["Engineering"])

    def test_cannot_return_from_production(self, actors, make_order):
        eng = actors["Engineering"]
        order = make_order(status="ready_for_production", assigned_engineer_id=eng.id)
        with pytest.raises(TransitionError):
            order_lifecycle.return_to_queue(order.id, eng)


# ═════════════════════════════════════════════════════════════════════════════
# 3. Engineer / manager assignment
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignment:
    def test_sales_assigns_engineer_by_user_id(self, actors, users, make_order):
        order = make_order()
        engineer = users["Engineering"]
        order_lifecycle.assign_engineer(order.id, actors["Sales"], engineer_id=engineer.id)
        assert order.assigned_engineer_id == str(engineer.id)
        assert order.assigned_engineer_name == engineer.full_name

    def test_assignment_notifies_tenant_user(self, actors, users, make_order):
        order = make_order()
        engineer = users["Engineering"]
        order_lifecycle.assign_engineer(order.id, actors["Sales"], engineer_id=engineer.id)
        notif = Notification.query.filter_by(type="assignment").one()
        assert notif.user_id == engineer.id
        assert notif.data["kind"] == "engineer"

    def test_external_assignee_needs_a_name(self, actors, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_lifecycle.assign_manager(order.id, actors["Sales"], manager_id="ext-42")
        order_lifecycle.assign_manager(order.id, actors["Sales"], manager_id="ext-42", manager_name="Freelance PM")
        assert order.assigned_manager_name == "Freelance PM"
        assert Notification.query.filter_by(type="assignment").count() == 0

    def test_engineering_cannot_assign(self, actors, users, make_order):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_lifecycle.assign_engineer(order.id, actors["Engineering"], engineer_id=users["Engineering"].id)

    def test_admin_clears_manager(self, actors, make_order):
        order = make_order(assigned_manager_id="1", assigned_manager_name="Someone")
        order_lifecycle.clear_manager(order.id, actors["Admin"])
        assert order.assigned_manager_id is None
        assert order.assigned_manager_name is None
        assert order.assigned_manager_at is None

    def test_missing_engineer_id_is_rejected(self, actors, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_lifecycle.assign_engineer(order.id, actors["Sales"], engineer_id=None)


# ═════════════════════════════════════════════════════════════════════════════
# 4. send_back
# ═════════════════════════════════════════════════════════════════════════════


class TestSendBack:
    @pytest.mark.parametrize("role,status,target", [
        ("Sales", "ready_for_engineering", "draft"),
        ("Sales", "in_engineering", "draft"),
        ("Sales", "engineering_blocked", "draft"),
        ("Engineering", "ready_for_production", "in_engineering"),
        ("Engineering", "in_engineering", "ready_for_engineering"),
        ("Engineering", "engineering_blocked", "ready_for_engineering"),
    ])
    def test_role_dependent_target(self, actors, rules, make_order, role, status, target):
        order = make_order(status=status)
        result = order_lifecycle.send_back(order.id, actors[role], rules, reason="Missing info")
        assert result["new_status"] == target
        assert order.status == target

    def test_comment_records_reason_and_note(self, actors, rules, make_order):
        order = make_order(status="ready_for_engineering")
        order_lifecycle.send_back(
            order.id, actors["Sales"], rules, reason="Incorrect data", note="Wrong width",
        )
        comment = OrderComment.query.filter_by(order_id=order.id).one()
        assert comment.message == "Returned: Incorrect data - Wrong width"
        assert comment.author_role == "Sales"

    def test_note_only_uses_placeholder_reason(self, actors, rules, make_order):
        order = make_order(status="in_engineering")
        result = order_lifecycle.send_back(order.id, actors["Engineering"], rules, note="Need drawings")
        assert result["comment"] == "Returned: No reason selected - Need drawings"

    def test_reason_or_note_required(self, actors, rules, make_order):
        order = make_order(status="in_engineering")
        with pytest.raises(ValidationError):
            order_lifecycle.send_back(order.id, actors["Engineering"], rules, reason="  ", note="")
        assert order.status == "in_engineering"

    def test_unknown_reason_is_rejected(self, actors, rules, make_order):
        order = make_order(status="in_engineering")
        with pytest.raises(ValidationError):
            order_lifecycle.send_back(order.id, actors["Engineering"], rules, reason="Bad vibes")

    def test_production_cannot_send_back(self, actors, rules, make_order):
        order = make_order(status="in_production")
        with pytest.raises(PermissionDenied):
            order_lifecycle.send_back(order.id, actors["Production"], rules, reason="Missing info")

    def test_sales_cannot_send_back_draft(self, actors, rules, make_order):
        order = make_order(status="draft")
        with pytest.raises(TransitionError):
            order_lifecycle.send_back(order.id, actors["Sales"], rules, reason="Missing info")
