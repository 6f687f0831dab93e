"""
Order CRUD and child entities.

Covers:
    1. create_order — validation, uniqueness, manager default, first comment
    2. update_order — provenance downgrade, admin status override
    3. delete_order_cascade — explicit child removal with counts
    4. attachments — validation, size limit, role default category
    5. comments — author/admin/owner removal rule
    6. checklist & order-input values
"""

from datetime import date

import pytest

from app.core.exceptions import ConflictError, PermissionDenied, ValidationError
from app.models import db
from app.models.external_job import ExternalJob, ExternalJobAttachment
from app.models.order import Order, OrderAttachment, OrderComment, OrderStatusEntry
from app.services import order_service
from app.services import workflow_rules_service as wrs


def _payload(**overrides):
    data = {
        "order_number": "ORD-9001",
        "customer_name": "Nordic Build",
        "customer_email": "orders@nordic.example",
        "product_name": "Glass panel",
        "quantity": 3,
        "due_date": "2026-12-01",
        "priority": "high",
    }
    data.update(overrides)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# 1. Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateOrder:
    def test_creates_manual_draft(self, actors):
        order = order_service.create_order(actors["Sales"], _payload())
        assert order.status == "draft"
        assert order.source == "manual"
        assert order.due_date == date(2026, 12, 1)
        assert order.quantity == 3

    def test_sales_creator_becomes_manager(self, actors):
        sales = actors["Sales"]
        order = order_service.create_order(sales, _payload())
        assert order.assigned_manager_id == sales.id
        assert order.assigned_manager_name == sales.name

    def test_explicit_manager_wins(self, actors):
        order = order_service.create_order(
            actors["Sales"], _payload(assigned_manager_id="77", assigned_manager_name="Mona Manager"),
        )
        assert order.assigned_manager_id == "77"
        assert order.assigned_manager_name == "Mona Manager"

    def test_engineering_creator_is_not_manager(self, actors):
        order = order_service.create_order(actors["Engineering"], _payload())
        assert order.assigned_manager_id is None

    def test_notes_become_first_comment(self, actors):
        order = order_service.create_order(actors["Sales"], _payload(notes="  Rush please  "))
        comments = OrderComment.query.filter_by(order_id=order.id).all()
        assert [c.message for c in comments] == ["Rush please"]
        assert comments[0].author_id == actors["Sales"].id

    def test_blank_notes_write_no_comment(self, actors):
        order = order_service.create_order(actors["Sales"], _payload(notes="   "))
        assert OrderComment.query.filter_by(order_id=order.id).count() == 0

    def test_product_name_is_optional(self, actors):
        data = _payload()
        del data["product_name"]
        order = order_service.create_order(actors["Sales"], data)
        assert order.product_name is None

    def test_missing_required_fields(self, actors):
        with pytest.raises(ValidationError) as exc:
            order_service.create_order(actors["Sales"], {"customer_name": "X"})
        assert set(exc.value.details) >= {"order_number", "due_date"}

    @pytest.mark.parametrize("field,value", [
        ("customer_email", "not-an-email"),
        ("quantity", 0),
        ("priority", "asap"),
        ("due_date", "31/12/2026"),
        ("status", "shipped"),
    ])
    def test_invalid_field_values(self, actors, field, value):
        with pytest.raises(ValidationError) as exc:
            order_service.create_order(actors["Sales"], _payload(**{field: value}))
        assert field in exc.value.details

    def test_email_is_normalized(self, actors):
        order = order_service.create_order(actors["Sales"], _payload(customer_email="Orders@NORDIC.example"))
        assert order.customer_email == "Orders@nordic.example"

    def test_duplicate_number_conflicts(self, actors):
        order_service.create_order(actors["Sales"], _payload())
        with pytest.raises(ConflictError):
            order_service.create_order(actors["Sales"], _payload(customer_name="Other"))

    def test_same_number_in_other_tenant_is_fine(self, actors, make_user, actor_for):
        from app.models.auth import Tenant
        other = Tenant(name="Other", slug="other")
        db.session.add(other)
        db.session.commit()
        other_sales = actor_for(make_user(other.id, "Sales"))

        order_service.create_order(actors["Sales"], _payload())
        order = order_service.create_order(other_sales, _payload())
        assert order.tenant_id == other.id


# ═════════════════════════════════════════════════════════════════════════════
# 2. Update
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateOrder:
    def test_partial_update(self, actors, make_order):
        order = make_order()
        order_service.update_order(actors["Sales"], order.id, {"quantity": 9, "priority": "urgent"})
        assert order.quantity == 9
        assert order.priority == "urgent"
        assert order.customer_name == "Acme AS"

    def test_edit_downgrades_accounting_to_manual(self, actors, make_order):
        order = make_order(source="accounting")
        order_service.update_order(actors["Sales"], order.id, {"customer_name": "Acme Holding"})
        assert order.source == "manual"

    def test_edit_keeps_excel_source(self, actors, make_order):
        order = make_order(source="excel")
        order_service.update_order(actors["Sales"], order.id, {"quantity": 2})
        assert order.source == "excel"

    def test_renumber_to_existing_conflicts(self, actors, make_order):
        make_order(order_number="ORD-A")
        order = make_order(order_number="ORD-B")
        with pytest.raises(ConflictError):
            order_service.update_order(actors["Sales"], order.id, {"order_number": "ORD-A"})

    def test_status_override_requires_admin(self, actors, make_order):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_service.update_order(actors["Sales"], order.id, {"status": "done"})

    def test_admin_status_override_writes_history(self, actors, make_order):
        order = make_order()
        order_service.update_order(
            actors["Admin"], order.id,
            {"status": "in_production", "status_changed_at": "2026-05-01T08:30:00+00:00"},
        )
        assert order.status == "in_production"
        entry = OrderStatusEntry.query.filter_by(order_id=order.id).one()
        assert entry.status == "in_production"
        assert entry.changed_at.replace(tzinfo=None) == order.status_changed_at.replace(tzinfo=None)
        assert order.status_changed_at.year == 2026 and order.status_changed_at.month == 5

    def test_same_status_writes_no_history(self, actors, make_order):
        order = make_order(status="in_engineering")
        order_service.update_order(actors["Admin"], order.id, {"status": "in_engineering"})
        assert OrderStatusEntry.query.filter_by(order_id=order.id).count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# 3. Cascade delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDeleteOrder:
    def test_removes_every_child(self, actors, rules, make_order):
        sales = actors["Sales"]
        order = make_order()
        order_service.add_attachment(sales, order.id, {"name": "a.pdf", "url": "files/a.pdf"}, rules)
        order_service.add_comment(sales, order.id, "hello")
        order_service.update_order(actors["Admin"], order.id, {"status": "ready_for_engineering"})
        job = ExternalJob(
            tenant_id=order.tenant_id, order_id=order.id, partner_name="Paint Co",
            external_order_number="", due_date=date(2026, 12, 1), status="requested",
        )
        db.session.add(job)
        db.session.flush()
        db.session.add(ExternalJobAttachment(
            tenant_id=order.tenant_id, job_id=job.id, name="x.pdf", url="files/x.pdf",
        ))
        db.session.commit()

        result = order_service.delete_order_cascade(sales, order.id)
        db.session.commit()

        assert result["removed"]["attachments"] == 1
        assert result["removed"]["comments"] == 1
        assert result["removed"]["status_history"] == 1
        assert result["removed"]["external_jobs"] == 1
        assert result["removed"]["external_job_attachments"] == 1
        assert db.session.get(Order, order.id) is None
        assert OrderAttachment.query.count() == 0
        assert ExternalJob.query.count() == 0

    def test_engineering_cannot_delete(self, actors, make_order):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_service.delete_order_cascade(actors["Engineering"], order.id)


# ═════════════════════════════════════════════════════════════════════════════
# 4. Attachments
# ═════════════════════════════════════════════════════════════════════════════


class TestAttachments:
    def test_default_category_follows_role(self, actors, rules, make_order):
        order = make_order()
        att = order_service.add_attachment(
            actors["Engineering"], order.id, {"name": "cad.dwg", "url": "files/cad.dwg"}, rules,
        )
        assert att.category == "technical_docs"
        assert att.added_by_role == "Engineering"

    def test_explicit_category_is_kept(self, actors, rules, make_order):
        order = make_order()
        att = order_service.add_attachment(
            actors["Sales"], order.id, {"name": "p.jpg", "url": "files/p.jpg", "category": "photos"}, rules,
        )
        assert att.category == "photos"

    def test_size_limit(self, actors, rules, make_order):
        order = make_order()
        with pytest.raises(ValidationError) as exc:
            order_service.add_attachment(
                actors["Sales"], order.id,
                {"name": "big.zip", "url": "files/big.zip", "size": 30 * 1024 * 1024},
                rules, max_bytes=25 * 1024 * 1024,
            )
        assert "size" in exc.value.details

    def test_name_and_url_required(self, actors, rules, make_order):
        order = make_order()
        with pytest.raises(ValidationError) as exc:
            order_service.add_attachment(actors["Sales"], order.id, {}, rules)
        assert set(exc.value.details) == {"name", "url"}


# ═════════════════════════════════════════════════════════════════════════════
# 5. Comments
# ═════════════════════════════════════════════════════════════════════════════


class TestComments:
    def test_empty_comment_rejected(self, actors, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.add_comment(actors["Sales"], order.id, "   ")

    def test_author_can_remove(self, actors, make_order):
        order = make_order()
        comment = order_service.add_comment(actors["Sales"], order.id, "mine")
        order_service.remove_comment(actors["Sales"], order.id, comment.id)
        assert OrderComment.query.count() == 0

    def test_other_user_cannot_remove(self, actors, make_order):
        order = make_order()
        comment = order_service.add_comment(actors["Sales"], order.id, "mine")
        with pytest.raises(PermissionDenied):
            order_service.remove_comment(actors["Engineering"], order.id, comment.id)

    def test_admin_can_remove_any(self, actors, make_order):
        order = make_order()
        comment = order_service.add_comment(actors["Sales"], order.id, "mine")
        order_service.remove_comment(actors["Admin"], order.id, comment.id)
        assert OrderComment.query.count() == 0

    def test_owner_can_remove_any(self, default_tenant, make_user, actor_for, actors, make_order):
        owner = actor_for(make_user(default_tenant.id, "Production", email="owner@x.example", is_owner=True))
        order = make_order()
        comment = order_service.add_comment(actors["Sales"], order.id, "mine")
        order_service.remove_comment(owner, order.id, comment.id)
        assert OrderComment.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# 6. Checklist & inputs
# ═════════════════════════════════════════════════════════════════════════════


class TestChecklistAndInputs:
    def test_checklist_merges(self, actors, rules, make_order):
        order = make_order()
        first, second = rules.checklist_items[0], rules.checklist_items[1]
        order_service.set_checklist(actors["Sales"], order.id, {first.id: True}, rules)
        order_service.set_checklist(actors["Sales"], order.id, {second.id: False}, rules)
        assert order.checklist == {first.id: True, second.id: False}

    def test_unknown_checklist_item(self, actors, rules, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.set_checklist(actors["Sales"], order.id, {"nope": True}, rules)

    def test_non_boolean_checklist_value(self, actors, rules, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.set_checklist(actors["Sales"], order.id, {rules.checklist_items[0].id: "yes"}, rules)

    def test_inputs_upsert_by_key_and_id(self, actors, default_tenant, make_order):
        field = wrs.create_order_input_field(default_tenant.id, {"key": "color", "label": "Colour"})
        order = make_order()
        order_service.set_order_inputs(actors["Sales"], order.id, {"color": "white"})
        items = order_service.set_order_inputs(actors["Sales"], order.id, {field.id: "black"})
        assert [(i["key"], i["value"]) for i in items] == [("color", "black")]

    def test_unknown_input_field(self, actors, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.set_order_inputs(actors["Sales"], order.id, {"ghost": 1})
