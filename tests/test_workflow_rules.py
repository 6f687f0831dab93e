"""
Workflow configuration — rules snapshot, checklist, return reasons,
external-job minimums, order input fields and the hierarchy.

Covers:
    1. Default seeding on first read
    2. update_rules validation and partial merge
    3. Checklist / return reason / job rule / input field CRUD
    4. Hierarchy levels and nodes
    5. API: reads for any actor, writes admin-only
"""

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.hierarchy import HierarchyNode
from app.models.workflow import ReturnReason, WorkflowChecklistItem, WorkflowRules
from app.services import hierarchy_service
from app.services import workflow_rules_service as wrs


# ═════════════════════════════════════════════════════════════════════════════
# 1. Seeding
# ═════════════════════════════════════════════════════════════════════════════


class TestSeeding:
    def test_defaults(self, rules):
        assert rules.min_attachments_for("ready_for_engineering") == 1
        assert rules.min_attachments_for("ready_for_production") == 1
        assert rules.min_attachments_for("in_production") == 0
        assert rules.requires_comment_for("ready_for_engineering") is True
        assert rules.requires_order_inputs_for("ready_for_production") is True
        assert rules.return_reasons == ("Missing info", "Incorrect data", "Awaiting approval")
        assert rules.external_job_min_for("delivered") == 1
        assert rules.external_job_min_for("approved") == 1
        assert rules.external_job_min_for("ordered") == 0
        assert rules.default_category_for("Engineering") == "technical_docs"
        assert rules.required_input_field_ids == ()

        labels = {i.label: i.required_for for i in rules.checklist_items}
        assert labels == {
            "Engineering brief complete": ("ready_for_engineering",),
            "Production files attached": ("ready_for_production",),
        }

    def test_seeding_is_idempotent(self, default_tenant):
        wrs.load_rules_snapshot(default_tenant.id)
        wrs.load_rules_snapshot(default_tenant.id)
        assert WorkflowRules.query.filter_by(tenant_id=default_tenant.id).count() == 1
        assert WorkflowChecklistItem.query.filter_by(tenant_id=default_tenant.id).count() == 2

    def test_snapshot_is_read_only(self, rules):
        with pytest.raises(AttributeError):
            rules.min_attachments_engineering = 5


# ═════════════════════════════════════════════════════════════════════════════
# 2. update_rules
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateRules:
    def test_partial_update(self, default_tenant):
        wrs.update_rules(default_tenant.id, {
            "min_attachments_engineering": 3,
            "require_comment_production": False,
            "status_labels": {"draft": "New"},
        })
        snap = wrs.load_rules_snapshot(default_tenant.id)
        assert snap.min_attachments_engineering == 3
        assert snap.min_attachments_production == 1
        assert snap.require_comment_production is False
        assert snap.status_labels["draft"] == "New"
        assert snap.status_labels["done"]

    @pytest.mark.parametrize("payload,field", [
        ({"min_attachments_engineering": -1}, "min_attachments_engineering"),
        ({"min_attachments_production": "2"}, "min_attachments_production"),
        ({"due_soon_days": True}, "due_soon_days"),
        ({"require_comment_engineering": "yes"}, "require_comment_engineering"),
        ({"status_labels": ["x"]}, "status_labels"),
        ({"attachment_categories": [{"label": "No id"}]}, "attachment_categories"),
    ])
    def test_invalid_values(self, default_tenant, payload, field):
        with pytest.raises(ValidationError) as exc:
            wrs.update_rules(default_tenant.id, payload)
        assert field in exc.value.details


# ═════════════════════════════════════════════════════════════════════════════
# 3. Child configuration
# ═════════════════════════════════════════════════════════════════════════════


class TestChecklistItems:
    def test_create_update_delete(self, default_tenant):
        item = wrs.create_checklist_item(default_tenant.id, {
            "label": "Paint sample approved", "required_for": ["in_production"],
        })
        assert len(wrs.list_checklist_items(default_tenant.id)) == 3

        wrs.update_checklist_item(default_tenant.id, item.id, {"is_active": False})
        snap = wrs.load_rules_snapshot(default_tenant.id)
        assert snap.checklist_items_for("in_production") == []

        wrs.delete_checklist_item(default_tenant.id, item.id)
        assert len(wrs.list_checklist_items(default_tenant.id)) == 2

    def test_unknown_target(self, default_tenant):
        with pytest.raises(ValidationError):
            wrs.create_checklist_item(default_tenant.id, {"label": "X", "required_for": ["done"]})

    def test_missing_item(self, default_tenant):
        with pytest.raises(NotFoundError):
            wrs.update_checklist_item(default_tenant.id, "nope", {"label": "X"})


class TestReturnReasons:
    def test_add_and_soft_remove(self, default_tenant):
        reason = wrs.add_return_reason(default_tenant.id, "Wrong finish")
        assert "Wrong finish" in wrs.load_rules_snapshot(default_tenant.id).return_reasons

        wrs.remove_return_reason(default_tenant.id, reason.id)
        assert "Wrong finish" not in wrs.load_rules_snapshot(default_tenant.id).return_reasons
        assert db.session.get(ReturnReason, reason.id).is_active is False

    def test_blank_label(self, default_tenant):
        with pytest.raises(ValidationError):
            wrs.add_return_reason(default_tenant.id, "   ")


class TestExternalJobRules:
    def test_set_minimum(self, default_tenant):
        wrs.set_external_job_rule(default_tenant.id, "in_progress", 2)
        assert wrs.load_rules_snapshot(default_tenant.id).external_job_min_for("in_progress") == 2

    @pytest.mark.parametrize("status,value", [("shipped", 1), ("ordered", -1), ("ordered", "1")])
    def test_invalid(self, default_tenant, status, value):
        with pytest.raises(ValidationError):
            wrs.set_external_job_rule(default_tenant.id, status, value)


class TestOrderInputFields:
    def test_required_field_appears_in_snapshot(self, default_tenant):
        field_ = wrs.create_order_input_field(default_tenant.id, {
            "key": "width_mm", "label": "Width (mm)", "field_type": "number", "is_required": True,
        })
        assert wrs.load_rules_snapshot(default_tenant.id).required_input_field_ids == (field_.id,)

        wrs.update_order_input_field(default_tenant.id, field_.id, {"is_active": False})
        assert wrs.load_rules_snapshot(default_tenant.id).required_input_field_ids == ()

    def test_duplicate_key(self, default_tenant):
        wrs.create_order_input_field(default_tenant.id, {"key": "color", "label": "Color"})
        with pytest.raises(ConflictError):
            wrs.create_order_input_field(default_tenant.id, {"key": "color", "label": "Colour"})

    def test_delete(self, default_tenant):
        field_ = wrs.create_order_input_field(default_tenant.id, {"key": "color", "label": "Color"})
        wrs.delete_order_input_field(default_tenant.id, field_.id)
        assert wrs.list_order_input_fields(default_tenant.id) == []


# ═════════════════════════════════════════════════════════════════════════════
# 4. Hierarchy
# ═════════════════════════════════════════════════════════════════════════════


class TestHierarchy:
    def test_levels_and_nodes(self, default_tenant):
        tid = default_tenant.id
        level = hierarchy_service.create_level(tid, {"key": "Contract", "label": "Contract"})
        assert level.key == "contract"
        parent = hierarchy_service.create_node(tid, {"level_id": level.id, "label": "VV-1234-26"})
        child = hierarchy_service.create_node(tid, {
            "level_id": level.id, "label": "Phase 2", "parent_id": parent.id,
        })
        assert [n.label for n in hierarchy_service.list_nodes(tid, level.id)] == ["Phase 2", "VV-1234-26"]

        hierarchy_service.delete_node(tid, parent.id)
        assert db.session.get(HierarchyNode, child.id).parent_id is None

    def test_duplicate_level_key(self, default_tenant):
        hierarchy_service.create_level(default_tenant.id, {"key": "category", "label": "Category"})
        with pytest.raises(ConflictError):
            hierarchy_service.create_level(default_tenant.id, {"key": "category", "label": "Again"})

    def test_node_cannot_parent_itself(self, default_tenant):
        level = hierarchy_service.create_level(default_tenant.id, {"key": "product", "label": "Product"})
        node = hierarchy_service.create_node(default_tenant.id, {"level_id": level.id, "label": "Linea"})
        with pytest.raises(ValidationError):
            hierarchy_service.update_node(default_tenant.id, node.id, {"parent_id": node.id})

    def test_delete_level_removes_nodes(self, default_tenant):
        level = hierarchy_service.create_level(default_tenant.id, {"key": "product", "label": "Product"})
        hierarchy_service.create_node(default_tenant.id, {"level_id": level.id, "label": "Linea"})
        hierarchy_service.delete_level(default_tenant.id, level.id)
        assert HierarchyNode.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# 5. API
# ═════════════════════════════════════════════════════════════════════════════


class TestWorkflowApi:
    def test_any_actor_reads_rules(self, client, users, auth_headers):
        res = client.get("/api/v1/workflow/rules", headers=auth_headers(users["Production"]))
        assert res.status_code == 200
        assert res.get_json()["min_attachments_engineering"] == 1

    def test_non_admin_cannot_write(self, client, users, auth_headers):
        res = client.put(
            "/api/v1/workflow/rules", json={"min_attachments_engineering": 0},
            headers=auth_headers(users["Sales"]),
        )
        assert res.status_code == 403

    def test_admin_writes(self, client, users, auth_headers):
        headers = auth_headers(users["Admin"])
        res = client.put("/api/v1/workflow/rules", json={"min_attachments_engineering": 0}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["min_attachments_engineering"] == 0

        res = client.post("/api/v1/workflow/checklist-items", json={
            "label": "QA signed", "required_for": ["in_production"],
        }, headers=headers)
        assert res.status_code == 201

        res = client.get("/api/v1/workflow/checklist-items", headers=headers)
        assert res.get_json()["total"] == 3

    def test_validation_error_is_422(self, client, users, auth_headers):
        res = client.put(
            "/api/v1/workflow/rules", json={"due_soon_days": -2}, headers=auth_headers(users["Admin"]),
        )
        assert res.status_code == 422
        assert "due_soon_days" in res.get_json()["details"]

    def test_role_admin_without_flag_has_rights(self, client, make_user, default_tenant, auth_headers):
        admin = make_user(default_tenant.id, "Admin", email="role-admin@example.com")
        res = client.post(
            "/api/v1/workflow/return-reasons", json={"label": "Wrong size"}, headers=auth_headers(admin),
        )
        assert res.status_code == 201
