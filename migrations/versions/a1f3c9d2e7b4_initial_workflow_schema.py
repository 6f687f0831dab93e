"""initial_workflow_schema

Creates the production workflow tables:
  - tenants, users                         — identity collaborators
  - hierarchy_levels, hierarchy_nodes      — tenant taxonomy
  - workflow_rules + checklist items, return reasons,
    external_job_rules, order_input_fields — per-tenant gate configuration
  - orders + attachments, comments, status history, input values
  - external_jobs + attachments, status history
  - notifications

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-16 09:12:41.218530
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f3c9d2e7b4'
down_revision = None
branch_labels = None
depends_on = None


def _tenant_fk():
    return sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE")


def _tenant_col():
    return sa.Column("tenant_id", sa.Integer(), nullable=False)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Identity ──────────────────────────────────────────────────────────
    if "tenants" not in existing:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("settings", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            _tenant_col(),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column(
                "role", sa.String(length=20), nullable=False,
                comment="Sales | Engineering | Production | Admin",
            ),
            sa.Column("is_admin", sa.Boolean(), nullable=True),
            sa.Column("is_owner", sa.Boolean(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        )
        op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    # ── Hierarchy ─────────────────────────────────────────────────────────
    if "hierarchy_levels" not in existing:
        op.create_table(
            "hierarchy_levels",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("key", sa.String(length=50), nullable=False,
                      comment="contract | category | product | ..."),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "key", name="uq_hierarchy_level_tenant_key"),
        )
        op.create_index("ix_hierarchy_levels_tenant_id", "hierarchy_levels", ["tenant_id"])

    if "hierarchy_nodes" not in existing:
        op.create_table(
            "hierarchy_nodes",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("level_id", sa.String(length=36), nullable=False),
            sa.Column("parent_id", sa.String(length=36), nullable=True),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("code", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["level_id"], ["hierarchy_levels.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["hierarchy_nodes.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_hierarchy_nodes_tenant_id", "hierarchy_nodes", ["tenant_id"])
        op.create_index("ix_hierarchy_nodes_level_id", "hierarchy_nodes", ["level_id"])

    # ── Workflow configuration ────────────────────────────────────────────
    if "workflow_rules" not in existing:
        op.create_table(
            "workflow_rules",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("min_attachments_engineering", sa.Integer(), nullable=False),
            sa.Column("min_attachments_production", sa.Integer(), nullable=False),
            sa.Column("require_comment_engineering", sa.Boolean(), nullable=False),
            sa.Column("require_comment_production", sa.Boolean(), nullable=False),
            sa.Column("require_order_inputs_engineering", sa.Boolean(), nullable=False),
            sa.Column("require_order_inputs_production", sa.Boolean(), nullable=False),
            sa.Column("due_soon_days", sa.Integer(), nullable=False),
            sa.Column("due_indicator_enabled", sa.Boolean(), nullable=False),
            sa.Column("due_indicator_statuses", sa.JSON(), nullable=True),
            sa.Column("status_labels", sa.JSON(), nullable=True),
            sa.Column("external_job_status_labels", sa.JSON(), nullable=True),
            sa.Column("assignment_labels", sa.JSON(), nullable=True),
            sa.Column("attachment_categories", sa.JSON(), nullable=True),
            sa.Column("attachment_category_defaults", sa.JSON(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", name="uq_workflow_rules_tenant"),
        )
        op.create_index("ix_workflow_rules_tenant_id", "workflow_rules", ["tenant_id"])

    if "workflow_checklist_items" not in existing:
        op.create_table(
            "workflow_checklist_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("label", sa.String(length=300), nullable=False),
            sa.Column("required_for", sa.JSON(), nullable=True, comment="List of target statuses"),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_workflow_checklist_items_tenant_id", "workflow_checklist_items", ["tenant_id"])

    if "workflow_return_reasons" not in existing:
        op.create_table(
            "workflow_return_reasons",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_workflow_return_reasons_tenant_id", "workflow_return_reasons", ["tenant_id"])

    if "external_job_rules" not in existing:
        op.create_table(
            "external_job_rules",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("min_attachments", sa.Integer(), nullable=False),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "status", name="uq_external_job_rule_tenant_status"),
        )
        op.create_index("ix_external_job_rules_tenant_id", "external_job_rules", ["tenant_id"])

    if "order_input_fields" not in existing:
        op.create_table(
            "order_input_fields",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("field_type", sa.String(length=30), nullable=True,
                      comment="text | number | date | select | toggle"),
            sa.Column("is_required", sa.Boolean(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "key", name="uq_order_input_field_tenant_key"),
        )
        op.create_index("ix_order_input_fields_tenant_id", "order_input_fields", ["tenant_id"])

    # ── Orders ────────────────────────────────────────────────────────────
    if "orders" not in existing:
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("order_number", sa.String(length=100), nullable=False),
            sa.Column("customer_name", sa.String(length=300), nullable=False),
            sa.Column("customer_email", sa.String(length=300), nullable=True),
            sa.Column("product_name", sa.String(length=300), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("hierarchy", sa.JSON(), nullable=True, comment="level id -> node id / label"),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=40), nullable=False),
            sa.Column("assigned_engineer_id", sa.String(length=64), nullable=True),
            sa.Column("assigned_engineer_name", sa.String(length=200), nullable=True),
            sa.Column("assigned_engineer_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("assigned_manager_id", sa.String(length=64), nullable=True),
            sa.Column("assigned_manager_name", sa.String(length=200), nullable=True),
            sa.Column("assigned_manager_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status_changed_by", sa.String(length=200), nullable=True),
            sa.Column("status_changed_by_role", sa.String(length=30), nullable=True),
            sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("checklist", sa.JSON(), nullable=True, comment="checklist item id -> checked"),
            sa.Column("source", sa.String(length=20), nullable=False,
                      comment="manual | excel | accounting"),
            sa.Column("external_id", sa.String(length=100), nullable=True),
            sa.Column("source_payload", sa.JSON(), nullable=True),
            sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("production_duration_minutes", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "order_number", name="uq_order_tenant_number"),
        )
        op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])

    _order_children = {
        "order_attachments": [
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("url", sa.String(length=1000), nullable=False,
                      comment="Storage path or external URL"),
            sa.Column("added_by_name", sa.String(length=200), nullable=True),
            sa.Column("added_by_role", sa.String(length=30), nullable=True),
            sa.Column("size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=150), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        ],
        "order_comments": [
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("author_id", sa.String(length=64), nullable=True),
            sa.Column("author_name", sa.String(length=200), nullable=False),
            sa.Column("author_role", sa.String(length=30), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        ],
        "order_status_history": [
            sa.Column("status", sa.String(length=40), nullable=False),
            sa.Column("changed_by_name", sa.String(length=200), nullable=True),
            sa.Column("changed_by_role", sa.String(length=30), nullable=True),
            sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        ],
    }
    for table, columns in _order_children.items():
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            *columns,
            _tenant_fk(),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])
        op.create_index(f"ix_{table}_order_id", table, ["order_id"])

    if "order_input_values" not in existing:
        op.create_table(
            "order_input_values",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("field_id", sa.String(length=36), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["field_id"], ["order_input_fields.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_id", "field_id", name="uq_order_input_value_order_field"),
        )
        op.create_index("ix_order_input_values_tenant_id", "order_input_values", ["tenant_id"])
        op.create_index("ix_order_input_values_order_id", "order_input_values", ["order_id"])

    # ── External jobs ─────────────────────────────────────────────────────
    if "external_jobs" not in existing:
        op.create_table(
            "external_jobs",
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("partner_id", sa.String(length=64), nullable=True),
            sa.Column("partner_name", sa.String(length=200), nullable=False),
            sa.Column("partner_email", sa.String(length=300), nullable=True),
            sa.Column("request_mode", sa.String(length=20), nullable=False),
            sa.Column("partner_request_comment", sa.Text(), nullable=True),
            sa.Column("partner_request_sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("partner_request_viewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("partner_request_token_hash", sa.String(length=64), nullable=True),
            sa.Column("partner_request_token_expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("partner_response_submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("partner_response_order_number", sa.String(length=100), nullable=True),
            sa.Column("partner_response_due_date", sa.Date(), nullable=True),
            sa.Column("partner_response_note", sa.Text(), nullable=True),
            sa.Column("external_order_number", sa.String(length=100), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("delivery_note_no", sa.String(length=100), nullable=True),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("received_by", sa.String(length=200), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_external_jobs_tenant_id", "external_jobs", ["tenant_id"])
        op.create_index("ix_external_jobs_order_id", "external_jobs", ["order_id"])
        op.create_index(
            "ix_external_jobs_partner_request_token_hash", "external_jobs",
            ["partner_request_token_hash"],
        )

    _job_children = {
        "external_job_attachments": [
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("url", sa.String(length=1000), nullable=False),
            sa.Column("added_by_name", sa.String(length=200), nullable=True),
            sa.Column("added_by_role", sa.String(length=30), nullable=True),
            sa.Column("size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=150), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        ],
        "external_job_status_history": [
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("changed_by_name", sa.String(length=200), nullable=True),
            sa.Column("changed_by_role", sa.String(length=30), nullable=True),
            sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        ],
    }
    for table, columns in _job_children.items():
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.String(length=36), nullable=False),
            _tenant_col(),
            sa.Column("job_id", sa.String(length=36), nullable=False),
            *columns,
            _tenant_fk(),
            sa.ForeignKeyConstraint(["job_id"], ["external_jobs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])
        op.create_index(f"ix_{table}_job_id", table, ["job_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            _tenant_col(),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("body", sa.Text(), nullable=True),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("audience_roles", sa.JSON(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade():
    for table in (
        "notifications",
        "external_job_status_history", "external_job_attachments", "external_jobs",
        "order_input_values", "order_status_history", "order_comments", "order_attachments",
        "orders",
        "order_input_fields", "external_job_rules", "workflow_return_reasons",
        "workflow_checklist_items", "workflow_rules",
        "hierarchy_nodes", "hierarchy_levels",
        "users", "tenants",
    ):
        op.drop_table(table)
