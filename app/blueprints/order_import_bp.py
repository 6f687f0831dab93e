"""
Order Import Blueprint — Excel upload and accounting sync.

Endpoints:
  GET  /api/v1/orders/import/template   — Download .xlsx template
  POST /api/v1/orders/import/excel      — Upload & import workbook (multipart "file")
  POST /api/v1/orders/sync/accounting   — Pull orders from the accounting system

Both writers are limited to Sales and admins.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.core.exceptions import PermissionDenied, ValidationError
from app.integrations.accounting import get_accounting_adapter
from app.middleware.permission_required import require_actor
from app.services.accounting_sync_service import sync_accounting_orders
from app.services.hierarchy_service import list_levels
from app.services.order_import_service import generate_excel_template, import_orders_from_excel
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

order_import_bp = Blueprint("order_import", __name__, url_prefix="/api/v1/orders")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _require_sales_or_admin(action):
    if not g.actor.can_manage_assignments:
        raise PermissionDenied(g.actor.id, action, "Sales or admin role required")


def _extract_file_content() -> bytes | None:
    """Extract workbook bytes from a multipart upload or a raw body."""
    if request.files:
        file = request.files.get("file")
        if file:
            return file.read()
    if request.data:
        return request.data
    return None


# ═══════════════════════════════════════════════════════════════
# Template Download
# ═══════════════════════════════════════════════════════════════
@order_import_bp.route("/import/template", methods=["GET"])
@require_actor
def download_template():
    """Download an .xlsx template with the header row, examples and one column per hierarchy level."""
    return send_file(
        generate_excel_template(list_levels(g.actor.tenant_id)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name="order_import_template.xlsx",
    )


# ═══════════════════════════════════════════════════════════════
# Excel Import
# ═══════════════════════════════════════════════════════════════
@order_import_bp.route("/import/excel", methods=["POST"])
@require_actor
def import_excel():
    """Upsert orders from an uploaded workbook; any invalid row rejects the file."""
    _require_sales_or_admin("import_orders")
    content = _extract_file_content()
    if not content:
        raise ValidationError("No file uploaded", details={"file": "required"})

    result = import_orders_from_excel(g.actor, content)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════
# Accounting Sync
# ═══════════════════════════════════════════════════════════════
@order_import_bp.route("/sync/accounting", methods=["POST"])
@require_actor
def sync_accounting():
    """Fetch orders from the configured accounting provider and upsert them."""
    _require_sales_or_admin("sync_accounting")
    cfg = current_app.config
    adapter = get_accounting_adapter(
        cfg.get("ACCOUNTING_PROVIDER"),
        api_url=cfg.get("ACCOUNTING_API_URL"),
        api_token=cfg.get("ACCOUNTING_API_TOKEN"),
    )
    result = sync_accounting_orders(g.actor, adapter)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200
