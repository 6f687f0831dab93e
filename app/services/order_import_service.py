"""
Order Excel Import Service.

Excel-based bulk order import:
  - Parse an .xlsx workbook (header row + data rows) with openpyxl
  - Deduplicate by order number, last occurrence wins
  - Validate every row before anything is written
  - Upsert by (tenant, order_number) with source=excel
  - Report inserted/updated counts from the pre-upsert set of existing numbers
  - Non-empty notes become comments authored by the importing user
  - Hierarchy:<level> columns mapped onto the tenant's hierarchy levels
  - Template workbook generation
"""

import io
import zipfile
import logging

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.order import Order, OrderComment
from app.models.order_status import LEGACY_STATUS_MAP, ORDER_STATUSES, normalize_order_status
from app.services.hierarchy_service import list_levels
from app.services.order_lifecycle import apply_status
from app.services.order_service import clean_order_fields
from app.services.provenance import can_overwrite

logger = logging.getLogger(__name__)

IMPORT_SOURCE = "excel"
SYSTEM_AUTHOR = "System"

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)


# ═══════════════════════════════════════════════════════════════
# Excel Template
# ═══════════════════════════════════════════════════════════════

TEMPLATE_HEADER = [
    "order_number", "customer_name", "customer_email", "product_name",
    "quantity", "due_date", "priority", "status", "notes",
]
TEMPLATE_EXAMPLE = [
    ["ORD-1001", "Acme AS", "orders@acme.example", "Steel frame", 4, "2026-03-01", "normal", "draft", ""],
    ["ORD-1002", "Nordic Build", "", "Glass panel", 12, "2026-03-15", "high", "", "Rush order"],
]

# Header aliases accepted in uploaded workbooks
_HEADER_ALIASES = {
    "order": "order_number",
    "order_#": "order_number",
    "order_no": "order_number",
    "ordernumber": "order_number",
    "customer": "customer_name",
    "email": "customer_email",
    "product": "product_name",
    "qty": "quantity",
    "due": "due_date",
    "note": "notes",
}
HIERARCHY_PREFIX = "hierarchy:"


def generate_excel_template(levels=()) -> io.BytesIO:
    """Generate an .xlsx template for order import. Returns a BytesIO buffer.

    One ``Hierarchy:<label>`` column is appended per hierarchy level given.
    """
    header = TEMPLATE_HEADER + [f"Hierarchy:{level.label}" for level in levels]
    wb = Workbook()
    ws = wb.active
    ws.title = "Orders"
    ws.append(header)
    for row in TEMPLATE_EXAMPLE:
        ws.append(row + [""] * len(levels))
    for col in range(1, len(header) + 1):
        cell = ws.cell(row=1, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(col)].width = 20

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


# ═══════════════════════════════════════════════════════════════
# Parsing, dedup & validation
# ═══════════════════════════════════════════════════════════════

def _normalize_header(value) -> str:
    key = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
    return _HEADER_ALIASES.get(key, key)


def hierarchy_column_map(levels) -> dict:
    """Normalized ``hierarchy:<label>`` / ``hierarchy:<key>`` header -> level id."""
    mapping = {}
    for level in levels:
        mapping[_normalize_header(HIERARCHY_PREFIX + level.key)] = level.id
        mapping[_normalize_header(HIERARCHY_PREFIX + level.label)] = level.id
    return mapping


def _row_hierarchy(row: dict, columns: dict) -> dict:
    hierarchy = {}
    for header, value in row.items():
        if not header.startswith(HIERARCHY_PREFIX) or value in (None, ""):
            continue
        level_id = columns.get(header)
        if level_id is None:
            logger.debug("Excel import: no hierarchy level for column %s", header)
            continue
        hierarchy[level_id] = str(value).removesuffix(".0") if isinstance(value, float) else str(value)
    return hierarchy


def _cell(value):
    if isinstance(value, str):
        return value.strip()
    return value


def parse_workbook(file_content: bytes) -> list[dict]:
    """
    Parse the first sheet into row dicts keyed by normalized header.

    Every row carries ``row_num`` (1-based sheet row). Fully empty rows are skipped.
    """
    try:
        wb = load_workbook(io.BytesIO(file_content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as exc:
        raise ValidationError("File is not a readable .xlsx workbook", details={"file": str(exc)}) from exc

    try:
        ws = wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row:
            raise ValidationError("Workbook is empty", details={"file": "no header row"})
        headers = [_normalize_header(h) for h in header_row]
        if "order_number" not in headers:
            raise ValidationError(
                "Workbook must have an 'order_number' column. "
                f"Found columns: {', '.join(h for h in headers if h)}",
                details={"file": "missing order_number column"},
            )

        rows = []
        for i, values in enumerate(rows_iter, start=2):
            if values is None or all(v in (None, "") for v in values):
                continue
            row = {"row_num": i}
            for header, value in zip(headers, values):
                if header:
                    row[header] = _cell(value)
            rows.append(row)
        return rows
    finally:
        wb.close()


def dedupe_rows(rows: list[dict]) -> list[dict]:
    """Keep one row per order number; a later row replaces an earlier one."""
    deduped = {}
    for row in rows:
        number = str(row.get("order_number") or "").strip()
        deduped.pop(number, None)
        deduped[number] = row
    return list(deduped.values())


def validate_import_rows(rows: list[dict], hierarchy_columns: dict | None = None) -> dict:
    """
    Validate rows before import.
    Returns {"valid": [...], "errors": [...]}

    ``hierarchy_columns`` comes from ``hierarchy_column_map``; non-empty
    hierarchy cells end up in ``fields["hierarchy"]`` keyed by level id.
    """
    valid = []
    errors = []
    for row in rows:
        row_errors = {}
        data = {k: row.get(k) for k in (
            "order_number", "customer_name", "customer_email", "product_name",
            "quantity", "due_date", "priority",
        ) if k in row}
        if isinstance(data.get("order_number"), (int, float)):
            data["order_number"] = str(data["order_number"]).removesuffix(".0")
        for name in ("order_number", "customer_name", "due_date"):
            if not data.get(name):
                row_errors[name] = "required"
        fields = clean_order_fields(data, row_errors)
        hierarchy = _row_hierarchy(row, hierarchy_columns or {})
        if hierarchy:
            fields["hierarchy"] = hierarchy

        status = row.get("status") or None
        if status and status not in ORDER_STATUSES and status not in LEGACY_STATUS_MAP:
            row_errors["status"] = f"unknown status '{status}'"

        if row_errors:
            errors.append({
                "row_num": row["row_num"],
                "order_number": row.get("order_number"),
                "errors": row_errors,
            })
            continue
        valid.append({
            "row_num": row["row_num"],
            "fields": fields,
            "status": normalize_order_status(status) if status else None,
            "notes": str(row.get("notes") or "").strip(),
        })
    return {"valid": valid, "errors": errors}


# ═══════════════════════════════════════════════════════════════
# Upsert
# ═══════════════════════════════════════════════════════════════

def execute_import(actor, validated_rows: list[dict]) -> dict:
    """
    Upsert validated rows for the actor's tenant.

    Returns {"inserted", "updated", "total"} where ``updated`` counts numbers
    that existed before the import.
    """
    numbers = [r["fields"]["order_number"] for r in validated_rows]
    existing = {
        o.order_number: o
        for o in db.session.execute(
            select(Order).where(Order.tenant_id == actor.tenant_id, Order.order_number.in_(numbers))
        ).scalars().all()
    } if numbers else {}
    existing_numbers = set(existing)

    author = actor.name or SYSTEM_AUTHOR
    for row in validated_rows:
        fields = row["fields"]
        order = existing.get(fields["order_number"])
        if order is None:
            order = Order(
                tenant_id=actor.tenant_id,
                status=row["status"] or "draft",
                source=IMPORT_SOURCE,
                checklist={},
                **fields,
            )
            db.session.add(order)
            db.session.flush()
        else:
            if not can_overwrite(order.source, IMPORT_SOURCE):
                continue
            for name, value in fields.items():
                if name == "hierarchy":
                    value = {**(order.hierarchy or {}), **value}
                setattr(order, name, value)
            order.source = IMPORT_SOURCE
            db.session.flush()
            if row["status"] and row["status"] != order.status:
                apply_status(order, row["status"], actor)

        if row["notes"]:
            db.session.add(OrderComment(
                tenant_id=actor.tenant_id,
                order_id=order.id,
                message=row["notes"],
                author_id=actor.id,
                author_name=author,
                author_role=actor.role,
            ))
    db.session.flush()

    total = len(set(numbers))
    updated = len(existing_numbers)
    return {"inserted": total - updated, "updated": updated, "total": total}


def import_orders_from_excel(actor, file_content: bytes) -> dict:
    """
    Full pipeline: parse → dedupe → validate → upsert.

    Any invalid row rejects the whole file; nothing is written.
    """
    rows = parse_workbook(file_content)
    if not rows:
        raise ValidationError("Workbook has no data rows", details={"file": "empty"})

    deduped = dedupe_rows(rows)
    columns = hierarchy_column_map(list_levels(actor.tenant_id))
    result = validate_import_rows(deduped, columns)
    if result["errors"]:
        raise ValidationError(
            f"{len(result['errors'])} row(s) failed validation",
            details={"rows": result["errors"]},
        )

    counts = execute_import(actor, result["valid"])
    counts["duplicates_removed"] = len(rows) - len(deduped)
    logger.info(
        "Excel import by %s (tenant=%s): %d inserted, %d updated, %d duplicate rows dropped",
        actor.name, actor.tenant_id, counts["inserted"], counts["updated"], counts["duplicates_removed"],
    )
    return counts
