"""
Excel order import — parse, dedupe, validate and upsert.

Covers:
    1. Template generation (header row, example rows)
    2. Header aliases and empty-row skipping
    3. Dedupe: last row per order number wins
    4. Whole-file rejection on any invalid row
    5. Upsert counts, source=excel, notes as comments, legacy status mapping
    6. Provenance: Excel may overwrite manual rows
    7. Display headers ("Order #") and Hierarchy:<level> columns
"""

import io
from datetime import date

import pytest
from openpyxl import Workbook, load_workbook

from app.core.exceptions import ValidationError
from app.models.order import Order, OrderComment
from app.services import order_import_service as imp


def _workbook(rows, header=None):
    wb = Workbook()
    ws = wb.active
    ws.append(header or ["order_number", "customer_name", "due_date", "quantity", "status", "notes"])
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestTemplate:
    def test_template_has_header_and_examples(self):
        wb = load_workbook(imp.generate_excel_template())
        rows = list(wb.active.iter_rows(values_only=True))
        assert list(rows[0]) == imp.TEMPLATE_HEADER
        assert len(rows) == 1 + len(imp.TEMPLATE_EXAMPLE)

    def test_template_round_trips_through_import(self, actors):
        content = imp.generate_excel_template().getvalue()
        result = imp.import_orders_from_excel(actors["Sales"], content)
        assert result["inserted"] == len(imp.TEMPLATE_EXAMPLE)


class TestParsing:
    def test_aliases_and_blank_rows(self):
        content = _workbook(
            [["ORD-1", "Acme", date(2026, 5, 1), 2], [None, None, None, None], ["ORD-2", "Beta", "2026-05-02", 1]],
            header=["Order No", "Customer", "Due", "Qty"],
        )
        rows = imp.parse_workbook(content)
        assert [r["order_number"] for r in rows] == ["ORD-1", "ORD-2"]
        assert rows[0]["customer_name"] == "Acme"
        assert rows[1]["row_num"] == 4

    def test_missing_order_number_column(self):
        content = _workbook([["Acme"]], header=["customer_name"])
        with pytest.raises(ValidationError):
            imp.parse_workbook(content)

    def test_not_a_workbook(self):
        with pytest.raises(ValidationError):
            imp.parse_workbook(b"definitely not a zip file")

    def test_dedupe_keeps_last(self):
        rows = [
            {"row_num": 2, "order_number": "A", "customer_name": "first"},
            {"row_num": 3, "order_number": "B", "customer_name": "only"},
            {"row_num": 4, "order_number": "A", "customer_name": "second"},
        ]
        deduped = imp.dedupe_rows(rows)
        assert [(r["order_number"], r["customer_name"]) for r in deduped] == [("B", "only"), ("A", "second")]


class TestImport:
    def test_inserts_with_excel_source(self, actors):
        content = _workbook([
            ["ORD-1", "Acme", "2026-05-01", 2, "", "Deliver to dock 3"],
            ["ORD-2", "Beta", "01.06.2026", 1, "pending", ""],
        ])
        result = imp.import_orders_from_excel(actors["Sales"], content)
        assert result == {"inserted": 2, "updated": 0, "total": 2, "duplicates_removed": 0}

        first = Order.query.filter_by(order_number="ORD-1").one()
        assert first.source == "excel"
        assert first.status == "draft"
        assert OrderComment.query.filter_by(order_id=first.id).one().message == "Deliver to dock 3"
        assert Order.query.filter_by(order_number="ORD-2").one().due_date == date(2026, 6, 1)

    def test_legacy_status_is_normalized(self, actors):
        content = _workbook([["ORD-1", "Acme", "2026-05-01", 1, "in_progress", ""]])
        imp.import_orders_from_excel(actors["Sales"], content)
        assert Order.query.filter_by(order_number="ORD-1").one().status == "in_engineering"

    def test_duplicates_counted(self, actors):
        content = _workbook([
            ["ORD-1", "Acme", "2026-05-01", 1, "", ""],
            ["ORD-1", "Acme Updated", "2026-05-03", 5, "", ""],
        ])
        result = imp.import_orders_from_excel(actors["Sales"], content)
        assert result["inserted"] == 1
        assert result["duplicates_removed"] == 1
        order = Order.query.filter_by(order_number="ORD-1").one()
        assert order.customer_name == "Acme Updated"
        assert order.quantity == 5

    def test_existing_rows_are_updated(self, actors, make_order):
        existing = make_order(order_number="ORD-1", source="manual")
        content = _workbook([
            ["ORD-1", "Acme Renamed", "2026-07-01", 3, "", ""],
            ["ORD-9", "New Co", "2026-07-02", 1, "", ""],
        ])
        result = imp.import_orders_from_excel(actors["Sales"], content)
        assert result["inserted"] == 1
        assert result["updated"] == 1
        assert existing.customer_name == "Acme Renamed"
        assert existing.source == "excel"

    def test_status_change_on_update_writes_history(self, actors, make_order):
        existing = make_order(order_number="ORD-1")
        content = _workbook([["ORD-1", "Acme", "2026-07-01", 1, "in_engineering", ""]])
        imp.import_orders_from_excel(actors["Sales"], content)
        assert existing.status == "in_engineering"
        assert existing.status_history.count() == 1

    def test_one_bad_row_rejects_file(self, actors):
        content = _workbook([
            ["ORD-1", "Acme", "2026-05-01", 1, "", ""],
            ["ORD-2", "", "not a date", 1, "", ""],
        ])
        with pytest.raises(ValidationError) as exc:
            imp.import_orders_from_excel(actors["Sales"], content)
        rows = exc.value.details["rows"]
        assert rows[0]["row_num"] == 3
        assert set(rows[0]["errors"]) == {"customer_name", "due_date"}
        assert Order.query.count() == 0

    def test_unknown_status_is_a_row_error(self, actors):
        content = _workbook([["ORD-1", "Acme", "2026-05-01", 1, "shipped", ""]])
        with pytest.raises(ValidationError) as exc:
            imp.import_orders_from_excel(actors["Sales"], content)
        assert "status" in exc.value.details["rows"][0]["errors"]

    def test_numeric_order_number_is_stringified(self, actors):
        content = _workbook([[1001, "Acme", "2026-05-01", 1, "", ""]])
        imp.import_orders_from_excel(actors["Sales"], content)
        assert Order.query.one().order_number == "1001"

    def test_header_only_workbook(self, actors):
        with pytest.raises(ValidationError):
            imp.import_orders_from_excel(actors["Sales"], _workbook([]))


# ═════════════════════════════════════════════════════════════════════════════
# Workbook layout with display headers and hierarchy columns
# ═════════════════════════════════════════════════════════════════════════════

DISPLAY_HEADER = [
    "Order #", "Customer Name", "Customer Email", "Product", "Quantity",
    "Due Date", "Priority", "Status", "Notes",
]


@pytest.fixture()
def levels(default_tenant):
    from app.models import db
    from app.services.hierarchy_service import create_level
    created = {
        "contract": create_level(default_tenant.id, {"key": "contract", "label": "Contract"}),
        "product": create_level(default_tenant.id, {"key": "product", "label": "Product Line", "sort_order": 1}),
    }
    db.session.commit()
    return created


class TestHierarchyColumns:
    def test_display_headers_are_accepted(self, actors):
        content = _workbook(
            [["ORD-1", "Acme", "", "Frame", 2, "2026-05-01", "high", "", ""]],
            header=DISPLAY_HEADER,
        )
        result = imp.import_orders_from_excel(actors["Sales"], content)
        assert result["inserted"] == 1
        order = Order.query.one()
        assert order.order_number == "ORD-1"
        assert order.product_name == "Frame"
        assert order.priority == "high"

    def test_hierarchy_cells_map_to_level_ids(self, actors, levels):
        content = _workbook(
            [["ORD-1", "Acme", "", "Frame", 1, "2026-05-01", "", "", "", "K-100", "Facades"]],
            header=DISPLAY_HEADER + ["Hierarchy:Contract", "Hierarchy:Product Line"],
        )
        imp.import_orders_from_excel(actors["Sales"], content)
        assert Order.query.one().hierarchy == {
            levels["contract"].id: "K-100",
            levels["product"].id: "Facades",
        }

    def test_level_key_header_and_unknown_level(self, actors, levels):
        content = _workbook(
            [["ORD-1", "Acme", "2026-05-01", "K-7", "ignored"]],
            header=["order_number", "customer_name", "due_date", "Hierarchy:contract", "Hierarchy:Region"],
        )
        imp.import_orders_from_excel(actors["Sales"], content)
        assert Order.query.one().hierarchy == {levels["contract"].id: "K-7"}

    def test_update_merges_hierarchy(self, actors, levels, make_order):
        existing = make_order(order_number="ORD-1", hierarchy={levels["product"].id: "Glass"})
        content = _workbook(
            [["ORD-1", "Acme", "2026-05-01", "K-9"]],
            header=["order_number", "customer_name", "due_date", "Hierarchy:Contract"],
        )
        imp.import_orders_from_excel(actors["Sales"], content)
        assert existing.hierarchy == {levels["product"].id: "Glass", levels["contract"].id: "K-9"}

    def test_template_has_one_column_per_level(self, actors, levels):
        from app.services.hierarchy_service import list_levels
        buf = imp.generate_excel_template(list_levels(actors["Sales"].tenant_id))
        header = next(load_workbook(buf).active.iter_rows(values_only=True))
        assert list(header) == imp.TEMPLATE_HEADER + ["Hierarchy:Contract", "Hierarchy:Product Line"]
