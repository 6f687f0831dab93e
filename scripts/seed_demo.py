#!/usr/bin/env python3
"""
Production Workflow System — Demo Seed.

Creates one demo tenant with a user per role, the default workflow rules,
a contract/category/product hierarchy, a handful of orders spread across
the lifecycle and the accounting sample orders. Prints a bearer token per
user so the API can be exercised right away.

Usage:
    python scripts/seed_demo.py              # Reset DB + seed
    python scripts/seed_demo.py --no-reset   # Seed on top of existing data
    python scripts/seed_demo.py --slug acme  # Custom tenant slug
"""

import argparse
import sys
from datetime import date, timedelta

sys.path.insert(0, ".")

from app import create_app
from app.core.actor import Actor
from app.integrations.accounting import MockHorizonAdapter
from app.models import db
from app.models.auth import Tenant, User
from app.services import hierarchy_service, order_lifecycle, order_service
from app.services.accounting_sync_service import sync_accounting_orders
from app.services.jwt_service import token_for_user
from app.services.workflow_rules_service import load_rules_snapshot

DEMO_USERS = [
    ("sales@demo.example", "Sara Sales", "Sales", False),
    ("eng@demo.example", "Erik Engineer", "Engineering", False),
    ("prod@demo.example", "Per Production", "Production", False),
    ("admin@demo.example", "Anna Admin", "Admin", True),
]

DEMO_ORDERS = [
    ("ORD-2001", "Nordic Build", "Glass panel", 12, 10, "high"),
    ("ORD-2002", "Acme AS", "Steel frame", 4, 14, "normal"),
    ("ORD-2003", "Fjord Interiors", "Sliding door", 2, 21, "urgent"),
    ("ORD-2004", "Woodpainters", "Kitchen front", 8, 30, "low"),
]


def _actor(user):
    return Actor(
        id=str(user.id), name=user.full_name, role=user.role,
        tenant_id=user.tenant_id, is_admin=bool(user.is_admin),
    )


# ═══════════════════════════════════════════════════════════════════════════
# 1. TENANT & USERS
# ═══════════════════════════════════════════════════════════════════════════

def seed_tenant(slug):
    tenant = Tenant(name="Demo Workshop AS", slug=slug)
    db.session.add(tenant)
    db.session.flush()

    users = {}
    for email, name, role, is_admin in DEMO_USERS:
        user = User(
            tenant_id=tenant.id, email=email, full_name=name,
            role=role, is_admin=is_admin, is_owner=is_admin,
        )
        db.session.add(user)
        users[role] = user
    db.session.flush()
    return tenant, users


# ═══════════════════════════════════════════════════════════════════════════
# 2. HIERARCHY
# ═══════════════════════════════════════════════════════════════════════════

def seed_hierarchy(tenant_id):
    levels = {}
    for idx, (key, label) in enumerate([("contract", "Contract"), ("category", "Category"),
                                        ("product", "Product")]):
        levels[key] = hierarchy_service.create_level(
            tenant_id, {"key": key, "label": label, "sort_order": idx},
        )
    wardrobe = hierarchy_service.create_node(
        tenant_id, {"level_id": levels["category"].id, "label": "Wardrobe"},
    )
    hierarchy_service.create_node(
        tenant_id, {"level_id": levels["product"].id, "label": "Classic", "parent_id": wardrobe.id},
    )
    return levels


# ═══════════════════════════════════════════════════════════════════════════
# 3. ORDERS
# ═══════════════════════════════════════════════════════════════════════════

def _satisfy_engineering_gates(sales, order, rules):
    order_service.set_checklist(
        sales, order.id, {i.id: True for i in rules.checklist_items_for("ready_for_engineering")}, rules,
    )
    order_service.add_attachment(
        sales, order.id, {"name": "drawing.pdf", "url": f"files/{order.order_number}/drawing.pdf"}, rules,
    )


def seed_orders(users):
    sales = _actor(users["Sales"])
    eng = _actor(users["Engineering"])
    rules = load_rules_snapshot(sales.tenant_id)
    today = date.today()

    orders = []
    for number, customer, product, qty, days, priority in DEMO_ORDERS:
        orders.append(order_service.create_order(sales, {
            "order_number": number,
            "customer_name": customer,
            "product_name": product,
            "quantity": qty,
            "due_date": (today + timedelta(days=days)).isoformat(),
            "priority": priority,
            "notes": f"Demo order for {customer}",
        }))

    # ORD-2002 waits in the engineering queue, ORD-2003 is being engineered.
    for order in orders[1:3]:
        _satisfy_engineering_gates(sales, order, rules)
        order_lifecycle.transition_order(order.id, "send_to_engineering", sales, rules)
    order_lifecycle.take_order(orders[2].id, eng)
    order_lifecycle.transition_order(orders[2].id, "start_engineering", eng, rules)
    return orders


def seed_demo(slug):
    print("  1/4 Tenant & users...")
    tenant, users = seed_tenant(slug)
    print(f"     ✅ Tenant {tenant.slug} (id={tenant.id}), {len(users)} users")

    print("  2/4 Workflow rules & hierarchy...")
    load_rules_snapshot(tenant.id)
    levels = seed_hierarchy(tenant.id)
    print(f"     ✅ Default rules, {len(levels)} hierarchy levels")

    print("  3/4 Orders...")
    orders = seed_orders(users)
    print(f"     ✅ {len(orders)} manual orders")

    print("  4/4 Accounting sample...")
    result = sync_accounting_orders(_actor(users["Admin"]), MockHorizonAdapter())
    print(f"     ✅ {result['inserted']} accounting orders")

    db.session.commit()

    print(f"\n{'═' * 60}")
    print(f"  🎉 DEMO SEED COMPLETE — Tenant ID: {tenant.id}")
    for role, user in users.items():
        print(f"  {role:<12} {token_for_user(user)}")
    print(f"{'═' * 60}\n")


def main():
    parser = argparse.ArgumentParser(description="Production workflow demo seed")
    parser.add_argument("--slug", default="demo", help="Tenant slug (default: demo)")
    parser.add_argument("--no-reset", action="store_true",
                        help="Don't clear existing data")
    args = parser.parse_args()

    app = create_app()
    print(f"  🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            print("  ♻️  Database reset complete\n")

        seed_demo(args.slug)


if __name__ == "__main__":
    main()
