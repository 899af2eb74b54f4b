"""
Hub Grégoire - Seed Test Data (dev/staging only)
Creates one staff account per role plus a demo client / order.
Run: cd backend && python scripts/seed_test_users.py
Reset: python scripts/seed_test_users.py --reset
"""

import asyncio
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config import client, db, hash_password, now_iso
from models.proof import OrderStatus
from services.permissions import get_preset_permissions

# Same password for all test accounts
TEST_PASSWORD = "GregoireTest2026!"

TEST_USERS = [
    {"email": "superadmin@test.local", "nom": "Super Admin Test", "role": "super_admin"},
    {"email": "admin@test.local",      "nom": "Admin",            "role": "admin"},
    {"email": "production@test.local", "nom": "Production",       "role": "production"},
    {"email": "viewer@test.local",     "nom": "Viewer",           "role": "viewer"},
]

DEMO_ORDER_NUMBER = "CMD-DEMO-0001"


async def reset():
    """Delete all test.local users and the demo order"""
    users = await db.users.find({"email": {"$regex": "@test\\.local$"}}, {"_id": 0, "id": 1}).to_list(100)
    await db.sessions.delete_many({"user_id": {"$in": [u["id"] for u in users]}})
    result = await db.users.delete_many({"email": {"$regex": "@test\\.local$"}})
    print(f"Deleted {result.deleted_count} test users")

    order = await db.orders.find_one({"order_number": DEMO_ORDER_NUMBER}, {"_id": 0})
    if order:
        await db.order_items.delete_many({"order_id": order["id"]})
        await db.orders.delete_one({"id": order["id"]})
        await db.clients.delete_one({"id": order["client_id"]})
        print(f"Deleted demo order {DEMO_ORDER_NUMBER}")


async def seed():
    for u in TEST_USERS:
        await db.users.insert_one({
            "id": str(uuid.uuid4()),
            "email": u["email"],
            "password": hash_password(TEST_PASSWORD),
            "nom": u["nom"],
            "role": u["role"],
            "permissions": get_preset_permissions(u["role"]),
            "is_active": True,
            "created_at": now_iso(),
        })
        print(f"  Created: {u['email']} ({u['role']})")

    client_id = str(uuid.uuid4())
    order_id = str(uuid.uuid4())
    await db.clients.insert_one({
        "id": client_id,
        "business_name": "Boulangerie Demo",
        "contact_name": "Marie Demo",
        "email": "marie@demo.local",
        "created_at": now_iso(),
    })
    await db.orders.insert_one({
        "id": order_id,
        "order_number": DEMO_ORDER_NUMBER,
        "client_id": client_id,
        "status": OrderStatus.WAITING_PROOF.value,
        "total_price": 450.0,
        "created_at": now_iso(),
    })
    await db.order_items.insert_one({
        "id": str(uuid.uuid4()),
        "order_id": order_id,
        "product_name": "Cartes d'affaires",
        "quantity": 500,
        "unit_price": 0.9,
    })
    print(f"  Created demo order {DEMO_ORDER_NUMBER} ({order_id})")


async def main():
    await reset()
    if "--reset" in sys.argv:
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await seed()
        print(f"\n{len(TEST_USERS)} test users seeded. Password for all: {TEST_PASSWORD}")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
