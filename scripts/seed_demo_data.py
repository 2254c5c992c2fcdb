"""
Seed script: Populate a demo tenant with stores, inventory and POS sales.

What it creates:
- Operator user.
- Stores (2): Principal and Sucursal Norte.
- Customers (~40).
- Inventory items per store with price, IVA and initial stock.
- Sales through SaleService, so stock, movements and numbering are real;
  a fraction of them is cancelled afterwards.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_demo_data.py --items 200 --sales 300

Prints a JWT and the X-Company-ID header to call the API with.

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import asyncio
import random
from decimal import Decimal
from uuid import uuid4

import jwt
from sqlalchemy import select

from app.common.exceptions import POSError
from app.core.config import settings
from app.database.database import AsyncSessionLocal
from app.modules.auth.models import User
from app.modules.customers.models import Customer
from app.modules.inventory.models import InventoryItem
from app.modules.pos.models import PaymentMethod
from app.modules.pos.schemas import SaleCreate, SaleItemCreate
from app.modules.pos.services import SaleService
from app.modules.stores.models import Store

PRODUCT_NAMES = [
    "Arroz", "Frijol", "Lenteja", "Azúcar", "Sal", "Aceite", "Café", "Chocolate",
    "Leche", "Queso", "Huevos", "Pan", "Galletas", "Pasta", "Atún", "Jabón",
]
PRESENTATIONS = ["250g", "500g", "1kg", "1L", "x6", "x12"]
IVA_RATES = [Decimal("0"), Decimal("5"), Decimal("19")]
FIRST_NAMES = ["Ana", "Luis", "María", "Jorge", "Paula", "Andrés", "Camila", "Diego"]
LAST_NAMES = ["Rodríguez", "Martínez", "García", "López", "Hernández", "Díaz"]


def pick(seq):
    return random.choice(seq)


async def get_or_create_user(db, email: str) -> User:
    user = await db.scalar(select(User).where(User.email == email))
    if user:
        return user
    user = User(email=email, first_name="Cajero", last_name="Demo")
    db.add(user)
    await db.commit()
    return user


async def create_stores(db, tenant_id):
    stores = [
        Store(tenant_id=tenant_id, name="Principal", code="PRI", address="Cra 7 # 32-16"),
        Store(tenant_id=tenant_id, name="Sucursal Norte", code="NOR", address="Calle 140 # 15-20"),
    ]
    db.add_all(stores)
    await db.commit()
    return stores


async def create_customers(db, tenant_id, count: int):
    customers = []
    for i in range(count):
        name = f"{pick(FIRST_NAMES)} {pick(LAST_NAMES)}"
        customers.append(Customer(
            tenant_id=tenant_id,
            name=name,
            email=f"cliente{i:03d}@example.com",
            phone=f"300{random.randint(1000000, 9999999)}",
        ))
    db.add_all(customers)
    await db.commit()
    return customers


async def create_inventory(db, tenant_id, stores, count: int):
    items = {store.id: [] for store in stores}
    for i in range(count):
        name = f"{pick(PRODUCT_NAMES)} {pick(PRESENTATIONS)}"
        price = Decimal(random.randint(20, 400)) * Decimal("100")
        tax = pick(IVA_RATES)
        for store in stores:
            item = InventoryItem(
                tenant_id=tenant_id,
                store_id=store.id,
                item_name=name,
                item_code=f"SKU-{i:05d}",
                unit="und",
                price=price,
                tax_percentage=tax,
                stock=random.randint(0, 80),
                min_stock=random.randint(0, 10),
            )
            db.add(item)
            items[store.id].append(item)
    await db.commit()
    return items


async def create_sales(tenant_id, user_id, stores, customers, items_by_store, count: int):
    created = rejected = cancelled = 0
    for _ in range(count):
        store = pick(stores)
        lines = [
            SaleItemCreate(inventory_id=pick(items_by_store[store.id]).id, quantity=random.randint(1, 4))
            for _ in range(random.randint(1, 5))
        ]
        customer = pick(customers) if random.random() < 0.6 else None
        sale_in = SaleCreate(
            store_id=store.id,
            customer_id=customer.id if customer else None,
            items=lines,
            payment_method=pick(list(PaymentMethod)),
            amount_paid=Decimal(random.randint(0, 2000)) * Decimal("100"),
        )

        async with AsyncSessionLocal() as db:
            service = SaleService(db, tenant_id)
            try:
                sale = await service.create_sale(sale_in, user_id=user_id)
                created += 1
                if random.random() < 0.1:
                    await service.cancel_sale(sale.id, user_id=user_id, reason="Venta de prueba anulada")
                    cancelled += 1
            except POSError:
                rejected += 1
                continue

        if created and created % 50 == 0:
            print(f"  Sales created: {created}")
    return created, rejected, cancelled


async def seed(args):
    tenant_id = uuid4()

    async with AsyncSessionLocal() as db:
        user = await get_or_create_user(db, args.email)
        stores = await create_stores(db, tenant_id)
        print("Creating customers...")
        customers = await create_customers(db, tenant_id, args.customers)
        print("Creating inventory...")
        items_by_store = await create_inventory(db, tenant_id, stores, args.items)

    print("Creating sales (affect inventory)...")
    created, rejected, cancelled = await create_sales(
        tenant_id, user.id, stores, customers, items_by_store, args.sales
    )
    print(f"Sales created: {created}, rejected: {rejected}, cancelled: {cancelled}")

    token = jwt.encode(
        {"sub": str(user.id), "tenant_id": str(tenant_id), "role": "owner"},
        settings.APP_SECRET_STRING,
        algorithm=settings.ALGORITHM,
    )
    print("\nSeed completed.")
    print("Headers for API requests:")
    print(f"  Authorization: Bearer {token}")
    print(f"  X-Company-ID: {tenant_id}")


def main():
    parser = argparse.ArgumentParser(description="Seed POS demo data")
    parser.add_argument("--email", default="cajero@demo.com")
    parser.add_argument("--customers", type=int, default=40)
    parser.add_argument("--items", type=int, default=200)
    parser.add_argument("--sales", type=int, default=300)
    args = parser.parse_args()

    asyncio.run(seed(args))


if __name__ == "__main__":
    main()
