"""
Fixtures compartidos para los tests de la API POS.

Cada test usa su propia base SQLite (aiosqlite) en un archivo temporal.
SQLite se configura para emitir BEGIN IMMEDIATE, de modo que las
transacciones y savepoints se comportan como en PostgreSQL y las
escrituras concurrentes se serializan.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["DEBUG"] = "false"

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.database.database import Base, get_async_db
from app.main import app
from app.modules.auth.models import User
from app.modules.customers.models import Customer
from app.modules.inventory.models import InventoryItem
from app.modules.stores.models import Store


# ===== DATABASE =====

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'pos.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Deshabilita el manejo de transacciones del driver
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# ===== DATOS =====

@pytest.fixture
async def seed(session_factory):
    """Tenant con un usuario, dos tiendas, un cliente e ítems de inventario"""
    tenant_id = uuid4()
    other_tenant_id = uuid4()

    async with session_factory() as session:
        user = User(email="cajero@ally360.com", first_name="Laura", last_name="Gómez")
        main_store = Store(tenant_id=tenant_id, name="Tienda Centro", code="CEN")
        branch_store = Store(tenant_id=tenant_id, name="Tienda Norte", code="NOR")
        foreign_store = Store(tenant_id=other_tenant_id, name="Tienda Ajena", code="AJE")
        session.add_all([user, main_store, branch_store, foreign_store])
        await session.flush()

        customer = Customer(
            tenant_id=tenant_id, name="Carlos Pérez",
            email="carlos@example.com", phone="3001234567"
        )
        rice = InventoryItem(
            tenant_id=tenant_id, store_id=main_store.id, item_name="Arroz Diana 500g",
            item_code="ARR-500", unit="und", price=Decimal("10.00"),
            tax_percentage=Decimal("10.00"), stock=10, min_stock=2
        )
        oil = InventoryItem(
            tenant_id=tenant_id, store_id=main_store.id, item_name="Aceite Girasol 1L",
            item_code="ACE-1L", unit="und", price=Decimal("8.50"),
            tax_percentage=Decimal("19.00"), stock=5, min_stock=1
        )
        discontinued = InventoryItem(
            tenant_id=tenant_id, store_id=main_store.id, item_name="Galletas Saltinas",
            item_code="GAL-01", unit="paq", price=Decimal("3.00"),
            tax_percentage=Decimal("0"), stock=20, min_stock=0, is_active=False
        )
        branch_rice = InventoryItem(
            tenant_id=tenant_id, store_id=branch_store.id, item_name="Arroz Diana 500g",
            item_code="ARR-500", unit="und", price=Decimal("10.00"),
            tax_percentage=Decimal("10.00"), stock=4, min_stock=0
        )
        foreign_item = InventoryItem(
            tenant_id=other_tenant_id, store_id=foreign_store.id, item_name="Azúcar 1kg",
            item_code="AZU-1K", unit="und", price=Decimal("4.00"),
            tax_percentage=Decimal("5.00"), stock=50, min_stock=0
        )
        session.add_all([customer, rice, oil, discontinued, branch_rice, foreign_item])
        await session.commit()

    return SimpleNamespace(
        tenant_id=tenant_id,
        other_tenant_id=other_tenant_id,
        user_id=user.id,
        store_id=main_store.id,
        branch_store_id=branch_store.id,
        foreign_store_id=foreign_store.id,
        customer_id=customer.id,
        rice_id=rice.id,
        oil_id=oil.id,
        discontinued_id=discontinued.id,
        branch_rice_id=branch_rice.id,
        foreign_item_id=foreign_item.id,
    )


# ===== HTTP =====

def make_token(user_id, tenant_id, role="seller", permissions=("pos.create", "pos.read", "pos.update")):
    payload = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "role": role,
        "permissions": list(permissions),
    }
    return jwt.encode(payload, settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_headers(seed):
    return {
        "Authorization": f"Bearer {make_token(seed.user_id, seed.tenant_id)}",
        "X-Company-ID": str(seed.tenant_id),
    }


@pytest.fixture
async def client(session_factory):
    async def override_get_async_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_async_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
