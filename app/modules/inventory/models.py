from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Numeric, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, LifecycleMixin
import enum


class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class InventoryItem(Base, TenantMixin, TimestampMixin, LifecycleMixin):
    """
    Stock-keeping unit owned by a store.

    The stock column is written only through InventoryLedger, which expresses
    every change as a single conditional UPDATE.
    """
    __tablename__ = "inventory_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=False, index=True)
    item_name = Column(String(200), nullable=False)
    item_code = Column(String(50), nullable=False)
    unit = Column(String(20), nullable=False, default="unit")
    price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta
    tax_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)  # Cantidad mínima para alertas
    is_active = Column(Boolean, nullable=False, default=True)

    store = relationship("Store")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_inventory_items_stock_non_negative"),
        UniqueConstraint("tenant_id", "store_id", "item_code", name="uq_inventory_item_tenant_store_code"),
    )


class InventoryMovement(Base, TenantMixin, TimestampMixin):
    __tablename__ = "inventory_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    inventory_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=False)

    quantity = Column(Integer, nullable=False)  # Positive for IN, negative for OUT
    stock_after = Column(Integer, nullable=False)
    movement_type = Column(String(20), nullable=False)
    reference = Column(String(100), nullable=True)  # Sale number
    notes = Column(String(255), nullable=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    item = relationship("InventoryItem")
