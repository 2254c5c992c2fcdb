"""
Modelos SQLAlchemy para el módulo POS (Point of Sale)

Este módulo maneja las ventas de punto de venta:
- Sale: Encabezado de la venta con totales calculados
- SaleLineItem: Líneas inmutables con snapshot del ítem al momento de la venta
- SaleSequence: Contador atómico por tienda para la numeración de ventas

Integración con inventario:
- Ventas POS → descuentan stock a través de InventoryLedger
- Cancelación → restaura stock y conserva el registro histórico

Arquitectura multi-tenant: Todas las tablas incluyen tenant_id
"""

from app.database.database import Base
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, Enum, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, LifecycleMixin
import enum


# ===== ENUMS =====

class PaymentMethod(str, enum.Enum):
    """Métodos de pago (solo etiqueta, sin liquidación externa)"""
    CASH = "cash"
    CARD = "card"
    CREDIT = "credit"
    MIXED = "mixed"


class PaymentStatus(str, enum.Enum):
    """Estado de pago derivado de amount_paid vs total"""
    PAID = "paid"
    PARTIAL = "partial"
    PENDING = "pending"     # Solo por indicación explícita del cliente


class SaleStatus(str, enum.Enum):
    """Estados de una venta"""
    COMPLETED = "completed"   # Estado inicial
    CANCELLED = "cancelled"   # Solo desde COMPLETED
    REFUNDED = "refunded"     # Terminal, bloquea cancelación


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ===== MODELOS =====

class Sale(Base, TenantMixin, TimestampMixin, LifecycleMixin):
    """
    Encabezado de venta POS

    Solo se crea a través de SaleService.create_sale. Los montos se
    persisten ya calculados por el motor de precios.
    """
    __tablename__ = "sales"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sale_number = Column(String(50), nullable=False, index=True)
    sale_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Totales
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)       # Descuentos de línea + descuento de venta
    sale_discount_amount = Column(Numeric(15, 2), nullable=False, default=0)  # Descuento a nivel de venta
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Pago
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=False, default=PaymentMethod.CASH
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False, index=True
    )
    amount_paid = Column(Numeric(15, 2), nullable=False, default=0)
    amount_due = Column(Numeric(15, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)
    status = Column(
        Enum(SaleStatus, name="sale_status", values_callable=_enum_values),
        nullable=False, default=SaleStatus.COMPLETED, index=True
    )

    # Auditoría
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    cancelled_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    store = relationship("Store")
    customer = relationship("Customer")
    user = relationship("User", foreign_keys=[user_id])
    line_items = relationship(
        "SaleLineItem",
        back_populates="sale",
        order_by="SaleLineItem.line_number"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "store_id", "sale_number", name="uq_sale_tenant_store_number"),
    )

    @property
    def store_name(self):
        return self.store.name if self.store else None

    @property
    def customer_name(self):
        return self.customer.name if self.customer else None

    @property
    def customer_phone(self):
        return self.customer.phone if self.customer else None

    @property
    def customer_email(self):
        return self.customer.email if self.customer else None

    @property
    def user_name(self):
        return self.user.full_name if self.user else None


class SaleLineItem(Base, TenantMixin):
    """
    Línea de venta inmutable

    Guarda un snapshot del ítem (nombre, código, unidad) para que las
    ventas históricas no cambien con ediciones posteriores del catálogo.
    """
    __tablename__ = "sale_line_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(UUID(as_uuid=True), ForeignKey("sales.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    inventory_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)

    # Snapshot del ítem
    item_name = Column(String(200), nullable=False)
    item_code = Column(String(50), nullable=False)
    unit = Column(String(20), nullable=False)

    unit_price = Column(Numeric(15, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    tax_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)

    # Montos derivados
    subtotal = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    line_total = Column(Numeric(15, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sale = relationship("Sale", back_populates="line_items")

    __table_args__ = (
        UniqueConstraint("sale_id", "line_number", name="uq_sale_line_number"),
    )


class SaleSequence(Base, TenantMixin, TimestampMixin):
    """Numeración de ventas por tienda. Se avanza con un único UPDATE atómico."""
    __tablename__ = "sale_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=False)
    prefix = Column(String(20), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "store_id", name="uq_sale_sequence_tenant_store"),
    )
