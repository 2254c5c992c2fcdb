"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- SaleCreate: Creación de venta con sus ítems
- SaleCancel: Cancelación con motivo opcional
- SaleOut: Venta ensamblada (encabezado + líneas + nombres relacionados)
- SaleList / SaleStatistics: Consultas

La validación de entrada ocurre aquí, antes de abrir cualquier transacción.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.pos.models import PaymentMethod, PaymentStatus, SaleStatus
from app.modules.pos.pricing import MAX_QUANTITY


# ===== SALE INPUT SCHEMAS =====

class SaleItemCreate(BaseModel):
    """Ítem solicitado en una venta"""
    inventory_id: UUID = Field(..., description="ID del ítem de inventario")
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, description="Cantidad (mayor a cero)")
    unit_price: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2, description="Precio unitario; por defecto el precio del ítem")
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2, description="Impuesto %; por defecto el del ítem")
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2, description="Descuento % de la línea")


class SaleCreate(BaseModel):
    """Esquema para crear venta POS"""
    store_id: UUID = Field(..., description="ID de la tienda")
    customer_id: Optional[UUID] = Field(None, description="ID del cliente (opcional)")
    items: List[SaleItemCreate] = Field(..., min_length=1, description="Ítems de la venta")
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH, description="Método de pago")
    payment_status: Optional[PaymentStatus] = Field(None, description="Estado de pago; se deriva si se omite")
    amount_paid: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2, description="Monto pagado")
    discount_amount: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2, description="Descuento a nivel de venta")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de la venta")

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = v.strip()
        return cleaned or None


class SaleCancel(BaseModel):
    """Esquema para cancelar venta"""
    reason: Optional[str] = Field(None, max_length=255, description="Motivo de la cancelación")


# ===== SALE OUTPUT SCHEMAS =====

class SaleLineItemOut(BaseModel):
    id: UUID
    line_number: int
    inventory_id: UUID
    item_name: str
    item_code: str
    unit: str
    unit_price: Decimal
    quantity: int
    tax_percentage: Decimal
    discount_percentage: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class SaleOut(BaseModel):
    """Venta ensamblada"""
    id: UUID = Field(description="ID único de la venta")
    sale_number: str = Field(description="Número legible de la venta")
    sale_date: datetime
    store_id: UUID
    customer_id: Optional[UUID] = None
    user_id: UUID

    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    sale_discount_amount: Decimal
    total_amount: Decimal

    payment_method: PaymentMethod
    payment_status: PaymentStatus
    amount_paid: Decimal
    amount_due: Decimal

    notes: Optional[str] = None
    status: SaleStatus
    created_by: UUID
    updated_by: Optional[UUID] = None
    cancelled_by: Optional[UUID] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # Información adicional
    store_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    user_name: Optional[str] = None

    items: List[SaleLineItemOut] = Field(default=[], validation_alias="line_items")

    model_config = {"from_attributes": True, "populate_by_name": True}


class SaleSummaryOut(BaseModel):
    """Venta sin líneas, para listados"""
    id: UUID
    sale_number: str
    sale_date: datetime
    store_id: UUID
    customer_id: Optional[UUID] = None
    user_id: UUID
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: SaleStatus
    store_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    user_name: Optional[str] = None

    model_config = {"from_attributes": True}


class SaleList(BaseModel):
    """Esquema para lista paginada de ventas"""
    sales: List[SaleSummaryOut] = Field(description="Lista de ventas")
    total: int = Field(description="Total de ventas")
    page: int = Field(description="Página actual")
    limit: int = Field(description="Límite aplicado")
    total_pages: int = Field(description="Total de páginas")


class SaleFilters(BaseModel):
    store_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    payment_status: Optional[PaymentStatus] = None
    status: Optional[SaleStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SaleStatistics(BaseModel):
    """Resumen de ventas completadas"""
    total_sales: int
    total_revenue: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    average_sale_amount: Decimal
