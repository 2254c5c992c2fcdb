from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from decimal import Decimal


class SellableItem(BaseModel):
    """Snapshot of an active inventory item read inside a sale transaction"""
    id: UUID
    store_id: UUID
    item_name: str
    item_code: str
    unit: str
    price: Decimal
    tax_percentage: Decimal
    stock: int
    min_stock: int

    model_config = {"frozen": True}


class LowStockAlert(BaseModel):
    inventory_id: UUID
    item_name: str
    item_code: str
    stock: int = Field(..., ge=0)
    min_stock: int
    store_id: Optional[UUID] = None
