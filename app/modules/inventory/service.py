"""
Inventory ledger: the only code path that writes inventory_items.stock.

Every stock change is a single conditional UPDATE ... RETURNING executed in
the caller's transaction. There is no read-modify-write pair, so two
concurrent sales cannot both take the last units of an item.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.common.exceptions import InsufficientStockError, InventoryItemNotFoundError
from app.common.mixins import RecordState
from app.modules.inventory.models import InventoryItem, InventoryMovement, MovementType
from app.modules.inventory.schemas import SellableItem

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Stock reads and writes scoped to one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def get_sellable_item(self, inventory_id: UUID, store_id: Optional[UUID] = None) -> Optional[SellableItem]:
        """Return the item snapshot if it exists, is active and not deleted; None otherwise."""
        stmt = select(
            InventoryItem.id,
            InventoryItem.store_id,
            InventoryItem.item_name,
            InventoryItem.item_code,
            InventoryItem.unit,
            InventoryItem.price,
            InventoryItem.tax_percentage,
            InventoryItem.stock,
            InventoryItem.min_stock,
        ).where(
            InventoryItem.id == inventory_id,
            InventoryItem.tenant_id == self.tenant_id,
            InventoryItem.record_state == RecordState.ACTIVE,
            InventoryItem.is_active.is_(True),
        )
        if store_id is not None:
            stmt = stmt.where(InventoryItem.store_id == store_id)

        row = (await self.db.execute(stmt)).one_or_none()
        if row is None:
            return None
        return SellableItem(**row._mapping)

    async def get_stock(self, inventory_id: UUID) -> Optional[int]:
        result = await self.db.execute(
            select(InventoryItem.stock).where(
                InventoryItem.id == inventory_id,
                InventoryItem.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def decrement_stock(self, inventory_id: UUID, quantity: int, item_name: Optional[str] = None) -> int:
        """
        Subtract quantity only if the resulting stock stays >= 0.

        Returns the new stock. Raises InsufficientStockError when the guarded
        update matches no row.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == inventory_id,
                InventoryItem.tenant_id == self.tenant_id,
                InventoryItem.stock >= quantity,
            )
            .values(stock=InventoryItem.stock - quantity)
            .returning(InventoryItem.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = (await self.db.execute(stmt)).scalar_one_or_none()

        if new_stock is None:
            available = await self.get_stock(inventory_id)
            if available is None:
                raise InventoryItemNotFoundError(inventory_id)
            raise InsufficientStockError(item_name or str(inventory_id), available, quantity)

        if new_stock < 0:
            raise InsufficientStockError(item_name or str(inventory_id), new_stock + quantity, quantity)

        logger.debug(f"Stock decremented for item {inventory_id}: -{quantity} -> {new_stock}")
        return new_stock

    async def increment_stock(self, inventory_id: UUID, quantity: int) -> int:
        """Add quantity back to stock. No upper bound; applies to inactive items too."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == inventory_id,
                InventoryItem.tenant_id == self.tenant_id,
            )
            .values(stock=InventoryItem.stock + quantity)
            .returning(InventoryItem.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = (await self.db.execute(stmt)).scalar_one_or_none()
        if new_stock is None:
            raise InventoryItemNotFoundError(inventory_id)

        logger.debug(f"Stock incremented for item {inventory_id}: +{quantity} -> {new_stock}")
        return new_stock

    def record_movement(
        self,
        inventory_id: UUID,
        store_id: UUID,
        quantity: int,
        stock_after: int,
        movement_type: MovementType,
        user_id: UUID,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InventoryMovement:
        """Add a journal row to the session; it commits or rolls back with the caller."""
        movement = InventoryMovement(
            tenant_id=self.tenant_id,
            inventory_id=inventory_id,
            store_id=store_id,
            quantity=quantity,
            stock_after=stock_after,
            movement_type=movement_type.value,
            reference=reference,
            notes=notes,
            created_by=user_id,
        )
        self.db.add(movement)
        return movement
