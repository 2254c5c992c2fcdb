"""
Tests for the inventory ledger.

Covers the conditional stock updates that keep concurrent sales from
overselling, and the tenant and lifecycle filters on sellable items.
"""

import pytest
from uuid import uuid4

from sqlalchemy import select

from app.common.exceptions import InsufficientStockError, InventoryItemNotFoundError
from app.modules.inventory.models import InventoryItem, InventoryMovement, MovementType
from app.modules.inventory.service import InventoryLedger


class TestSellableItem:

    async def test_returns_snapshot_for_active_item(self, session_factory, seed):
        async with session_factory() as session:
            item = await InventoryLedger(session, seed.tenant_id).get_sellable_item(seed.rice_id, seed.store_id)

        assert item is not None
        assert item.item_name == "Arroz Diana 500g"
        assert item.stock == 10
        assert item.min_stock == 2

    async def test_inactive_item_is_not_sellable(self, session_factory, seed):
        async with session_factory() as session:
            item = await InventoryLedger(session, seed.tenant_id).get_sellable_item(seed.discontinued_id)

        assert item is None

    async def test_item_from_another_tenant_is_invisible(self, session_factory, seed):
        async with session_factory() as session:
            item = await InventoryLedger(session, seed.tenant_id).get_sellable_item(seed.foreign_item_id)

        assert item is None

    async def test_item_from_another_store_is_not_sellable_there(self, session_factory, seed):
        async with session_factory() as session:
            item = await InventoryLedger(session, seed.tenant_id).get_sellable_item(
                seed.branch_rice_id, seed.store_id
            )

        assert item is None

    async def test_deleted_item_is_not_sellable(self, session_factory, seed):
        async with session_factory() as session:
            rice = await session.get(InventoryItem, seed.rice_id)
            rice.soft_delete()
            await session.commit()

        async with session_factory() as session:
            item = await InventoryLedger(session, seed.tenant_id).get_sellable_item(seed.rice_id)

        assert item is None


class TestStockUpdates:

    async def test_decrement_returns_new_stock(self, session_factory, seed):
        async with session_factory() as session:
            ledger = InventoryLedger(session, seed.tenant_id)
            new_stock = await ledger.decrement_stock(seed.rice_id, 4)
            await session.commit()

        assert new_stock == 6

    async def test_decrement_to_exactly_zero(self, session_factory, seed):
        async with session_factory() as session:
            ledger = InventoryLedger(session, seed.tenant_id)
            assert await ledger.decrement_stock(seed.rice_id, 10) == 0
            await session.commit()

    async def test_decrement_beyond_stock_changes_nothing(self, session_factory, seed):
        async with session_factory() as session:
            ledger = InventoryLedger(session, seed.tenant_id)
            with pytest.raises(InsufficientStockError) as exc_info:
                await ledger.decrement_stock(seed.rice_id, 11, "Arroz Diana 500g")
            await session.rollback()

        assert exc_info.value.available == 10
        assert exc_info.value.requested == 11
        assert "Arroz Diana 500g" in exc_info.value.message

        async with session_factory() as session:
            assert await InventoryLedger(session, seed.tenant_id).get_stock(seed.rice_id) == 10

    async def test_decrement_unknown_item(self, session_factory, seed):
        async with session_factory() as session:
            with pytest.raises(InventoryItemNotFoundError):
                await InventoryLedger(session, seed.tenant_id).decrement_stock(uuid4(), 1)

    async def test_decrement_rejects_non_positive_quantity(self, session_factory, seed):
        async with session_factory() as session:
            with pytest.raises(ValueError):
                await InventoryLedger(session, seed.tenant_id).decrement_stock(seed.rice_id, 0)

    async def test_cannot_touch_other_tenant_stock(self, session_factory, seed):
        async with session_factory() as session:
            with pytest.raises(InventoryItemNotFoundError):
                await InventoryLedger(session, seed.tenant_id).increment_stock(seed.foreign_item_id, 5)

    async def test_increment_applies_to_inactive_items(self, session_factory, seed):
        async with session_factory() as session:
            new_stock = await InventoryLedger(session, seed.tenant_id).increment_stock(seed.discontinued_id, 5)
            await session.commit()

        assert new_stock == 25


class TestMovementJournal:

    async def test_movement_commits_with_the_transaction(self, session_factory, seed):
        async with session_factory() as session:
            ledger = InventoryLedger(session, seed.tenant_id)
            new_stock = await ledger.decrement_stock(seed.oil_id, 2)
            ledger.record_movement(
                inventory_id=seed.oil_id, store_id=seed.store_id, quantity=-2,
                stock_after=new_stock, movement_type=MovementType.OUT,
                user_id=seed.user_id, reference="POS-000001"
            )
            await session.commit()

        async with session_factory() as session:
            movements = (await session.execute(select(InventoryMovement))).scalars().all()

        assert len(movements) == 1
        assert movements[0].movement_type == "OUT"
        assert movements[0].quantity == -2
        assert movements[0].stock_after == 3

    async def test_movement_rolls_back_with_the_transaction(self, session_factory, seed):
        async with session_factory() as session:
            ledger = InventoryLedger(session, seed.tenant_id)
            new_stock = await ledger.decrement_stock(seed.oil_id, 2)
            ledger.record_movement(
                inventory_id=seed.oil_id, store_id=seed.store_id, quantity=-2,
                stock_after=new_stock, movement_type=MovementType.OUT, user_id=seed.user_id
            )
            await session.rollback()

        async with session_factory() as session:
            movements = (await session.execute(select(InventoryMovement))).scalars().all()
            stock = await InventoryLedger(session, seed.tenant_id).get_stock(seed.oil_id)

        assert movements == []
        assert stock == 5
