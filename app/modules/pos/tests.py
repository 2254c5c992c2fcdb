"""
Tests para el módulo POS (Point of Sale)

Tests que cubren:
- Motor de precios: redondeo, descuentos, impuestos y estado de pago
- Creación atómica de ventas (todo o nada)
- Ventas concurrentes sin sobreventa
- Cancelación con restauración de stock
- Numeración secuencial por tienda
- Listados, búsqueda y estadísticas
- Endpoints HTTP: códigos de estado, permisos y aislamiento por tenant
"""

import asyncio
import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.common.exceptions import (
    CustomerNotFoundError, InsufficientStockError, InventoryItemNotFoundError,
    SaleDiscountError, SaleNotFoundError, SaleStateError, SaleValidationError, StoreNotFoundError
)
from app.modules.inventory.models import InventoryMovement
from app.modules.inventory.service import InventoryLedger
from app.modules.pos import services as pos_services
from app.modules.pos.models import PaymentStatus, Sale, SaleLineItem, SaleStatus
from app.modules.pos.pricing import MAX_QUANTITY, aggregate_sale, derive_payment_status, price_line
from app.modules.pos.schemas import SaleCreate, SaleFilters, SaleItemCreate
from app.modules.pos.services import SaleQueryService, SaleService


# ===== HELPERS =====

def build_sale(seed, items=None, **overrides):
    data = {
        "store_id": seed.store_id,
        "items": items if items is not None else [{"inventory_id": seed.rice_id, "quantity": 2}],
        "amount_paid": Decimal("100.00"),
    }
    data.update(overrides)
    return SaleCreate(**data)


async def create_sale(session_factory, seed, sale_data):
    async with session_factory() as session:
        return await SaleService(session, seed.tenant_id).create_sale(sale_data, user_id=seed.user_id)


async def current_stock(session_factory, seed, inventory_id):
    async with session_factory() as session:
        return await InventoryLedger(session, seed.tenant_id).get_stock(inventory_id)


async def count_rows(session_factory, model):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


# ===== MOTOR DE PRECIOS =====

class TestPricing:

    def test_line_with_discount_and_tax(self):
        line = price_line(3, Decimal("10.00"), Decimal("10"), Decimal("5"))

        assert line.subtotal == Decimal("30.00")
        assert line.discount_amount == Decimal("1.50")
        assert line.tax_amount == Decimal("2.85")
        assert line.line_total == Decimal("31.35")

    def test_tax_rounds_half_up(self):
        line = price_line(1, Decimal("8.50"), Decimal("19"))

        # 8.50 * 19% = 1.615
        assert line.tax_amount == Decimal("1.62")
        assert line.line_total == Decimal("10.12")

    def test_defaults_without_tax_or_discount(self):
        line = price_line(4, "2.25")

        assert line.subtotal == Decimal("9.00")
        assert line.discount_amount == Decimal("0.00")
        assert line.line_total == Decimal("9.00")

    @pytest.mark.parametrize("quantity", [0, -1, True])
    def test_rejects_invalid_quantity(self, quantity):
        with pytest.raises(SaleValidationError):
            price_line(quantity, Decimal("1.00"))

    def test_rejects_negative_price(self):
        with pytest.raises(SaleValidationError):
            price_line(1, Decimal("-0.01"))

    def test_rejects_percentage_out_of_range(self):
        with pytest.raises(SaleValidationError):
            price_line(1, Decimal("1.00"), tax_percentage=Decimal("100.01"))
        with pytest.raises(SaleValidationError):
            price_line(1, Decimal("1.00"), discount_percentage=Decimal("-1"))

    def test_rejects_sub_cent_amounts(self):
        with pytest.raises(SaleValidationError, match="unit_price must have at most 2 decimal places"):
            price_line(3, Decimal("3.335"))
        with pytest.raises(SaleValidationError):
            price_line(1, Decimal("1.00"), tax_percentage=Decimal("19.005"))

        lines = [price_line(1, Decimal("10.00"))]
        with pytest.raises(SaleValidationError, match="amount_paid must have at most 2 decimal places"):
            aggregate_sale(lines, amount_paid=Decimal("9.995"))
        with pytest.raises(SaleValidationError):
            aggregate_sale(lines, amount_paid=Decimal("10.00"), sale_discount=Decimal("0.005"))

    def test_trailing_zeros_are_not_extra_precision(self):
        line = price_line(3, Decimal("3.3300"))
        totals = aggregate_sale([line], amount_paid=Decimal("9.990"))

        assert line.subtotal == Decimal("9.99")
        assert totals.amount_paid == Decimal("9.99")
        assert totals.payment_status == PaymentStatus.PAID

    def test_rejects_quantity_above_column_range(self):
        with pytest.raises(SaleValidationError):
            price_line(MAX_QUANTITY + 1, Decimal("1.00"))

    def test_sale_discount_is_applied_once(self):
        lines = [
            price_line(3, Decimal("10.00"), Decimal("10"), Decimal("5")),
            price_line(1, Decimal("8.50"), Decimal("19")),
        ]
        totals = aggregate_sale(lines, amount_paid=Decimal("30.00"), sale_discount=Decimal("2.00"))

        assert totals.subtotal == Decimal("38.50")
        assert totals.tax_amount == Decimal("4.47")
        assert totals.discount_amount == Decimal("3.50")
        assert totals.sale_discount_amount == Decimal("2.00")
        assert totals.total_amount == Decimal("39.47")
        assert sum(line.line_total for line in lines) == totals.total_amount + totals.sale_discount_amount
        assert totals.amount_due == Decimal("9.47")
        assert totals.payment_status == PaymentStatus.PARTIAL

    def test_sale_discount_cannot_exceed_discounted_subtotal(self):
        lines = [price_line(1, Decimal("10.00"), discount_percentage=Decimal("50"))]

        with pytest.raises(SaleDiscountError):
            aggregate_sale(lines, amount_paid=Decimal("0"), sale_discount=Decimal("5.01"))

    def test_rejects_negative_amount_paid(self):
        with pytest.raises(SaleValidationError):
            aggregate_sale([price_line(1, Decimal("1.00"))], amount_paid=Decimal("-1"))

    @pytest.mark.parametrize("amount_due, expected", [
        (Decimal("0.00"), PaymentStatus.PAID),
        (Decimal("-5.00"), PaymentStatus.PAID),
        (Decimal("0.01"), PaymentStatus.PARTIAL),
    ])
    def test_derived_payment_status(self, amount_due, expected):
        assert derive_payment_status(amount_due) == expected

    def test_overpayment_leaves_negative_amount_due(self):
        totals = aggregate_sale([price_line(1, Decimal("10.00"))], amount_paid=Decimal("20.00"))

        assert totals.amount_due == Decimal("-10.00")
        assert totals.payment_status == PaymentStatus.PAID

    def test_explicit_payment_status_wins(self):
        totals = aggregate_sale(
            [price_line(1, Decimal("10.00"))], amount_paid=Decimal("0"), payment_status=PaymentStatus.PENDING
        )

        assert totals.payment_status == PaymentStatus.PENDING


# ===== CREACIÓN DE VENTAS =====

class TestCreateSale:

    async def test_creates_sale_with_lines_and_decrements_stock(self, session_factory, seed):
        sale_data = build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 2},
            {"inventory_id": seed.oil_id, "quantity": 1},
        ], customer_id=seed.customer_id, amount_paid=Decimal("40.00"))

        sale = await create_sale(session_factory, seed, sale_data)

        assert sale.sale_number == "POS-000001"
        assert sale.status == SaleStatus.COMPLETED
        assert sale.subtotal == Decimal("28.50")
        assert sale.tax_amount == Decimal("3.62")
        assert sale.total_amount == Decimal("32.12")
        assert sale.amount_due == Decimal("-7.88")
        assert sale.payment_status == PaymentStatus.PAID
        assert sale.created_by == seed.user_id
        assert sale.store_name == "Tienda Centro"
        assert sale.customer_name == "Carlos Pérez"
        assert sale.user_name == "Laura Gómez"

        assert [line.line_number for line in sale.line_items] == [1, 2]
        assert sale.line_items[0].item_name == "Arroz Diana 500g"
        assert sale.line_items[0].unit_price == Decimal("10.00")
        assert sale.line_items[1].tax_amount == Decimal("1.62")

        assert await current_stock(session_factory, seed, seed.rice_id) == 8
        assert await current_stock(session_factory, seed, seed.oil_id) == 4

    async def test_request_values_override_item_defaults(self, session_factory, seed):
        sale_data = build_sale(seed, items=[{
            "inventory_id": seed.rice_id, "quantity": 3,
            "unit_price": "10.00", "tax_percentage": "10", "discount_percentage": "5",
        }], amount_paid=Decimal("31.35"))

        sale = await create_sale(session_factory, seed, sale_data)

        line = sale.line_items[0]
        assert line.subtotal == Decimal("30.00")
        assert line.discount_amount == Decimal("1.50")
        assert line.tax_amount == Decimal("2.85")
        assert line.line_total == Decimal("31.35")
        assert sale.amount_due == Decimal("0.00")
        assert sale.payment_status == PaymentStatus.PAID

    async def test_records_out_movements_referencing_the_sale(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))

        async with session_factory() as session:
            movements = (await session.execute(select(InventoryMovement))).scalars().all()

        assert len(movements) == 1
        assert movements[0].movement_type == "OUT"
        assert movements[0].quantity == -2
        assert movements[0].stock_after == 8
        assert movements[0].reference == sale.sale_number

    async def test_insufficient_stock_rejects_whole_sale(self, session_factory, seed):
        sale_data = build_sale(seed, items=[
            {"inventory_id": seed.oil_id, "quantity": 1},
            {"inventory_id": seed.rice_id, "quantity": 11},
        ])

        with pytest.raises(InsufficientStockError) as exc_info:
            await create_sale(session_factory, seed, sale_data)

        assert exc_info.value.message == "Insufficient stock for item Arroz Diana 500g. Available: 10, Requested: 11"
        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await current_stock(session_factory, seed, seed.oil_id) == 5
        assert await count_rows(session_factory, Sale) == 0
        assert await count_rows(session_factory, SaleLineItem) == 0

    async def test_missing_item_rolls_back_everything(self, session_factory, seed):
        sale_data = build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 1},
            {"inventory_id": uuid4(), "quantity": 1},
        ])

        with pytest.raises(InventoryItemNotFoundError):
            await create_sale(session_factory, seed, sale_data)

        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await count_rows(session_factory, Sale) == 0
        assert await count_rows(session_factory, InventoryMovement) == 0

    async def test_repeated_item_cannot_oversell(self, session_factory, seed):
        sale_data = build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 6},
            {"inventory_id": seed.rice_id, "quantity": 6},
        ])

        with pytest.raises(InsufficientStockError) as exc_info:
            await create_sale(session_factory, seed, sale_data)

        assert exc_info.value.available == 4
        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await count_rows(session_factory, Sale) == 0

    async def test_stale_stock_read_is_caught_by_guarded_decrement(self, session_factory, seed, monkeypatch):
        async with session_factory() as session:
            await InventoryLedger(session, seed.tenant_id).decrement_stock(seed.rice_id, 8)
            await session.commit()

        original = InventoryLedger.get_sellable_item

        async def stale_sellable_item(self, inventory_id, store_id=None):
            item = await original(self, inventory_id, store_id)
            return item.model_copy(update={"stock": 10})

        monkeypatch.setattr(InventoryLedger, "get_sellable_item", stale_sellable_item)

        with pytest.raises(InsufficientStockError) as exc_info:
            await create_sale(session_factory, seed, build_sale(seed, items=[
                {"inventory_id": seed.rice_id, "quantity": 3}
            ]))

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3
        assert await current_stock(session_factory, seed, seed.rice_id) == 2
        assert await count_rows(session_factory, Sale) == 0
        assert await count_rows(session_factory, SaleLineItem) == 0

        monkeypatch.undo()
        sale = await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 2}
        ]))
        assert sale.sale_number == "POS-000001"
        assert await current_stock(session_factory, seed, seed.rice_id) == 0

    async def test_stored_line_amounts_match_unit_price(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 3, "unit_price": "3.33", "tax_percentage": "0"}
        ], amount_paid=Decimal("9.99")))

        line = sale.line_items[0]
        assert line.unit_price == Decimal("3.33")
        assert line.unit_price * line.quantity == line.subtotal
        assert sale.total_amount == Decimal("9.99")
        assert sale.payment_status == PaymentStatus.PAID

    async def test_quantity_above_column_range_fails_before_any_query(self, session_factory, seed):
        item = SaleItemCreate.model_construct(
            inventory_id=seed.rice_id, quantity=MAX_QUANTITY + 1,
            unit_price=None, tax_percentage=None, discount_percentage=None
        )
        sale_data = SaleCreate.model_construct(
            store_id=seed.store_id, customer_id=None, items=[item], payment_method="cash",
            payment_status=None, amount_paid=Decimal("0"), discount_amount=None, notes=None
        )

        with pytest.raises(SaleValidationError):
            await create_sale(session_factory, seed, sale_data)

        assert await current_stock(session_factory, seed, seed.rice_id) == 10

    async def test_storage_failure_rolls_back_and_propagates(self, session_factory, seed, monkeypatch):
        failure = OperationalError("UPDATE inventory_items", {}, Exception("disk I/O error"))
        original = InventoryLedger.decrement_stock
        calls = []

        async def failing_decrement(self, inventory_id, quantity, item_name=None):
            calls.append(inventory_id)
            if len(calls) == 2:
                raise failure
            return await original(self, inventory_id, quantity, item_name)

        monkeypatch.setattr(InventoryLedger, "decrement_stock", failing_decrement)
        sale_data = build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 1},
            {"inventory_id": seed.oil_id, "quantity": 1},
        ])

        with pytest.raises(OperationalError) as exc_info:
            await create_sale(session_factory, seed, sale_data)

        assert exc_info.value is failure
        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await count_rows(session_factory, Sale) == 0

    async def test_inactive_item_is_not_found(self, session_factory, seed):
        with pytest.raises(InventoryItemNotFoundError):
            await create_sale(session_factory, seed, build_sale(seed, items=[
                {"inventory_id": seed.discontinued_id, "quantity": 1}
            ]))

    async def test_item_from_another_store_is_not_found(self, session_factory, seed):
        with pytest.raises(InventoryItemNotFoundError):
            await create_sale(session_factory, seed, build_sale(seed, items=[
                {"inventory_id": seed.branch_rice_id, "quantity": 1}
            ]))

    async def test_unknown_store(self, session_factory, seed):
        with pytest.raises(StoreNotFoundError):
            await create_sale(session_factory, seed, build_sale(seed, store_id=uuid4()))

    async def test_store_from_another_tenant(self, session_factory, seed):
        with pytest.raises(StoreNotFoundError):
            await create_sale(session_factory, seed, build_sale(seed, store_id=seed.foreign_store_id))

    async def test_unknown_customer(self, session_factory, seed):
        with pytest.raises(CustomerNotFoundError):
            await create_sale(session_factory, seed, build_sale(seed, customer_id=uuid4()))

    async def test_discount_larger_than_sale_is_rejected(self, session_factory, seed):
        with pytest.raises(SaleDiscountError):
            await create_sale(session_factory, seed, build_sale(seed, discount_amount=Decimal("20.01")))

        assert await current_stock(session_factory, seed, seed.rice_id) == 10

    async def test_empty_items_fail_before_any_query(self, session_factory, seed):
        sale_data = SaleCreate.model_construct(
            store_id=seed.store_id, customer_id=None, items=[], payment_method="cash",
            payment_status=None, amount_paid=Decimal("0"), discount_amount=None, notes=None
        )

        with pytest.raises(SaleValidationError):
            await create_sale(session_factory, seed, sale_data)

    async def test_partial_payment(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed, amount_paid=Decimal("10.00")))

        assert sale.total_amount == Decimal("22.00")
        assert sale.amount_due == Decimal("12.00")
        assert sale.payment_status == PaymentStatus.PARTIAL

    async def test_explicit_pending_status(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(
            seed, amount_paid=Decimal("0"), payment_status=PaymentStatus.PENDING
        ))

        assert sale.payment_status == PaymentStatus.PENDING


class TestSaleNumbering:

    async def test_numbers_are_sequential_per_store(self, session_factory, seed):
        first = await create_sale(session_factory, seed, build_sale(seed))
        second = await create_sale(session_factory, seed, build_sale(seed))
        branch = await create_sale(session_factory, seed, build_sale(
            seed, store_id=seed.branch_store_id,
            items=[{"inventory_id": seed.branch_rice_id, "quantity": 1}]
        ))

        assert first.sale_number == "POS-000001"
        assert second.sale_number == "POS-000002"
        assert branch.sale_number == "POS-000001"

    async def test_failed_sale_does_not_consume_a_number(self, session_factory, seed):
        # Falla en el descuento de stock, después de reservar el número
        with pytest.raises(InsufficientStockError):
            await create_sale(session_factory, seed, build_sale(seed, items=[
                {"inventory_id": seed.rice_id, "quantity": 6},
                {"inventory_id": seed.rice_id, "quantity": 6},
            ]))

        sale = await create_sale(session_factory, seed, build_sale(seed))

        assert sale.sale_number == "POS-000001"


class TestConcurrentSales:

    async def test_concurrent_sales_never_oversell(self, session_factory, seed):
        sale_data = build_sale(seed, items=[{"inventory_id": seed.rice_id, "quantity": 3}])

        async def attempt():
            try:
                await create_sale(session_factory, seed, sale_data)
                return "ok"
            except InsufficientStockError:
                return "insufficient"

        results = await asyncio.gather(*[attempt() for _ in range(5)])

        assert results.count("ok") == 3
        assert results.count("insufficient") == 2
        assert await current_stock(session_factory, seed, seed.rice_id) == 1

        async with session_factory() as session:
            numbers = (await session.execute(select(Sale.sale_number))).scalars().all()
        assert sorted(numbers) == ["POS-000001", "POS-000002", "POS-000003"]


class TestLowStockAlerts:

    async def test_alert_dispatched_after_commit(self, session_factory, seed, monkeypatch):
        dispatched = []
        monkeypatch.setattr(
            pos_services, "notify_low_stock",
            SimpleNamespace(delay=lambda tenant_id, alerts: dispatched.append((tenant_id, alerts)))
        )

        await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 8},
            {"inventory_id": seed.oil_id, "quantity": 1},
        ]))

        assert len(dispatched) == 1
        tenant_id, alerts = dispatched[0]
        assert tenant_id == str(seed.tenant_id)
        assert [alert["item_code"] for alert in alerts] == ["ARR-500"]
        assert alerts[0]["stock"] == 2

    async def test_dispatch_failure_keeps_the_sale(self, session_factory, seed, monkeypatch):
        def broken_delay(tenant_id, alerts):
            raise ConnectionError("broker unavailable")

        monkeypatch.setattr(pos_services, "notify_low_stock", SimpleNamespace(delay=broken_delay))

        sale = await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 9}
        ]))

        assert sale.status == SaleStatus.COMPLETED
        assert await current_stock(session_factory, seed, seed.rice_id) == 1

    async def test_eager_task_runs_in_process(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.oil_id, "quantity": 5}
        ]))

        assert sale.sale_number == "POS-000001"
        assert await current_stock(session_factory, seed, seed.oil_id) == 0


# ===== CANCELACIÓN =====

class TestCancelSale:

    async def test_cancel_restores_stock(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed, items=[
            {"inventory_id": seed.rice_id, "quantity": 4}
        ]))
        assert await current_stock(session_factory, seed, seed.rice_id) == 6

        async with session_factory() as session:
            cancelled = await SaleService(session, seed.tenant_id).cancel_sale(
                sale.id, user_id=seed.user_id, reason="Cliente desistió"
            )

        assert cancelled.status == SaleStatus.CANCELLED
        assert cancelled.cancelled_by == seed.user_id
        assert cancelled.updated_by == seed.user_id
        assert cancelled.cancelled_at is not None
        assert cancelled.notes == "[CANCELLED] Cliente desistió"
        assert cancelled.total_amount == sale.total_amount
        assert len(cancelled.line_items) == 1
        assert await current_stock(session_factory, seed, seed.rice_id) == 10

    async def test_cancel_records_in_movements(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))

        async with session_factory() as session:
            await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        async with session_factory() as session:
            movements = (await session.execute(
                select(InventoryMovement).where(InventoryMovement.movement_type == "IN")
            )).scalars().all()

        assert len(movements) == 1
        assert movements[0].quantity == 2
        assert movements[0].stock_after == 10
        assert movements[0].reference == sale.sale_number

    async def test_second_cancel_is_rejected(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))

        async with session_factory() as session:
            await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        async with session_factory() as session:
            with pytest.raises(SaleStateError) as exc_info:
                await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        assert exc_info.value.message == "Sale is already cancelled"
        assert await current_stock(session_factory, seed, seed.rice_id) == 10

    async def test_concurrent_cancels_restore_stock_once(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))

        async def attempt():
            async with session_factory() as session:
                try:
                    await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)
                    return "ok"
                except SaleStateError:
                    return "rejected"

        results = await asyncio.gather(attempt(), attempt())

        assert sorted(results) == ["ok", "rejected"]
        assert await current_stock(session_factory, seed, seed.rice_id) == 10

    async def test_refunded_sale_cannot_be_cancelled(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))
        async with session_factory() as session:
            stored = await session.get(Sale, sale.id)
            stored.status = SaleStatus.REFUNDED
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(SaleStateError) as exc_info:
                await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        assert exc_info.value.message == "Cannot cancel a refunded sale"
        assert await current_stock(session_factory, seed, seed.rice_id) == 8

    async def test_unknown_sale(self, session_factory, seed):
        async with session_factory() as session:
            with pytest.raises(SaleNotFoundError):
                await SaleService(session, seed.tenant_id).cancel_sale(uuid4(), user_id=seed.user_id)

    async def test_sale_from_another_tenant_is_not_found(self, session_factory, seed):
        sale = await create_sale(session_factory, seed, build_sale(seed))

        async with session_factory() as session:
            with pytest.raises(SaleNotFoundError):
                await SaleService(session, seed.other_tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        assert await current_stock(session_factory, seed, seed.rice_id) == 8

    async def test_restock_applies_to_deactivated_item(self, session_factory, seed):
        from app.modules.inventory.models import InventoryItem

        sale = await create_sale(session_factory, seed, build_sale(seed))
        async with session_factory() as session:
            item = await session.get(InventoryItem, seed.rice_id)
            item.is_active = False
            await session.commit()

        async with session_factory() as session:
            await SaleService(session, seed.tenant_id).cancel_sale(sale.id, user_id=seed.user_id)

        assert await current_stock(session_factory, seed, seed.rice_id) == 10


# ===== CONSULTAS =====

class TestSaleQueries:

    @pytest.fixture
    async def sales(self, session_factory, seed):
        first = await create_sale(session_factory, seed, build_sale(
            seed, customer_id=seed.customer_id, amount_paid=Decimal("22.00")
        ))
        second = await create_sale(session_factory, seed, build_sale(
            seed, items=[{"inventory_id": seed.oil_id, "quantity": 2}], amount_paid=Decimal("5.00")
        ))
        third = await create_sale(session_factory, seed, build_sale(
            seed, items=[{"inventory_id": seed.rice_id, "quantity": 1}], amount_paid=Decimal("11.00")
        ))
        async with session_factory() as session:
            await SaleService(session, seed.tenant_id).cancel_sale(third.id, user_id=seed.user_id)
        return [first, second, third]

    async def test_get_sale_includes_related_names(self, session_factory, seed, sales):
        async with session_factory() as session:
            sale = await SaleQueryService(session, seed.tenant_id).get_sale(sales[0].id)

        assert sale.customer_phone == "3001234567"
        assert sale.customer_email == "carlos@example.com"
        assert sale.store_name == "Tienda Centro"

    async def test_get_sale_from_another_tenant(self, session_factory, seed, sales):
        async with session_factory() as session:
            with pytest.raises(SaleNotFoundError):
                await SaleQueryService(session, seed.other_tenant_id).get_sale(sales[0].id)

    async def test_list_defaults(self, session_factory, seed, sales):
        async with session_factory() as session:
            result = await SaleQueryService(session, seed.tenant_id).list_sales(SaleFilters())

        assert result["total"] == 3
        assert result["page"] == 1
        assert result["total_pages"] == 1

    async def test_list_filters_by_status_and_payment(self, session_factory, seed, sales):
        async with session_factory() as session:
            service = SaleQueryService(session, seed.tenant_id)
            completed = await service.list_sales(SaleFilters(status=SaleStatus.COMPLETED))
            partial = await service.list_sales(SaleFilters(payment_status=PaymentStatus.PARTIAL))

        assert completed["total"] == 2
        assert [sale.sale_number for sale in partial["sales"]] == ["POS-000002"]

    async def test_list_search_by_customer_name(self, session_factory, seed, sales):
        async with session_factory() as session:
            result = await SaleQueryService(session, seed.tenant_id).list_sales(SaleFilters(), search="carlos")

        assert [sale.sale_number for sale in result["sales"]] == ["POS-000001"]

    async def test_list_search_by_sale_number(self, session_factory, seed, sales):
        async with session_factory() as session:
            result = await SaleQueryService(session, seed.tenant_id).list_sales(SaleFilters(), search="000003")

        assert result["total"] == 1

    async def test_list_sorting_and_pagination(self, session_factory, seed, sales):
        async with session_factory() as session:
            service = SaleQueryService(session, seed.tenant_id)
            page_one = await service.list_sales(SaleFilters(), page=1, limit=2, sort="sale_number:asc")
            page_two = await service.list_sales(SaleFilters(), page=2, limit=2, sort="sale_number:asc")

        assert [s.sale_number for s in page_one["sales"]] == ["POS-000001", "POS-000002"]
        assert [s.sale_number for s in page_two["sales"]] == ["POS-000003"]
        assert page_one["total_pages"] == 2

    async def test_list_ignores_unknown_sort_field(self, session_factory, seed, sales):
        async with session_factory() as session:
            result = await SaleQueryService(session, seed.tenant_id).list_sales(SaleFilters(), sort="notes:asc")

        assert result["total"] == 3

    async def test_list_date_range(self, session_factory, seed, sales):
        today = date.today()
        async with session_factory() as session:
            service = SaleQueryService(session, seed.tenant_id)
            around_today = await service.list_sales(SaleFilters(
                start_date=today - timedelta(days=1), end_date=today + timedelta(days=1)
            ))
            future = await service.list_sales(SaleFilters(start_date=today + timedelta(days=2)))

        assert around_today["total"] == 3
        assert future["total"] == 0

    async def test_statistics_exclude_cancelled_sales(self, session_factory, seed, sales):
        async with session_factory() as session:
            stats = await SaleQueryService(session, seed.tenant_id).get_statistics()

        # 22.00 + 20.23
        assert stats["total_sales"] == 2
        assert stats["total_revenue"] == Decimal("42.23")
        assert stats["total_collected"] == Decimal("27.00")
        assert stats["total_outstanding"] == Decimal("15.23")
        assert stats["average_sale_amount"] == Decimal("21.12")

    async def test_statistics_without_sales(self, session_factory, seed):
        async with session_factory() as session:
            stats = await SaleQueryService(session, seed.tenant_id).get_statistics()

        assert stats["total_sales"] == 0
        assert stats["total_revenue"] == Decimal("0.00")


# ===== ENDPOINTS =====

class TestSalesAPI:

    async def test_create_sale(self, client, seed, auth_headers):
        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json={
            "store_id": str(seed.store_id),
            "items": [{
                "inventory_id": str(seed.rice_id), "quantity": 3,
                "unit_price": "10.00", "tax_percentage": "10", "discount_percentage": "5"
            }],
            "amount_paid": "31.35",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["sale_number"] == "POS-000001"
        assert Decimal(body["total_amount"]) == Decimal("31.35")
        assert body["payment_status"] == "paid"
        assert body["status"] == "completed"
        assert body["items"][0]["line_number"] == 1
        assert Decimal(body["items"][0]["tax_amount"]) == Decimal("2.85")
        assert body["store_name"] == "Tienda Centro"
        assert body["user_name"] == "Laura Gómez"

    async def test_insufficient_stock_is_conflict(self, client, seed, auth_headers):
        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json={
            "store_id": str(seed.store_id),
            "items": [{"inventory_id": str(seed.rice_id), "quantity": 11}],
            "amount_paid": "0",
        })

        assert response.status_code == 409
        assert response.json() == {
            "detail": "Insufficient stock for item Arroz Diana 500g. Available: 10, Requested: 11",
            "error": "InsufficientStockError",
        }

    async def test_unknown_item_is_not_found(self, client, seed, auth_headers):
        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json={
            "store_id": str(seed.store_id),
            "items": [{"inventory_id": str(uuid4()), "quantity": 1}],
            "amount_paid": "0",
        })

        assert response.status_code == 404
        assert response.json()["error"] == "InventoryItemNotFoundError"

    @pytest.mark.parametrize("payload_update", [
        {"items": []},
        {"items": [{"quantity": 1}]},
        {"amount_paid": "-1"},
    ])
    async def test_invalid_payload(self, client, seed, auth_headers, payload_update):
        payload = {
            "store_id": str(seed.store_id),
            "items": [{"inventory_id": str(seed.rice_id), "quantity": 1}],
            "amount_paid": "10",
        }
        payload.update(payload_update)

        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json=payload)

        assert response.status_code == 422

    async def test_zero_quantity_is_rejected(self, client, session_factory, seed, auth_headers):
        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json={
            "store_id": str(seed.store_id),
            "items": [{"inventory_id": str(seed.rice_id), "quantity": 0}],
            "amount_paid": "0",
        })

        assert response.status_code == 422
        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await count_rows(session_factory, Sale) == 0

    @pytest.mark.parametrize("item_update, payload_update", [
        ({"unit_price": "3.335"}, {}),
        ({"discount_percentage": "5.125"}, {}),
        ({}, {"amount_paid": "9.995"}),
        ({}, {"discount_amount": "0.005"}),
        ({"quantity": 2147483648}, {}),
    ])
    async def test_out_of_range_values_are_rejected(
        self, client, session_factory, seed, auth_headers, item_update, payload_update
    ):
        item = {"inventory_id": str(seed.rice_id), "quantity": 1}
        item.update(item_update)
        payload = {"store_id": str(seed.store_id), "items": [item], "amount_paid": "10.00"}
        payload.update(payload_update)

        response = await client.post("/api/v1/pos/sales", headers=auth_headers, json=payload)

        assert response.status_code == 422
        assert await current_stock(session_factory, seed, seed.rice_id) == 10
        assert await count_rows(session_factory, Sale) == 0

    async def test_get_list_statistics_and_cancel(self, client, seed, auth_headers):
        created = await client.post("/api/v1/pos/sales", headers=auth_headers, json={
            "store_id": str(seed.store_id),
            "customer_id": str(seed.customer_id),
            "items": [{"inventory_id": str(seed.rice_id), "quantity": 2}],
            "amount_paid": "22.00",
        })
        sale_id = created.json()["id"]

        detail = await client.get(f"/api/v1/pos/sales/{sale_id}", headers=auth_headers)
        assert detail.status_code == 200
        assert detail.json()["customer_name"] == "Carlos Pérez"

        listing = await client.get("/api/v1/pos/sales", headers=auth_headers, params={"search": "Carlos"})
        assert listing.status_code == 200
        assert listing.json()["total"] == 1

        stats = await client.get("/api/v1/pos/sales/statistics", headers=auth_headers)
        assert stats.status_code == 200
        assert stats.json()["total_sales"] == 1

        cancelled = await client.post(
            f"/api/v1/pos/sales/{sale_id}/cancel", headers=auth_headers, json={"reason": "Error de caja"}
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["notes"] == "[CANCELLED] Error de caja"

        again = await client.post(f"/api/v1/pos/sales/{sale_id}/cancel", headers=auth_headers)
        assert again.status_code == 409
        assert again.json()["detail"] == "Sale is already cancelled"

    async def test_unknown_sale_is_not_found(self, client, seed, auth_headers):
        response = await client.get(f"/api/v1/pos/sales/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"detail": "Sale not found", "error": "SaleNotFoundError"}

    async def test_missing_company_header(self, client, seed, token_for):
        token = token_for(seed.user_id, seed.tenant_id)
        response = await client.get("/api/v1/pos/sales", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 400

    async def test_missing_token(self, client, seed):
        response = await client.get("/api/v1/pos/sales", headers={"X-Company-ID": str(seed.tenant_id)})

        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client, seed):
        response = await client.get("/api/v1/pos/sales", headers={
            "Authorization": "Bearer not-a-token",
            "X-Company-ID": str(seed.tenant_id),
        })

        assert response.status_code == 401

    async def test_token_for_another_company(self, client, seed, token_for):
        token = token_for(seed.user_id, seed.other_tenant_id)
        response = await client.get("/api/v1/pos/sales", headers={
            "Authorization": f"Bearer {token}",
            "X-Company-ID": str(seed.tenant_id),
        })

        assert response.status_code == 403

    async def test_missing_permission(self, client, seed, token_for):
        token = token_for(seed.user_id, seed.tenant_id, role="viewer", permissions=["pos.read"])
        headers = {"Authorization": f"Bearer {token}", "X-Company-ID": str(seed.tenant_id)}

        listing = await client.get("/api/v1/pos/sales", headers=headers)
        creation = await client.post("/api/v1/pos/sales", headers=headers, json={
            "store_id": str(seed.store_id),
            "items": [{"inventory_id": str(seed.rice_id), "quantity": 1}],
            "amount_paid": "11",
        })

        assert listing.status_code == 200
        assert creation.status_code == 403

    async def test_owner_has_every_permission(self, client, seed, token_for):
        token = token_for(seed.user_id, seed.tenant_id, role="owner", permissions=[])
        response = await client.get("/api/v1/pos/sales/statistics", headers={
            "Authorization": f"Bearer {token}",
            "X-Company-ID": str(seed.tenant_id),
        })

        assert response.status_code == 200

    async def test_health_needs_no_tenant(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
