"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa:
- SaleService: Creación atómica de ventas y cancelación con restauración de stock
- SaleQueryService: Lectura de ventas ensambladas, listados y estadísticas

Cada operación de escritura corre en una única transacción de base de datos.
Ante cualquier falla se revierte todo (encabezado, líneas, stock, movimientos)
y se propaga la excepción original sin modificarla.

Integración con otros módulos:
- Inventory: InventoryLedger es el único que escribe el stock
- Stores/Customers: validación de referencias dentro del tenant
- Celery: alertas de stock mínimo después del commit
"""

import logging
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.common.exceptions import (
    CustomerNotFoundError, InsufficientStockError, InventoryItemNotFoundError,
    POSError, SaleNotFoundError, SaleStateError, SaleValidationError, StoreNotFoundError
)
from app.common.mixins import RecordState
from app.core.config import settings
from app.modules.customers.models import Customer
from app.modules.inventory.models import MovementType
from app.modules.inventory.schemas import LowStockAlert, SellableItem
from app.modules.inventory.service import InventoryLedger
from app.modules.inventory.tasks import notify_low_stock
from app.modules.pos.models import Sale, SaleLineItem, SaleSequence, SaleStatus
from app.modules.pos.pricing import MAX_QUANTITY, LinePricing, aggregate_sale, price_line, round_money
from app.modules.pos.schemas import SaleCreate, SaleFilters
from app.modules.stores.models import Store

logger = logging.getLogger(__name__)


SORTABLE_FIELDS = {
    "sale_date": Sale.sale_date,
    "sale_number": Sale.sale_number,
    "total_amount": Sale.total_amount,
    "created_at": Sale.created_at,
}


class SaleService:
    """Servicio para ventas POS y su cancelación"""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.ledger = InventoryLedger(db, tenant_id)

    async def create_sale(self, sale_data: SaleCreate, user_id: UUID) -> Sale:
        """
        Crear venta POS completa

        Proceso (una sola transacción):
        1. Valida tienda y cliente
        2. Por cada ítem, en el orden recibido: valida existencia y stock, calcula montos
        3. Calcula totales de la venta
        4. Inserta encabezado con número secuencial
        5. Inserta líneas con snapshot del ítem
        6. Descuenta stock con UPDATE condicional y registra movimientos
        7. Commit; ante cualquier error, rollback completo
        8. Retorna la venta ensamblada
        """
        self._validate_request(sale_data)

        try:
            store = await self._get_store(sale_data.store_id)
            if sale_data.customer_id is not None:
                await self._get_customer(sale_data.customer_id)

            priced_lines: List[Tuple[SellableItem, LinePricing]] = []
            for item_data in sale_data.items:
                item = await self.ledger.get_sellable_item(item_data.inventory_id, store.id)
                if item is None:
                    raise InventoryItemNotFoundError(item_data.inventory_id)

                if item.stock < item_data.quantity:
                    raise InsufficientStockError(item.item_name, item.stock, item_data.quantity)

                pricing = price_line(
                    quantity=item_data.quantity,
                    unit_price=item_data.unit_price if item_data.unit_price is not None else item.price,
                    tax_percentage=item_data.tax_percentage if item_data.tax_percentage is not None else item.tax_percentage,
                    discount_percentage=item_data.discount_percentage or Decimal("0"),
                )
                priced_lines.append((item, pricing))

            totals = aggregate_sale(
                [pricing for _, pricing in priced_lines],
                amount_paid=sale_data.amount_paid,
                sale_discount=sale_data.discount_amount,
                payment_status=sale_data.payment_status,
            )

            sale_number = await self._next_sale_number(store.id)

            sale = Sale(
                tenant_id=self.tenant_id,
                sale_number=sale_number,
                store_id=store.id,
                customer_id=sale_data.customer_id,
                user_id=user_id,
                payment_method=sale_data.payment_method,
                notes=sale_data.notes,
                status=SaleStatus.COMPLETED,
                record_state=RecordState.ACTIVE,
                created_by=user_id,
                **totals.model_dump()
            )
            self.db.add(sale)
            await self.db.flush()  # Para obtener el ID

            for line_number, (item, pricing) in enumerate(priced_lines, start=1):
                self.db.add(SaleLineItem(
                    tenant_id=self.tenant_id,
                    sale_id=sale.id,
                    line_number=line_number,
                    inventory_id=item.id,
                    item_name=item.item_name,
                    item_code=item.item_code,
                    unit=item.unit,
                    **pricing.model_dump()
                ))
            await self.db.flush()

            low_stock: List[LowStockAlert] = []
            for item, pricing in priced_lines:
                new_stock = await self.ledger.decrement_stock(item.id, pricing.quantity, item.item_name)
                self.ledger.record_movement(
                    inventory_id=item.id,
                    store_id=store.id,
                    quantity=-pricing.quantity,  # Negativo porque es salida
                    stock_after=new_stock,
                    movement_type=MovementType.OUT,
                    user_id=user_id,
                    reference=sale_number,
                    notes=f"Venta POS {sale_number}",
                )
                if new_stock <= item.min_stock:
                    low_stock.append(LowStockAlert(
                        inventory_id=item.id,
                        item_name=item.item_name,
                        item_code=item.item_code,
                        stock=new_stock,
                        min_stock=item.min_stock,
                        store_id=store.id,
                    ))

            await self.db.commit()

        except POSError as e:
            await self.db.rollback()
            logger.warning(
                f"Sale rejected for tenant {self.tenant_id}, store {sale_data.store_id}: {e.message}"
            )
            raise
        except Exception:
            await self.db.rollback()
            logger.error(
                f"Error creating sale for tenant {self.tenant_id}, store {sale_data.store_id}, "
                f"user {user_id}, {len(sale_data.items)} items",
                exc_info=True
            )
            raise

        logger.info(
            f"Sale {sale_number} created for tenant {self.tenant_id}: "
            f"{len(priced_lines)} lines, total {totals.total_amount}, status {totals.payment_status.value}"
        )
        self._dispatch_low_stock_alerts(low_stock)

        return await SaleQueryService(self.db, self.tenant_id).get_sale(sale.id)

    async def cancel_sale(self, sale_id: UUID, user_id: UUID, reason: Optional[str] = None) -> Sale:
        """
        Cancelar venta con reversión completa de inventario

        Solo COMPLETED → CANCELLED. No recalcula montos ni borra líneas;
        restaura el stock de cada línea y cambia el estado.

        El cambio de estado es un UPDATE condicional sobre status = completed,
        ejecutado antes de restaurar stock: una segunda cancelación concurrente
        espera el bloqueo de la fila, vuelve a evaluar el estado y no afecta filas.
        """
        try:
            sale = await self._load_sale_with_lines(sale_id)
            if sale is None:
                raise SaleNotFoundError(sale_id)
            self._check_cancellable(sale.status)

            notes = sale.notes
            if reason:
                notes = f"{notes}\n\n[CANCELLED] {reason}" if notes else f"[CANCELLED] {reason}"

            flipped = await self.db.execute(
                update(Sale)
                .where(
                    Sale.id == sale_id,
                    Sale.tenant_id == self.tenant_id,
                    Sale.record_state == RecordState.ACTIVE,
                    Sale.status == SaleStatus.COMPLETED,
                )
                .values(
                    status=SaleStatus.CANCELLED,
                    notes=notes,
                    updated_by=user_id,
                    cancelled_by=user_id,
                    cancelled_at=func.now(),
                )
                .returning(Sale.id)
                .execution_options(synchronize_session=False)
            )
            if flipped.scalar_one_or_none() is None:
                current_status = await self.db.scalar(
                    select(Sale.status).where(
                        Sale.id == sale_id,
                        Sale.tenant_id == self.tenant_id,
                        Sale.record_state == RecordState.ACTIVE,
                    )
                )
                if current_status is None:
                    raise SaleNotFoundError(sale_id)
                self._check_cancellable(current_status)
                raise SaleStateError(f"Sale cannot be cancelled from status {current_status.value}")

            for line in sale.line_items:
                new_stock = await self.ledger.increment_stock(line.inventory_id, line.quantity)
                self.ledger.record_movement(
                    inventory_id=line.inventory_id,
                    store_id=sale.store_id,
                    quantity=line.quantity,  # Positivo porque es entrada (reversión)
                    stock_after=new_stock,
                    movement_type=MovementType.IN,
                    user_id=user_id,
                    reference=sale.sale_number,
                    notes=f"Cancelación venta {sale.sale_number}",
                )

            await self.db.commit()

        except POSError as e:
            await self.db.rollback()
            logger.warning(f"Cancellation rejected for sale {sale_id} (tenant {self.tenant_id}): {e.message}")
            raise
        except Exception:
            await self.db.rollback()
            logger.error(f"Error canceling sale {sale_id} for tenant {self.tenant_id}", exc_info=True)
            raise

        logger.info(f"Sale {sale.sale_number} cancelled by {user_id}; {len(sale.line_items)} lines restocked")

        return await SaleQueryService(self.db, self.tenant_id).get_sale(sale_id)

    # ===== HELPERS =====

    @staticmethod
    def _validate_request(sale_data: SaleCreate) -> None:
        """Validaciones de entrada, antes de cualquier acceso a base de datos"""
        if sale_data.store_id is None:
            raise SaleValidationError("store_id is required")
        if not sale_data.items:
            raise SaleValidationError("items must be a non-empty list")
        for item in sale_data.items:
            if item.inventory_id is None or item.quantity is None or item.quantity <= 0:
                raise SaleValidationError("Each item must have inventory_id and quantity > 0")
            if item.quantity > MAX_QUANTITY:
                raise SaleValidationError(f"quantity must be <= {MAX_QUANTITY}")
            if item.unit_price is not None and item.unit_price < 0:
                raise SaleValidationError("unit_price must be >= 0")
        if sale_data.amount_paid is None or sale_data.amount_paid < 0:
            raise SaleValidationError("amount_paid is required and must be >= 0")
        if sale_data.discount_amount is not None and sale_data.discount_amount < 0:
            raise SaleValidationError("discount_amount must be >= 0")

    @staticmethod
    def _check_cancellable(current_status: SaleStatus) -> None:
        if current_status == SaleStatus.CANCELLED:
            raise SaleStateError("Sale is already cancelled")
        if current_status == SaleStatus.REFUNDED:
            raise SaleStateError("Cannot cancel a refunded sale")

    async def _get_store(self, store_id: UUID) -> Store:
        store = await self.db.scalar(
            select(Store).where(
                Store.id == store_id,
                Store.tenant_id == self.tenant_id,
                Store.record_state == RecordState.ACTIVE,
                Store.is_active.is_(True),
            )
        )
        if store is None:
            raise StoreNotFoundError(f"Store with id {store_id} not found")
        return store

    async def _get_customer(self, customer_id: UUID) -> Customer:
        customer = await self.db.scalar(
            select(Customer).where(
                Customer.id == customer_id,
                Customer.tenant_id == self.tenant_id,
                Customer.record_state == RecordState.ACTIVE,
            )
        )
        if customer is None:
            raise CustomerNotFoundError(f"Customer with id {customer_id} not found")
        return customer

    async def _load_sale_with_lines(self, sale_id: UUID) -> Optional[Sale]:
        result = await self.db.execute(
            select(Sale)
            .options(selectinload(Sale.line_items))
            .where(
                Sale.id == sale_id,
                Sale.tenant_id == self.tenant_id,
                Sale.record_state == RecordState.ACTIVE,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _next_sale_number(self, store_id: UUID) -> str:
        """
        Generar número de venta secuencial por tienda

        El contador avanza con un único UPDATE ... RETURNING. La primera venta
        de la tienda crea la fila dentro de un savepoint; si otra transacción
        la creó primero, se reintenta el UPDATE.
        """
        advance = (
            update(SaleSequence)
            .where(
                SaleSequence.tenant_id == self.tenant_id,
                SaleSequence.store_id == store_id,
            )
            .values(current_number=SaleSequence.current_number + 1)
            .returning(SaleSequence.prefix, SaleSequence.current_number)
            .execution_options(synchronize_session=False)
        )

        row = (await self.db.execute(advance)).one_or_none()
        if row is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(SaleSequence(
                        tenant_id=self.tenant_id,
                        store_id=store_id,
                        prefix=settings.SALE_NUMBER_PREFIX,
                        current_number=0,
                    ))
            except IntegrityError:
                logger.debug(f"Sale sequence for store {store_id} created concurrently")
            row = (await self.db.execute(advance)).one()

        prefix, number = row
        return f"{prefix}{number:0{settings.SALE_NUMBER_PADDING}d}"

    def _dispatch_low_stock_alerts(self, alerts: List[LowStockAlert]) -> None:
        """Encolar alertas de stock mínimo. La venta ya está confirmada; una falla aquí solo se registra."""
        if not alerts or not settings.LOW_STOCK_ALERTS_ENABLED:
            return
        try:
            notify_low_stock.delay(str(self.tenant_id), [alert.model_dump(mode="json") for alert in alerts])
        except Exception as e:
            logger.warning(f"Could not dispatch low stock alerts for tenant {self.tenant_id}: {e}")


class SaleQueryService:
    """Lectura de ventas con datos relacionados"""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _base_query(self):
        return select(Sale).where(
            Sale.tenant_id == self.tenant_id,
            Sale.record_state == RecordState.ACTIVE,
        )

    async def get_sale(self, sale_id: UUID) -> Sale:
        """Venta con líneas ordenadas y nombres de tienda, cliente y usuario"""
        result = await self.db.execute(
            self._base_query()
            .where(Sale.id == sale_id)
            .options(
                selectinload(Sale.line_items),
                joinedload(Sale.store),
                joinedload(Sale.customer),
                joinedload(Sale.user),
            )
            .execution_options(populate_existing=True)
        )
        sale = result.unique().scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    async def list_sales(
        self,
        filters: SaleFilters,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_SIZE,
        sort: Optional[str] = None,
    ) -> dict:
        """Listado paginado con filtros, búsqueda por número o cliente y orden validado"""
        page = max(1, page)
        limit = min(settings.MAX_PAGE_SIZE, max(1, limit))

        conditions = [
            Sale.tenant_id == self.tenant_id,
            Sale.record_state == RecordState.ACTIVE,
        ]
        if filters.store_id:
            conditions.append(Sale.store_id == filters.store_id)
        if filters.customer_id:
            conditions.append(Sale.customer_id == filters.customer_id)
        if filters.user_id:
            conditions.append(Sale.user_id == filters.user_id)
        if filters.payment_status:
            conditions.append(Sale.payment_status == filters.payment_status)
        if filters.status:
            conditions.append(Sale.status == filters.status)
        if filters.start_date:
            conditions.append(Sale.sale_date >= datetime.combine(filters.start_date, time.min))
        if filters.end_date:
            conditions.append(Sale.sale_date < datetime.combine(filters.end_date + timedelta(days=1), time.min))
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Sale.sale_number.ilike(pattern), Customer.name.ilike(pattern)))

        count_stmt = (
            select(func.count(Sale.id))
            .select_from(Sale)
            .outerjoin(Customer, Sale.customer_id == Customer.id)
            .where(*conditions)
        )
        total = (await self.db.execute(count_stmt)).scalar_one()

        sort_column, descending = self._parse_sort(sort)
        stmt = (
            select(Sale)
            .outerjoin(Customer, Sale.customer_id == Customer.id)
            .where(*conditions)
            .options(
                joinedload(Sale.store),
                joinedload(Sale.customer),
                joinedload(Sale.user),
            )
            .order_by(sort_column.desc() if descending else sort_column.asc(), Sale.id)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        sales = (await self.db.execute(stmt)).unique().scalars().all()

        return {
            "sales": sales,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    async def get_statistics(
        self,
        store_id: Optional[UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Resumen de ventas completadas"""
        stmt = select(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.coalesce(func.sum(Sale.amount_paid), 0),
            func.coalesce(func.sum(Sale.amount_due), 0),
        ).where(
            Sale.tenant_id == self.tenant_id,
            Sale.record_state == RecordState.ACTIVE,
            Sale.status == SaleStatus.COMPLETED,
        )
        if store_id:
            stmt = stmt.where(Sale.store_id == store_id)
        if start_date:
            stmt = stmt.where(Sale.sale_date >= datetime.combine(start_date, time.min))
        if end_date:
            stmt = stmt.where(Sale.sale_date < datetime.combine(end_date + timedelta(days=1), time.min))

        count, revenue, collected, outstanding = (await self.db.execute(stmt)).one()
        revenue = round_money(Decimal(str(revenue)))

        return {
            "total_sales": count,
            "total_revenue": revenue,
            "total_collected": round_money(Decimal(str(collected))),
            "total_outstanding": round_money(Decimal(str(outstanding))),
            "average_sale_amount": round_money(revenue / count) if count else round_money(Decimal("0")),
        }

    @staticmethod
    def _parse_sort(sort: Optional[str]):
        """'campo:dirección' con campo en la lista permitida; por defecto sale_date:desc"""
        if not sort:
            return Sale.sale_date, True
        field, _, direction = sort.partition(":")
        column = SORTABLE_FIELDS.get(field.strip())
        if column is None:
            return Sale.sale_date, True
        return column, direction.strip().lower() != "asc"
