"""
Routers FastAPI para el módulo POS (Point of Sale)

Endpoints REST para ventas:
- Creación atómica de ventas con descuento de inventario
- Consulta, listado y estadísticas
- Cancelación con restauración de stock

Todos los endpoints implementan:
- Validación de permisos (pos.create, pos.read, pos.update)
- Filtros multi-tenant automáticos
- Paginación y ordenamiento
"""

from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional
from uuid import UUID
from datetime import date

from app.core.config import settings
from app.dependencies.dbDependecies import async_db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.pos.models import PaymentStatus, SaleStatus
from app.modules.pos.schemas import (
    SaleCreate, SaleCancel, SaleOut, SaleList, SaleFilters, SaleStatistics
)
from app.modules.pos.services import SaleService, SaleQueryService


# ===== SALES ROUTER =====

sales_router = APIRouter(prefix="/pos/sales", tags=["POS"])


@sales_router.post("", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
async def create_sale(
    sale_data: SaleCreate,
    db: async_db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_permission("pos.create"))
):
    """
    Crear venta POS completa.

    - **store_id**: Tienda donde se realiza la venta
    - **customer_id**: Cliente (opcional)
    - **items**: Ítems con cantidad y, opcionalmente, precio, impuesto y descuento
    - **amount_paid**: Monto pagado
    - **discount_amount**: Descuento a nivel de venta (opcional)

    Todo o nada: si un ítem no existe o no tiene stock suficiente,
    no se persiste ninguna parte de la venta.
    """
    service = SaleService(db, auth_context.tenant_id)
    return await service.create_sale(sale_data, user_id=auth_context.user_id)


@sales_router.get("", response_model=SaleList)
async def list_sales(
    db: async_db_dependency,
    store_id: Optional[UUID] = Query(None, description="Filtrar por tienda"),
    customer_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    user_id: Optional[UUID] = Query(None, description="Filtrar por vendedor"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filtrar por estado de pago"),
    sale_status: Optional[SaleStatus] = Query(None, alias="status", description="Filtrar por estado"),
    start_date: Optional[date] = Query(None, description="Fecha inicial"),
    end_date: Optional[date] = Query(None, description="Fecha final"),
    search: Optional[str] = Query(None, description="Buscar por número de venta o cliente"),
    page: int = Query(1, ge=1, description="Número de página"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Elementos por página"),
    sort: Optional[str] = Query(None, description="Orden 'campo:dirección', ej. sale_date:desc"),
    auth_context: AuthContext = Depends(AuthDependencies.require_permission("pos.read"))
):
    """
    Listar ventas con filtros y paginación.

    Campos ordenables: sale_date, sale_number, total_amount, created_at.
    Por defecto: sale_date descendente.
    """
    filters = SaleFilters(
        store_id=store_id,
        customer_id=customer_id,
        user_id=user_id,
        payment_status=payment_status,
        status=sale_status,
        start_date=start_date,
        end_date=end_date,
    )
    service = SaleQueryService(db, auth_context.tenant_id)
    return await service.list_sales(filters, search=search, page=page, limit=limit, sort=sort)


@sales_router.get("/statistics", response_model=SaleStatistics)
async def get_sales_statistics(
    db: async_db_dependency,
    store_id: Optional[UUID] = Query(None, description="Filtrar por tienda"),
    start_date: Optional[date] = Query(None, description="Fecha inicial"),
    end_date: Optional[date] = Query(None, description="Fecha final"),
    auth_context: AuthContext = Depends(AuthDependencies.require_permission("pos.read"))
):
    """Resumen de ventas completadas: cantidad, ingresos, cobrado y saldo pendiente."""
    service = SaleQueryService(db, auth_context.tenant_id)
    return await service.get_statistics(store_id=store_id, start_date=start_date, end_date=end_date)


@sales_router.get("/{sale_id}", response_model=SaleOut)
async def get_sale(
    db: async_db_dependency,
    sale_id: UUID = Path(..., description="ID de la venta"),
    auth_context: AuthContext = Depends(AuthDependencies.require_permission("pos.read"))
):
    """Obtener venta con sus líneas e información de tienda, cliente y vendedor."""
    service = SaleQueryService(db, auth_context.tenant_id)
    return await service.get_sale(sale_id)


@sales_router.post("/{sale_id}/cancel", response_model=SaleOut)
async def cancel_sale(
    db: async_db_dependency,
    sale_id: UUID = Path(..., description="ID de la venta"),
    cancel_data: Optional[SaleCancel] = None,
    auth_context: AuthContext = Depends(AuthDependencies.require_permission("pos.update"))
):
    """
    Cancelar venta.

    - Solo ventas en estado completed
    - Restaura el stock de cada línea
    - Conserva la venta y sus líneas como registro histórico
    """
    service = SaleService(db, auth_context.tenant_id)
    return await service.cancel_sale(
        sale_id,
        user_id=auth_context.user_id,
        reason=cancel_data.reason if cancel_data else None
    )
