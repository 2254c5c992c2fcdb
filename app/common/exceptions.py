"""
Taxonomía de errores del punto de venta y sus manejadores HTTP.

- Errores de validación de entrada: detectados antes de abrir la transacción.
- Violaciones de reglas de negocio: detectadas dentro de la transacción, que
  se revierte completa.
- Fallas de almacenamiento: cualquier SQLAlchemyError; se registran con
  contexto completo y se responden como error opaco del servidor.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class POSError(Exception):
    """Base de los errores accionables por el cliente"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ===== VALIDACIÓN DE ENTRADA =====

class SaleValidationError(POSError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# ===== REGLAS DE NEGOCIO =====

class BusinessRuleError(POSError):
    status_code = status.HTTP_409_CONFLICT


class StoreNotFoundError(BusinessRuleError):
    status_code = status.HTTP_404_NOT_FOUND


class CustomerNotFoundError(BusinessRuleError):
    status_code = status.HTTP_404_NOT_FOUND


class InventoryItemNotFoundError(BusinessRuleError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, inventory_id):
        super().__init__(f"Inventory item with id {inventory_id} not found")
        self.inventory_id = inventory_id


class InsufficientStockError(BusinessRuleError):

    def __init__(self, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for item {item_name}. "
            f"Available: {available}, Requested: {requested}"
        )
        self.item_name = item_name
        self.available = available
        self.requested = requested


class SaleDiscountError(BusinessRuleError):
    pass


class SaleNotFoundError(BusinessRuleError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, sale_id=None):
        super().__init__("Sale not found")
        self.sale_id = sale_id


class SaleStateError(BusinessRuleError):
    pass


# ===== MANEJADORES =====

async def pos_error_handler(request: Request, exc: POSError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__}
    )


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        f"Storage failure on {request.method} {request.url.path} "
        f"(tenant={getattr(request.state, 'tenant_id', None)}): {exc}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(POSError, pos_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
