"""
Motor de precios para ventas POS

Cálculo puro, sin acceso a base de datos. Todos los montos se redondean a
2 decimales con ROUND_HALF_UP (redondeo comercial) en cada paso, de modo que
los valores persistidos son exactamente los que se suman.

Por línea:
    subtotal        = quantity * unit_price
    discount_amount = subtotal * discount_percentage / 100
    taxable_base    = subtotal - discount_amount
    tax_amount      = taxable_base * tax_percentage / 100
    line_total      = taxable_base + tax_amount

Por venta:
    subtotal        = Σ line.subtotal
    tax_amount      = Σ line.tax_amount
    discount_amount = Σ line.discount_amount + sale_discount
    total_amount    = Σ line.line_total - sale_discount
    amount_due      = total_amount - amount_paid
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from pydantic import BaseModel

from app.common.exceptions import SaleDiscountError, SaleValidationError
from app.modules.pos.models import PaymentStatus

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")
# Límite de las columnas Integer de stock y cantidad
MAX_QUANTITY = 2_147_483_647


class LinePricing(BaseModel):
    """Montos derivados de una línea; mismos nombres que las columnas de SaleLineItem"""
    quantity: int
    unit_price: Decimal
    tax_percentage: Decimal
    discount_percentage: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal

    model_config = {"frozen": True}


class SaleTotals(BaseModel):
    """Totales de la venta; mismos nombres que las columnas de Sale"""
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    sale_discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_status: PaymentStatus

    model_config = {"frozen": True}


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except ArithmeticError:
        raise SaleValidationError(f"{field} must be a number")


def _check_cents(value: Decimal, field: str) -> None:
    if value != round_money(value):
        raise SaleValidationError(f"{field} must have at most 2 decimal places")


def _check_percentage(value: Decimal, field: str) -> None:
    if value < 0 or value > HUNDRED:
        raise SaleValidationError(f"{field} must be between 0 and 100")


def price_line(
    quantity: int,
    unit_price,
    tax_percentage=ZERO,
    discount_percentage=ZERO,
) -> LinePricing:
    """
    Calcular los montos de una línea de venta

    Raises:
        SaleValidationError: cantidad no positiva, precio negativo o
        porcentajes fuera de 0-100 o con más de 2 decimales
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise SaleValidationError("quantity must be a positive integer")
    if quantity > MAX_QUANTITY:
        raise SaleValidationError(f"quantity must be <= {MAX_QUANTITY}")

    unit_price = _to_decimal(unit_price, "unit_price")
    tax_percentage = _to_decimal(tax_percentage, "tax_percentage")
    discount_percentage = _to_decimal(discount_percentage, "discount_percentage")

    if unit_price < 0:
        raise SaleValidationError("unit_price must be >= 0")
    _check_percentage(tax_percentage, "tax_percentage")
    _check_percentage(discount_percentage, "discount_percentage")
    _check_cents(unit_price, "unit_price")
    _check_cents(tax_percentage, "tax_percentage")
    _check_cents(discount_percentage, "discount_percentage")

    subtotal = round_money(unit_price * quantity)
    discount_amount = round_money(subtotal * discount_percentage / HUNDRED)
    taxable_base = subtotal - discount_amount
    tax_amount = round_money(taxable_base * tax_percentage / HUNDRED)

    return LinePricing(
        quantity=quantity,
        unit_price=unit_price,
        tax_percentage=tax_percentage,
        discount_percentage=discount_percentage,
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        line_total=taxable_base + tax_amount,
    )


def derive_payment_status(amount_due: Decimal) -> PaymentStatus:
    """PAID cuando no queda saldo; PARTIAL en otro caso. Nunca PENDING."""
    return PaymentStatus.PAID if amount_due <= 0 else PaymentStatus.PARTIAL


def aggregate_sale(
    lines: Iterable[LinePricing],
    amount_paid,
    sale_discount=None,
    payment_status: Optional[PaymentStatus] = None,
) -> SaleTotals:
    """
    Agregar las líneas a totales de venta

    El descuento de venta se resta una sola vez, después de los descuentos
    de línea y sin recalcular impuestos.

    Raises:
        SaleValidationError: amount_paid o descuento negativos o con más de 2 decimales
        SaleDiscountError: el descuento supera el subtotal con descuentos de línea
    """
    lines = list(lines)
    amount_paid = _to_decimal(amount_paid, "amount_paid")
    sale_discount = _to_decimal(sale_discount, "discount_amount") if sale_discount is not None else ZERO

    if amount_paid < 0:
        raise SaleValidationError("amount_paid must be >= 0")
    if sale_discount < 0:
        raise SaleValidationError("discount_amount must be >= 0")
    _check_cents(amount_paid, "amount_paid")
    _check_cents(sale_discount, "discount_amount")
    amount_paid = round_money(amount_paid)
    sale_discount = round_money(sale_discount)

    subtotal = sum((line.subtotal for line in lines), ZERO)
    line_discounts = sum((line.discount_amount for line in lines), ZERO)
    tax_amount = sum((line.tax_amount for line in lines), ZERO)
    lines_total = sum((line.line_total for line in lines), ZERO)

    discounted_subtotal = subtotal - line_discounts
    if sale_discount > discounted_subtotal:
        raise SaleDiscountError(
            f"Sale discount ({sale_discount}) exceeds the discounted subtotal ({discounted_subtotal})"
        )

    total_amount = lines_total - sale_discount
    amount_due = total_amount - amount_paid

    return SaleTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=line_discounts + sale_discount,
        sale_discount_amount=sale_discount,
        total_amount=total_amount,
        amount_paid=amount_paid,
        amount_due=amount_due,
        payment_status=payment_status or derive_payment_status(amount_due),
    )
