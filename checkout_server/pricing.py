"""Order price breakdown.

All amounts include VAT unless suffixed ``excl_vat``. Values stay unrounded
floats; only ``format_price`` rounds, for display.
"""

import logging
from typing import Optional

from .models import CartItem, OrderSummaryData

logger = logging.getLogger(__name__)

VAT_RATE = 0.21


def unit_price(item: CartItem) -> float:
    """Variant price when the variant has one, otherwise the product price."""
    if item.variant is not None and item.variant.price is not None:
        return item.variant.price
    return item.product.price


def compare_at_price(item: CartItem) -> Optional[float]:
    if item.variant is not None and item.variant.compare_at_price is not None:
        return item.variant.compare_at_price
    return item.product.compare_at_price


def line_total(item: CartItem) -> float:
    return unit_price(item) * item.quantity


def line_original_total(item: CartItem) -> float:
    original = compare_at_price(item)
    if original is None:
        original = unit_price(item)
    return original * item.quantity


def calculate_order_summary(
    items: list[CartItem],
    shipping: float = 0.0,
    promo_code_discount: float = 0.0,
    vat_rate: float = VAT_RATE,
) -> OrderSummaryData:
    """
    Derive the full price breakdown for a set of cart items.

    Args:
        items: Cart items (read-only)
        shipping: Cost of the selected shipping method
        promo_code_discount: Discount amount returned by the promo validator
        vat_rate: Inclusive VAT rate

    Returns:
        OrderSummaryData with total = subtotal + shipping - promo_code_discount
    """
    original_subtotal = sum(line_original_total(item) for item in items)
    subtotal = sum(line_total(item) for item in items)

    product_discount = original_subtotal - subtotal
    if product_discount < 0:
        logger.warning(
            f"Compare-at price below current price in cart "
            f"(original={original_subtotal}, current={subtotal}); product discount clamped to 0"
        )
        product_discount = 0.0

    subtotal_excl_vat = subtotal / (1 + vat_rate)
    vat_amount = subtotal - subtotal_excl_vat

    # Promo is subtracted after shipping has been added.
    total = subtotal + shipping - promo_code_discount
    if total < 0:
        logger.warning(
            f"Order total is negative ({total}): promo discount {promo_code_discount} "
            f"exceeds subtotal {subtotal} + shipping {shipping}"
        )

    return OrderSummaryData(
        items=list(items),
        original_subtotal=original_subtotal,
        product_discount=product_discount,
        subtotal=subtotal,
        subtotal_excl_vat=subtotal_excl_vat,
        vat_amount=vat_amount,
        shipping=shipping,
        promo_code_discount=promo_code_discount,
        total=total,
    )


def calculate_cart_summary(items: list[CartItem], vat_rate: float = VAT_RATE) -> OrderSummaryData:
    """Cart page / drawer breakdown: same formula with shipping and promo zeroed."""
    return calculate_order_summary(items, shipping=0.0, promo_code_discount=0.0, vat_rate=vat_rate)


def format_price(amount: float, currency: str = "€") -> str:
    """Round to cents for display, e.g. ``€12.50`` or ``-€3.00``."""
    sign = "-" if round(amount, 2) < 0 else ""
    return f"{sign}{currency}{abs(amount):.2f}"
