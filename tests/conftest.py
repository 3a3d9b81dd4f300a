"""Shared fixtures: cart item builders and an in-memory storefront."""

from typing import Optional

import pytest

from checkout_server.models import (
    CartItem,
    OrderPayload,
    PickupPoint,
    ProductInfo,
    PromoKind,
    PromoValidationResult,
    SubmitResult,
    VariantInfo,
)
from checkout_server.shop_client import ShopApiError


def make_item(
    price: float,
    quantity: int = 1,
    compare_at: Optional[float] = None,
    product_id: str = "p1",
    variant_price: Optional[float] = None,
    variant_id: Optional[str] = None,
) -> CartItem:
    variant = None
    if variant_id or variant_price is not None:
        variant = VariantInfo(price=variant_price, size="M")
    return CartItem(
        id=f"{product_id}-{variant_id or 'default'}",
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        product=ProductInfo(price=price, compare_at_price=compare_at, name=f"Product {product_id}", slug=product_id),
        variant=variant,
    )


def make_point(point_id: str, city: str = "Vilnius", country: str = "LT", name: Optional[str] = None) -> PickupPoint:
    return PickupPoint(
        id=point_id,
        name=name or f"Terminal {point_id}",
        address=f"Street {point_id}",
        city=city,
        zip="01001",
        country=country,
    )


class FakeShop:
    """Promo validator, pickup point fetcher and order submitter backed by dicts."""

    def __init__(self) -> None:
        self.promo_codes: dict[str, tuple[PromoKind, float]] = {"WELCOME10": (PromoKind.FIXED, 10.0)}
        self.pickup_points: dict[str, list[PickupPoint]] = {
            "LT": [make_point("1", "Vilnius"), make_point("2", "Kaunas")],
            "LV": [make_point("10", "Riga", "LV")],
        }
        self.fail_promo = False
        self.fail_pickup = False
        self.fail_submit = False
        self.submit_result = SubmitResult(success=True, order_number="ORD-1")
        self.promo_calls: list[tuple[str, float, Optional[str]]] = []
        self.pickup_calls: list[str] = []
        self.submitted: list[OrderPayload] = []

    async def validate_promo_code(self, code: str, cart_total: float, email: Optional[str] = None) -> PromoValidationResult:
        self.promo_calls.append((code, cart_total, email))
        if self.fail_promo:
            raise ShopApiError("promo service down")
        if code not in self.promo_codes:
            return PromoValidationResult(valid=False, error="Promo code not found", error_key="promo_code.not_found")
        kind, value = self.promo_codes[code]
        discount = value if kind == PromoKind.FIXED else round(cart_total * value / 100, 2)
        return PromoValidationResult(valid=True, code=code, kind=kind, value=value, discount_amount=discount)

    async def fetch_pickup_points(self, country: str) -> list[PickupPoint]:
        self.pickup_calls.append(country)
        if self.fail_pickup:
            raise ShopApiError("carrier down")
        return list(self.pickup_points.get(country, []))

    async def submit_order(self, payload: OrderPayload) -> SubmitResult:
        self.submitted.append(payload)
        if self.fail_submit:
            raise ShopApiError("checkout down")
        return self.submit_result


@pytest.fixture
def shop() -> FakeShop:
    return FakeShop()
