"""Shipping method resolution per destination country."""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import ShippingMethod
from .translation import Translator

logger = logging.getLogger(__name__)

# Countries where the pickup-point carrier operates its terminal/locker network.
CARRIER_SERVED_COUNTRIES = frozenset({"LT", "LV", "EE"})

BALTIC_COUNTRIES = frozenset({"LT", "LV", "EE"})
NEIGHBOUR_COUNTRIES = frozenset({"PL", "FI"})
EU_COUNTRIES = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "FR", "DE", "GR",
    "HU", "IE", "IT", "LU", "MT", "NL", "PT", "RO", "SK", "SI",
    "ES", "SE", "GB", "NO", "CH",
})
NORTH_AMERICA_COUNTRIES = frozenset({"US", "CA"})

FREE_SHIPPING_THRESHOLD = 50.0
FREE_SHIPPING_METHOD_ID = "venipak-courier"


@dataclass(frozen=True)
class MethodSpec:
    id: str
    name_key: str
    name: str
    description_key: str
    description: str
    days_key: str
    days: str
    price: float
    requires_pickup_point: bool = False


VENIPAK_PICKUP = MethodSpec(
    id="venipak-pickup",
    name_key="shipping.venipak_pickup",
    name="Venipak Pickup Point",
    description_key="shipping.venipak_pickup_description",
    description="Collect from a Venipak terminal or locker",
    days_key="shipping.venipak_pickup_days",
    days="1-3 business days",
    price=4.0,
    requires_pickup_point=True,
)
VENIPAK_COURIER = MethodSpec(
    id="venipak-courier",
    name_key="shipping.venipak_courier",
    name="Venipak Courier",
    description_key="shipping.venipak_courier_description",
    description="Delivered to your door",
    days_key="shipping.venipak_courier_days",
    days="1-3 business days",
    price=4.0,
)
FEDEX_COURIER = MethodSpec(
    id="fedex-courier",
    name_key="shipping.fedex_courier",
    name="FedEx Courier",
    description_key="shipping.fedex_courier_description",
    description="International express delivery",
    days_key="shipping.fedex_courier_days",
    days="3-7 business days",
    price=20.0,
)

# Ordered: carrier/domestic options before generic international ones.
REGION_METHODS: dict[str, tuple[MethodSpec, ...]] = {
    "baltic": (VENIPAK_PICKUP, VENIPAK_COURIER),
    "neighbour": (VENIPAK_COURIER,),
    "international": (FEDEX_COURIER,),
}


def region_for(country: str) -> Optional[str]:
    if country in BALTIC_COUNTRIES:
        return "baltic"
    if country in NEIGHBOUR_COUNTRIES:
        return "neighbour"
    if country in EU_COUNTRIES or country in NORTH_AMERICA_COUNTRIES:
        return "international"
    return None


def is_carrier_served(country: str) -> bool:
    return (country or "").strip().upper() in CARRIER_SERVED_COUNTRIES


class ShippingResolver:
    """Resolves the ordered list of shipping methods for (country, subtotal)."""

    def __init__(
        self,
        translate: Optional[Translator] = None,
        home_country: str = "LT",
        free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD,
    ) -> None:
        self.t = translate or Translator()
        self.home_country = home_country.upper()
        self.free_shipping_threshold = free_shipping_threshold

    def resolve(self, country: str, subtotal: float) -> list[ShippingMethod]:
        """
        Get available shipping methods for a destination.

        Unsupported countries get the home country's methods rather than an
        empty list. Free shipping only applies when the destination really is
        the home country.
        """
        country = (country or "").strip().upper()
        region = region_for(country)
        if region is None:
            logger.info(f"No shipping table for {country or '<blank>'}, using {self.home_country} methods")
            region = region_for(self.home_country) or "baltic"

        free_shipping = country == self.home_country and subtotal >= self.free_shipping_threshold
        threshold = f"€{self.free_shipping_threshold:.2f}"

        methods = []
        for spec in REGION_METHODS[region]:
            price = spec.price
            description = self.t(spec.description_key, spec.description)
            if spec.id == FREE_SHIPPING_METHOD_ID and country == self.home_country:
                description = self.t(
                    "shipping.free_over",
                    "Free for orders over {threshold}",
                    {"threshold": threshold},
                )
                if free_shipping:
                    price = 0.0
            methods.append(
                ShippingMethod(
                    id=spec.id,
                    name=self.t(spec.name_key, spec.name),
                    description=description,
                    price=price,
                    estimated_days=self.t(spec.days_key, spec.days),
                    requires_pickup_point=spec.requires_pickup_point,
                )
            )
        return methods


def find_method(method_id: Optional[str], methods: list[ShippingMethod]) -> Optional[ShippingMethod]:
    if not method_id:
        return None
    return next((m for m in methods if m.id == method_id), None)


def calculate_shipping_cost(method_id: Optional[str], methods: list[ShippingMethod]) -> float:
    """Price of the selected method; 0 when nothing (valid) is selected yet."""
    method = find_method(method_id, methods)
    return method.price if method else 0.0
