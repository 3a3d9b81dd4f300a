"""Data models for checkout entities."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting both snake_case and the storefront's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductInfo(CamelModel):
    """Product fields the checkout needs from the catalog."""

    price: float = Field(ge=0, description="Current unit price incl. VAT")
    compare_at_price: Optional[float] = Field(None, description="Price before product discount")
    image: Optional[str] = Field(None, description="Product image URL")
    name: str = Field(description="Product name")
    slug: str = Field("", description="Product slug")


class VariantInfo(CamelModel):
    """Variant fields overriding the product price when present."""

    price: Optional[float] = Field(None, ge=0, description="Variant unit price incl. VAT")
    compare_at_price: Optional[float] = Field(None, description="Variant price before discount")
    image: Optional[str] = Field(None, description="Variant image URL")
    size: Optional[str] = Field(None, description="Variant size label")


class CartItem(CamelModel):
    """Represents an item in the shopping cart."""

    id: str = Field(description="Cart item ID")
    product_id: str = Field(description="Product ID")
    variant_id: Optional[str] = Field(None, description="Variant ID")
    quantity: int = Field(gt=0, description="Quantity of the product")
    product: ProductInfo
    variant: Optional[VariantInfo] = None


class ContactInformation(CamelModel):
    full_name: str = ""
    email: str = ""
    phone: str = ""


class ShippingAddress(CamelModel):
    """Shipping or billing address."""

    address_line1: str = ""
    address_line2: Optional[str] = None
    city: str = ""
    state: Optional[str] = None
    postal_code: str = ""
    country: str = Field("LT", description="ISO 3166 alpha-2 country code")


class ShippingMethod(CamelModel):
    """A delivery option resolved for a destination country and subtotal."""

    id: str
    name: str
    description: str = ""
    price: float = Field(ge=0)
    estimated_days: str = ""
    requires_pickup_point: bool = False


class PickupPointType(str, Enum):
    TERMINAL = "terminal"
    LOCKER = "locker"


class PickupPoint(CamelModel):
    """A carrier pickup terminal or parcel locker."""

    id: str
    name: str
    address: str = ""
    city: str = ""
    zip: str = ""
    country: str
    type: PickupPointType = PickupPointType.TERMINAL
    cod_enabled: bool = False


class PromoKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AppliedPromoCode(CamelModel):
    """A promo code approved by the storefront, with its server-computed discount."""

    code: str
    kind: PromoKind
    value: float
    discount_amount: float = Field(ge=0)


class PromoValidationResult(CamelModel):
    """Response of the promo code validator."""

    valid: bool
    code: Optional[str] = None
    kind: Optional[PromoKind] = None
    value: Optional[float] = None
    discount_amount: Optional[float] = None
    error: Optional[str] = None
    error_key: Optional[str] = None


class CardDetails(CamelModel):
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""
    cardholder_name: str = ""


class PaymentMethod(CamelModel):
    id: str
    name: str
    description: str = ""
    redirect: bool = Field(False, description="Payment completes on an external provider page")


class OrderSummaryData(CamelModel):
    """Derived price breakdown; recomputed from the cart, never stored."""

    items: list[CartItem] = Field(default_factory=list)
    original_subtotal: float = 0.0
    product_discount: float = 0.0
    subtotal: float = 0.0
    subtotal_excl_vat: float = 0.0
    vat_amount: float = 0.0
    shipping: float = 0.0
    promo_code_discount: float = 0.0
    total: float = 0.0


class CheckoutForm(CamelModel):
    """Everything the customer has entered during checkout."""

    contact: ContactInformation = Field(default_factory=ContactInformation)
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    billing_address: ShippingAddress = Field(default_factory=ShippingAddress)
    billing_same_as_shipping: bool = True
    selected_shipping_method: Optional[str] = None
    selected_payment_method: str = "cash"
    card_details: CardDetails = Field(default_factory=CardDetails)
    agree_to_terms: bool = False


class CheckoutSessionSnapshot(CamelModel):
    """Checkout form state saved right before handing off to payment.

    Card details are never part of a snapshot.
    """

    contact: ContactInformation
    shipping_address: ShippingAddress
    billing_address: ShippingAddress
    billing_same_as_shipping: bool
    selected_shipping_method: Optional[str] = None
    selected_payment_method: str
    selected_pickup_point: Optional[PickupPoint] = None
    agree_to_terms: bool = False
    user_id: Optional[str] = None
    timestamp: datetime


class OrderItemPayload(CamelModel):
    """An order line with its unit price locked in at submission."""

    product_id: str
    variant_id: Optional[str] = None
    quantity: int
    price: float


class OrderPayload(CamelModel):
    """Body sent to the storefront when the order is submitted."""

    contact: ContactInformation
    shipping_address: ShippingAddress
    billing_address: ShippingAddress
    billing_same_as_shipping: bool
    shipping_method: str
    pickup_point: Optional[PickupPoint] = Field(None, alias="venipakPickupPoint", description="Chosen Venipak terminal or locker")
    payment_method: str
    card_details: Optional[CardDetails] = None
    promo_code: Optional[str] = None
    agree_to_terms: bool
    items: list[OrderItemPayload]
    summary: OrderSummaryData

    def to_request(self) -> dict:
        """Serialize with camelCase keys; summary line items travel in `items` instead."""
        return self.model_dump(by_alias=True, mode="json", exclude={"summary": {"items"}})


class SubmitResult(CamelModel):
    """Outcome of an order submission."""

    success: bool
    order_number: Optional[str] = None
    redirect_url: Optional[str] = None
    errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None
