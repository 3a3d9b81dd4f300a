"""HTTP server for the Checkout MCP Server."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .cart import OptimisticCart
from .checkout import CheckoutFlow, StepResult, create_checkout
from .config import CheckoutSettings
from .models import CardDetails, CartItem, ContactInformation, ShippingAddress, SubmitResult
from .session import BannerGate, JsonFileStore
from .shop_client import ShopApiClient
from .validation import PAYMENT_METHODS

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("checkout-http-server")

# Global state
settings: CheckoutSettings
shop_client: ShopApiClient
cart: OptimisticCart
checkout: CheckoutFlow
banner: BannerGate

# Set by run_http_server; falls back to CHECKOUT_* environment variables
configured_settings: Optional[CheckoutSettings] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global settings, shop_client, cart, checkout, banner

    # Startup
    logger.info("Starting Checkout HTTP Server...")
    settings = configured_settings or CheckoutSettings.from_env()
    shop_client = ShopApiClient(settings.api_url, locale=settings.locale, timeout=settings.timeout)
    store = JsonFileStore(settings.session_file)
    cart = OptimisticCart()
    checkout = create_checkout(settings, shop_client, store)
    banner = BannerGate(store)

    yield

    # Shutdown
    logger.info("Shutting down Checkout HTTP Server...")
    await shop_client.close()


app = FastAPI(
    title="Checkout MCP Server",
    description="HTTP API for the storefront checkout: pricing, shipping, promo codes and order submission",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class CartRequest(BaseModel):
    items: list[CartItem]


class CartItemUpdateRequest(BaseModel):
    item_id: str
    quantity: int


class AddressRequest(BaseModel):
    shipping_address: ShippingAddress
    billing_same_as_shipping: bool = True
    billing_address: Optional[ShippingAddress] = None


class ShippingMethodRequest(BaseModel):
    method_id: str


class PickupPointRequest(BaseModel):
    point_id: str


class PaymentRequest(BaseModel):
    payment_method: str
    card_details: Optional[CardDetails] = None
    agree_to_terms: bool = False


class StepRequest(BaseModel):
    step: int


class PromoCodeRequest(BaseModel):
    code: str


class PromoCodeResponse(BaseModel):
    success: bool
    code: Optional[str] = None
    discount_amount: float = 0.0
    error: Optional[str] = None
    error_key: Optional[str] = None


def cart_response() -> dict:
    return {
        "items": [item.model_dump(mode="json") for item in cart.items],
        "item_count": cart.item_count,
        "summary": cart.summary(settings.vat_rate).model_dump(mode="json", exclude={"items"}),
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Checkout MCP Server",
        "version": "0.1.0",
        "description": "HTTP API for the storefront checkout",
        "mcp_compatible": True,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "cart": {"get": "GET /cart", "set": "PUT /cart", "update": "POST /cart/items"},
            "checkout": {
                "state": "GET /checkout",
                "contact": "POST /checkout/contact",
                "address": "POST /checkout/address",
                "shipping_method": "POST /checkout/shipping-method",
                "pickup_points": "GET /checkout/pickup-points",
                "pickup_point": "POST /checkout/pickup-point",
                "payment": "POST /checkout/payment",
                "continue": "POST /checkout/continue",
                "edit": "POST /checkout/edit",
                "submit": "POST /checkout/submit",
                "restore": "POST /checkout/restore",
                "complete": "POST /checkout/complete",
            },
            "promo_code": {"apply": "POST /promo-code", "remove": "DELETE /promo-code"},
            "banner": "GET /banner",
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "api_url": settings.api_url}


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get cart contents and the cart price breakdown."""
    return cart_response()


@app.put("/cart")
async def set_cart(request: CartRequest):
    """Replace the cart items."""
    cart.sync(request.items)
    checkout.set_cart_items(cart.authoritative_items)
    return cart_response()


@app.post("/cart/items")
async def update_cart_item(request: CartItemUpdateRequest):
    """Change an item's quantity; 0 removes it."""
    if not any(item.id == request.item_id for item in cart.items):
        raise HTTPException(status_code=404, detail=f"Cart item {request.item_id} not found")
    cart.update_quantity(request.item_id, request.quantity)
    cart.sync(cart.items)
    checkout.set_cart_items(cart.authoritative_items)
    return cart_response()


# Checkout endpoints
@app.get("/checkout")
async def get_checkout():
    """Get the full checkout state."""
    return checkout.state()


@app.post("/checkout/contact")
async def set_contact(request: ContactInformation):
    """Set contact information."""
    checkout.set_contact(request)
    return checkout.state()


@app.post("/checkout/address")
async def set_address(request: AddressRequest):
    """Set shipping and billing addresses; refreshes shipping methods and pickup points."""
    await checkout.set_shipping_address(request.shipping_address)
    checkout.set_billing_address(request.billing_address, request.billing_same_as_shipping)
    return checkout.state()


@app.get("/checkout/shipping-methods")
async def get_shipping_methods():
    """Shipping methods for the current destination and subtotal."""
    return {"methods": [m.model_dump(mode="json") for m in checkout.shipping_methods]}


@app.post("/checkout/shipping-method")
async def select_shipping_method(request: ShippingMethodRequest):
    """Select a shipping method."""
    try:
        checkout.select_shipping_method(request.method_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return checkout.state()


@app.get("/checkout/pickup-points")
async def get_pickup_points(query: str = ""):
    """Pickup points for the destination country, grouped by city."""
    checkout.pickup.search(query)
    return {
        "country": checkout.pickup.country,
        "loading": checkout.pickup.loading,
        "groups": {
            city: [p.model_dump(mode="json") for p in points]
            for city, points in checkout.pickup.grouped_by_city.items()
        },
    }


@app.post("/checkout/pickup-point")
async def select_pickup_point(request: PickupPointRequest):
    """Select a pickup point."""
    try:
        checkout.select_pickup_point(request.point_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return checkout.state()


@app.get("/checkout/payment-methods")
async def get_payment_methods():
    """Available payment methods."""
    return {"methods": [m.model_dump(mode="json") for m in PAYMENT_METHODS.values()]}


@app.post("/checkout/payment")
async def set_payment(request: PaymentRequest):
    """Select payment method, card details and terms acceptance."""
    try:
        checkout.select_payment_method(request.payment_method, request.card_details)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    checkout.set_agree_to_terms(request.agree_to_terms)
    return checkout.state()


@app.post("/checkout/continue", response_model=StepResult)
async def continue_step(request: StepRequest):
    """Validate a step and advance."""
    try:
        return checkout.continue_step(request.step)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/checkout/edit", response_model=StepResult)
async def edit_step(request: StepRequest):
    """Return to an earlier step."""
    try:
        return checkout.edit(request.step)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/checkout/submit", response_model=SubmitResult)
async def submit_order():
    """Submit the order."""
    return await checkout.submit()


@app.post("/checkout/restore")
async def restore_session():
    """Restore checkout state saved before a payment redirect."""
    restored = await checkout.restore_session()
    return {"restored": restored, "state": checkout.state()}


@app.post("/checkout/complete")
async def complete_order():
    """Clear saved checkout state after order confirmation."""
    checkout.complete_order()
    return {"success": True}


# Promo code endpoints
@app.post("/promo-code", response_model=PromoCodeResponse)
async def apply_promo_code(request: PromoCodeRequest):
    """Validate and apply a promo code."""
    applied = await checkout.apply_promo_code(request.code)
    promo = checkout.promo
    return PromoCodeResponse(
        success=applied,
        code=promo.applied.code if promo.applied else None,
        discount_amount=promo.discount_amount,
        error=promo.error,
        error_key=promo.error_key,
    )


@app.delete("/promo-code")
async def remove_promo_code():
    """Remove the applied promo code."""
    checkout.remove_promo_code()
    return {"success": True}


@app.get("/banner")
async def welcome_banner():
    """Whether the welcome promo banner should be shown; marks it shown."""
    show = banner.should_show()
    if show:
        banner.mark_shown()
    return {"show": show}


def run_http_server(host: str = "0.0.0.0", port: int = 8000, settings: Optional[CheckoutSettings] = None):
    """Run the HTTP server."""
    global configured_settings
    import uvicorn

    configured_settings = settings

    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
