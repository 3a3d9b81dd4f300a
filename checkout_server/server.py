"""MCP Server for the storefront checkout."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Tool, TextContent

from .cart import OptimisticCart
from .checkout import CheckoutFlow, StepResult, create_checkout
from .config import CheckoutSettings
from .models import CartItem, OrderSummaryData, ShippingAddress
from .pricing import format_price, line_total
from .session import BannerGate, JsonFileStore
from .shop_client import ShopApiClient
from .validation import PAYMENT_METHODS

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("checkout-mcp-server")

# Initialize server
app = Server("checkout-mcp-server")

# Global state
settings: CheckoutSettings
shop_client: ShopApiClient
cart: OptimisticCart
checkout: CheckoutFlow
banner: BannerGate

ADDRESS_PROPERTIES = {
    "address_line1": {"type": "string", "description": "Street address"},
    "address_line2": {"type": "string", "description": "Apartment, suite, etc. (optional)"},
    "city": {"type": "string", "description": "City"},
    "state": {"type": "string", "description": "State or region (optional)"},
    "postal_code": {"type": "string", "description": "Postal code"},
    "country": {"type": "string", "description": "ISO 3166 alpha-2 country code, e.g. LT"},
}


def format_summary(summary: OrderSummaryData) -> list[str]:
    """Render an order summary as text lines."""
    lines = []
    if summary.product_discount > 0:
        lines.append(f"Original subtotal: {format_price(summary.original_subtotal)}")
        lines.append(f"Product discount: -{format_price(summary.product_discount)}")
    lines.append(f"Subtotal: {format_price(summary.subtotal)}")
    lines.append(f"  excl. VAT: {format_price(summary.subtotal_excl_vat)}")
    lines.append(f"  VAT: {format_price(summary.vat_amount)}")
    lines.append(f"Shipping: {format_price(summary.shipping)}")
    if summary.promo_code_discount > 0:
        lines.append(f"Promo code discount: -{format_price(summary.promo_code_discount)}")
    lines.append(f"{'='*40}")
    lines.append(f"Total: {format_price(summary.total)}")
    return lines


def format_step_result(result: StepResult) -> str:
    if result.success:
        return f"Step completed. Now on step {result.step}."
    lines = [f"Cannot continue, still on step {result.step}:"]
    for field, message in result.errors.items():
        lines.append(f"  - {field}: {message}")
    return "\n".join(lines)


def format_cart() -> str:
    items = cart.items
    if not items:
        return "Your cart is empty"
    lines = [f"Shopping Cart ({cart.item_count} items):\n"]
    for i, item in enumerate(items, 1):
        name = item.product.name
        if item.variant and item.variant.size:
            name = f"{name} ({item.variant.size})"
        lines.append(f"\n{i}. {name}")
        lines.append(f"   Item ID: {item.id}")
        lines.append(f"   Quantity: {item.quantity}")
        lines.append(f"   Line total: {format_price(line_total(item))}")
    lines.append("")
    lines.extend(format_summary(cart.summary(settings.vat_rate)))
    return "\n".join(lines)


def sync_checkout_items() -> None:
    """The local cart is authoritative; push its items into the checkout."""
    cart.sync(cart.items)
    checkout.set_cart_items(cart.authoritative_items)


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="checkout_set_cart",
            description="Replace the cart with the given items (storefront cart item objects)",
            inputSchema={
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "description": "Cart items with id, productId, variantId, quantity, product and variant",
                        "items": {"type": "object"},
                    },
                },
                "required": ["items"],
            },
        ),
        Tool(
            name="checkout_get_cart",
            description="Get current cart contents with price breakdown",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_update_cart_item",
            description="Change the quantity of a cart item; quantity 0 removes it",
            inputSchema={
                "type": "object",
                "properties": {
                    "item_id": {"type": "string", "description": "Cart item ID"},
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["item_id", "quantity"],
            },
        ),
        Tool(
            name="checkout_get_state",
            description="Get the checkout state: current step, form, shipping methods, promo and summary",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_set_contact",
            description="Set contact information (step 1)",
            inputSchema={
                "type": "object",
                "properties": {
                    "full_name": {"type": "string", "description": "Full name"},
                    "email": {"type": "string", "description": "Email address"},
                    "phone": {"type": "string", "description": "Phone number"},
                },
            },
        ),
        Tool(
            name="checkout_set_address",
            description="Set shipping address and optionally a separate billing address (step 2)",
            inputSchema={
                "type": "object",
                "properties": {
                    **ADDRESS_PROPERTIES,
                    "billing_same_as_shipping": {
                        "type": "boolean",
                        "description": "Use the shipping address for billing (default: true)",
                        "default": True,
                    },
                    "billing_address": {
                        "type": "object",
                        "description": "Billing address when different from shipping",
                        "properties": ADDRESS_PROPERTIES,
                    },
                },
            },
        ),
        Tool(
            name="checkout_select_shipping_method",
            description="Select a shipping method available for the destination (step 3)",
            inputSchema={
                "type": "object",
                "properties": {
                    "method_id": {"type": "string", "description": "Shipping method ID"},
                },
                "required": ["method_id"],
            },
        ),
        Tool(
            name="checkout_search_pickup_points",
            description="List pickup points for the destination country, optionally filtered",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search by name, address, city or postal code"},
                },
            },
        ),
        Tool(
            name="checkout_select_pickup_point",
            description="Select a pickup point by ID",
            inputSchema={
                "type": "object",
                "properties": {
                    "point_id": {"type": "string", "description": "Pickup point ID"},
                },
                "required": ["point_id"],
            },
        ),
        Tool(
            name="checkout_set_payment",
            description="Select payment method, card details and terms acceptance (step 4)",
            inputSchema={
                "type": "object",
                "properties": {
                    "payment_method": {
                        "type": "string",
                        "enum": list(PAYMENT_METHODS),
                        "description": "Payment method ID",
                    },
                    "card_number": {"type": "string"},
                    "expiry_date": {"type": "string", "description": "MM/YY"},
                    "cvv": {"type": "string"},
                    "cardholder_name": {"type": "string"},
                    "agree_to_terms": {"type": "boolean", "description": "Accept the terms and conditions"},
                },
            },
        ),
        Tool(
            name="checkout_continue",
            description="Validate the current step and move to the next one",
            inputSchema={
                "type": "object",
                "properties": {
                    "step": {"type": "integer", "description": "Step to continue (default: current step)"},
                },
            },
        ),
        Tool(
            name="checkout_edit_step",
            description="Go back to an already reached step",
            inputSchema={
                "type": "object",
                "properties": {
                    "step": {"type": "integer", "minimum": 1, "maximum": 4},
                },
                "required": ["step"],
            },
        ),
        Tool(
            name="checkout_apply_promo_code",
            description="Validate and apply a promo code",
            inputSchema={
                "type": "object",
                "properties": {
                    "code": {"type": "string", "description": "Promo code"},
                },
                "required": ["code"],
            },
        ),
        Tool(
            name="checkout_remove_promo_code",
            description="Remove the applied promo code",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_submit",
            description="Submit the order",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_restore_session",
            description="Restore checkout state saved before a payment redirect",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_complete_order",
            description="Mark the order as confirmed and clear saved checkout state",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_welcome_banner",
            description="Check whether the welcome promo banner should be shown; marks it shown",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "checkout_set_cart":
            items = [CartItem.model_validate(raw) for raw in arguments["items"]]
            cart.sync(items)
            checkout.set_cart_items(cart.authoritative_items)
            return [TextContent(type="text", text=format_cart())]

        elif name == "checkout_get_cart":
            return [TextContent(type="text", text=format_cart())]

        elif name == "checkout_update_cart_item":
            item_id = arguments["item_id"]
            quantity = arguments["quantity"]
            if not any(item.id == item_id for item in cart.items):
                return [TextContent(type="text", text=f"Cart item {item_id} not found")]

            cart.update_quantity(item_id, quantity)
            sync_checkout_items()
            return [TextContent(type="text", text=format_cart())]

        elif name == "checkout_get_state":
            return [TextContent(type="text", text=json.dumps(checkout.state(), indent=2, ensure_ascii=False))]

        elif name == "checkout_set_contact":
            contact = checkout.form.contact.model_copy(
                update={k: arguments[k] for k in ("full_name", "email", "phone") if k in arguments}
            )
            checkout.set_contact(contact)
            return [TextContent(type="text", text="Contact information updated")]

        elif name == "checkout_set_address":
            fields = {k: arguments[k] for k in ADDRESS_PROPERTIES if k in arguments}
            address = checkout.form.shipping_address.model_copy(update=fields)
            await checkout.set_shipping_address(address)

            billing = arguments.get("billing_address")
            checkout.set_billing_address(
                ShippingAddress.model_validate(billing) if billing else None,
                arguments.get("billing_same_as_shipping", True),
            )

            result_lines = [f"Address updated. Shipping methods for {checkout.shipping_country}:"]
            for method in checkout.shipping_methods:
                result_lines.append(f"  - {method.id}: {method.name} {format_price(method.price)} ({method.description})")
            return [TextContent(type="text", text="\n".join(result_lines))]

        elif name == "checkout_select_shipping_method":
            method = checkout.select_shipping_method(arguments["method_id"])
            text = f"Shipping method set to {method.name} ({format_price(method.price)})"
            if checkout.pickup_point_required:
                text += f"\nA pickup point is required: {len(checkout.pickup.points)} available"
            return [TextContent(type="text", text=text)]

        elif name == "checkout_search_pickup_points":
            checkout.pickup.search(arguments.get("query", ""))
            groups = checkout.pickup.grouped_by_city
            if not groups:
                return [TextContent(type="text", text=f"No pickup points found for {checkout.shipping_country}")]

            result_lines = []
            for city, points in groups.items():
                result_lines.append(f"\n{city}:")
                for point in points:
                    result_lines.append(f"  - [{point.id}] {point.name}, {point.address} {point.zip} ({point.type.value})")
            return [TextContent(type="text", text="\n".join(result_lines).strip())]

        elif name == "checkout_select_pickup_point":
            checkout.select_pickup_point(arguments["point_id"])
            point = checkout.pickup.selected
            return [TextContent(type="text", text=f"Pickup point selected: {point.name}, {point.address}, {point.city}")]

        elif name == "checkout_set_payment":
            card_fields = {k: arguments[k] for k in ("card_number", "expiry_date", "cvv", "cardholder_name") if k in arguments}
            card = checkout.form.card_details.model_copy(update=card_fields) if card_fields else None
            if "payment_method" in arguments:
                checkout.select_payment_method(arguments["payment_method"], card)
            elif card is not None:
                checkout.form.card_details = card
            if "agree_to_terms" in arguments:
                checkout.set_agree_to_terms(arguments["agree_to_terms"])
            return [TextContent(type="text", text=f"Payment method: {checkout.form.selected_payment_method}")]

        elif name == "checkout_continue":
            step = arguments.get("step", int(checkout.current_step))
            result = checkout.continue_step(step)
            return [TextContent(type="text", text=format_step_result(result))]

        elif name == "checkout_edit_step":
            result = checkout.edit(arguments["step"])
            return [TextContent(type="text", text=f"Editing step {result.step}")]

        elif name == "checkout_apply_promo_code":
            if await checkout.apply_promo_code(arguments["code"]):
                applied = checkout.promo.applied
                return [
                    TextContent(
                        type="text",
                        text=f"Promo code {applied.code} applied: -{format_price(applied.discount_amount)}",
                    )
                ]
            return [TextContent(type="text", text=f"Promo code not applied: {checkout.promo.error}")]

        elif name == "checkout_remove_promo_code":
            checkout.remove_promo_code()
            return [TextContent(type="text", text="Promo code removed")]

        elif name == "checkout_submit":
            # Completing the order clears the promo, so price it first.
            summary = checkout.summary()
            result = await checkout.submit()
            if not result.success:
                result_lines = [f"Order not placed: {result.message or 'unknown error'}"]
                for field, message in result.errors.items():
                    result_lines.append(f"  - {field}: {message}")
                return [TextContent(type="text", text="\n".join(result_lines))]

            result_lines = ["Order placed successfully!"]
            if result.order_number:
                result_lines.append(f"Order number: {result.order_number}")
            if result.redirect_url:
                result_lines.append(f"Complete payment at: {result.redirect_url}")
            result_lines.append("")
            result_lines.extend(format_summary(summary))
            return [TextContent(type="text", text="\n".join(result_lines))]

        elif name == "checkout_restore_session":
            if await checkout.restore_session():
                return [TextContent(type="text", text="Checkout session restored. Now on step 4 (payment).")]
            return [TextContent(type="text", text="No saved checkout session to restore")]

        elif name == "checkout_complete_order":
            checkout.complete_order()
            return [TextContent(type="text", text="Order completed, saved checkout state cleared")]

        elif name == "checkout_welcome_banner":
            if banner.should_show():
                banner.mark_shown()
                return [TextContent(type="text", text="Show the welcome promo banner")]
            return [TextContent(type="text", text="Welcome promo banner was shown recently")]

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return [
            TextContent(
                type="text",
                text=f"Error: {str(e)}",
            )
        ]


async def main(overrides: Optional[CheckoutSettings] = None) -> None:
    """Main entry point for the MCP server."""
    global settings, shop_client, cart, checkout, banner

    settings = overrides or CheckoutSettings.from_env()
    shop_client = ShopApiClient(settings.api_url, locale=settings.locale, timeout=settings.timeout)
    store = JsonFileStore(settings.session_file)
    cart = OptimisticCart()
    checkout = create_checkout(settings, shop_client, store)
    banner = BannerGate(store)

    logger.info(f"Starting Checkout MCP Server against {settings.api_url}...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await shop_client.close()


if __name__ == "__main__":
    asyncio.run(main())
