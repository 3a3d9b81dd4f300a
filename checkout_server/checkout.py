"""Multi-step checkout: Contact → Address → Delivery → Payment, then submit."""

import logging
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Optional, Protocol

from pydantic import BaseModel, Field

from .config import CheckoutSettings
from .models import (
    CardDetails,
    CartItem,
    CheckoutForm,
    CheckoutSessionSnapshot,
    ContactInformation,
    OrderItemPayload,
    OrderPayload,
    OrderSummaryData,
    ShippingAddress,
    ShippingMethod,
    SubmitResult,
)
from .pickup import PickupPointSelector
from .pricing import VAT_RATE, calculate_order_summary, line_total, unit_price
from .promo import PromoCodeCoordinator
from .session import CheckoutSessionPersistence, JsonFileStore, KeyValueStore, utcnow
from .shipping import ShippingResolver, calculate_shipping_cost, find_method, is_carrier_served
from .shop_client import ShopApiClient, ShopApiError
from .translation import Translator
from .validation import PAYMENT_METHODS, CheckoutValidator, FieldErrors

logger = logging.getLogger(__name__)


class CheckoutStep(IntEnum):
    CONTACT = 1
    ADDRESS = 2
    DELIVERY = 3
    PAYMENT = 4


# Payment (4) is completed by submit(), never by continue_step().
GATED_STEPS = (CheckoutStep.CONTACT, CheckoutStep.ADDRESS, CheckoutStep.DELIVERY)


class StepResult(BaseModel):
    success: bool
    step: int = Field(description="Current step after the call")
    errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


class OrderSubmitter(Protocol):
    async def submit_order(self, payload: OrderPayload) -> SubmitResult: ...


def _messages(errors: FieldErrors) -> dict[str, str]:
    return {field: message for field, message in errors.items() if message is not None}


class CheckoutFlow:
    """
    Checkout state machine.

    Every transition validates first and only then mutates state, so a
    rejected transition leaves `current_step` and `completed_steps` untouched.
    """

    def __init__(
        self,
        *,
        validator: CheckoutValidator,
        resolver: ShippingResolver,
        promo: PromoCodeCoordinator,
        pickup: PickupPointSelector,
        persistence: CheckoutSessionPersistence,
        submitter: OrderSubmitter,
        translate: Optional[Translator] = None,
        items: Optional[list[CartItem]] = None,
        user_id: Optional[str] = None,
        vat_rate: float = VAT_RATE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.validator = validator
        self.resolver = resolver
        self.promo = promo
        self.pickup = pickup
        self.persistence = persistence
        self.submitter = submitter
        self.t = translate or Translator()
        self.items: list[CartItem] = list(items or [])
        self.user_id = user_id
        self.vat_rate = vat_rate
        self.clock = clock

        self.form = CheckoutForm()
        self.current_step = CheckoutStep.CONTACT
        self.completed_steps: set[int] = set()
        self.submitting = False
        self.placed_order: Optional[SubmitResult] = None

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def subtotal(self) -> float:
        return sum(line_total(item) for item in self.items)

    @property
    def shipping_country(self) -> str:
        return self.form.shipping_address.country.strip().upper()

    @property
    def shipping_methods(self) -> list[ShippingMethod]:
        return self.resolver.resolve(self.shipping_country, self.subtotal)

    @property
    def selected_shipping_method(self) -> Optional[ShippingMethod]:
        return find_method(self.form.selected_shipping_method, self.shipping_methods)

    @property
    def pickup_point_required(self) -> bool:
        method = self.selected_shipping_method
        return bool(method and method.requires_pickup_point and is_carrier_served(self.shipping_country))

    def summary(self) -> OrderSummaryData:
        shipping = calculate_shipping_cost(self.form.selected_shipping_method, self.shipping_methods)
        return calculate_order_summary(self.items, shipping, self.promo.discount_amount, self.vat_rate)

    # ------------------------------------------------------------------
    # Form input
    # ------------------------------------------------------------------

    def set_cart_items(self, items: list[CartItem]) -> None:
        self.items = list(items)

    def set_contact(self, contact: ContactInformation) -> None:
        self.form.contact = contact

    async def set_shipping_address(self, address: ShippingAddress) -> None:
        """Update the shipping address; a new country refreshes pickup points and methods."""
        address = address.model_copy(update={"country": address.country.strip().upper()})
        self.form.shipping_address = address
        if self.form.selected_shipping_method and self.selected_shipping_method is None:
            logger.info(f"Shipping method {self.form.selected_shipping_method} unavailable for {address.country}, cleared")
            self.form.selected_shipping_method = None
        await self.pickup.set_country(address.country)

    def set_billing_address(self, address: Optional[ShippingAddress], same_as_shipping: bool) -> None:
        self.form.billing_same_as_shipping = same_as_shipping
        if address is not None:
            self.form.billing_address = address

    def select_shipping_method(self, method_id: str) -> ShippingMethod:
        method = find_method(method_id, self.shipping_methods)
        if method is None:
            raise ValueError(f"Shipping method {method_id} is not available for {self.shipping_country}")
        self.form.selected_shipping_method = method.id
        return method

    def select_pickup_point(self, point_id: str) -> None:
        self.pickup.select(point_id)

    def select_payment_method(self, method_id: str, card_details: Optional[CardDetails] = None) -> None:
        if method_id not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {method_id}")
        self.form.selected_payment_method = method_id
        if card_details is not None:
            self.form.card_details = card_details

    def set_agree_to_terms(self, agree: bool) -> None:
        self.form.agree_to_terms = agree

    async def apply_promo_code(self, code: str) -> bool:
        return await self.promo.apply(code, self.subtotal, self.form.contact.email.strip() or None)

    def remove_promo_code(self) -> None:
        self.promo.remove()

    # ------------------------------------------------------------------
    # Step gates
    # ------------------------------------------------------------------

    def contact_errors(self) -> FieldErrors:
        return self.validator.validate_contact(self.form.contact, self.shipping_country or None)

    def address_errors(self) -> FieldErrors:
        errors = self.validator.validate_address(self.form.shipping_address)
        if not self.form.billing_same_as_shipping:
            billing = self.validator.validate_address(self.form.billing_address)
            errors.update({f"billing_{field}": message for field, message in billing.items()})
        return errors

    def delivery_errors(self) -> FieldErrors:
        if self.selected_shipping_method is None:
            return {"shipping_method": self.t("checkout.select_shipping_method", "Please select a shipping method")}

        if not self.pickup_point_required:
            return {}

        selected = self.pickup.selected
        if selected is not None and selected.country.upper() == self.shipping_country:
            return {}
        if not self.pickup.loading and not self.pickup.points:
            return {
                "pickup_point": self.t(
                    "venipak.no_points_available",
                    "No pickup points are available. Please choose another shipping method.",
                )
            }
        return {"pickup_point": self.t("venipak.select_pickup_point_required", "Please select a pickup point")}

    def payment_errors(self) -> FieldErrors:
        errors = self.validator.validate_payment(self.form.selected_payment_method, self.form.card_details)
        if not self.form.agree_to_terms:
            errors["agree_to_terms"] = self.t("checkout.please_accept_terms", "Please accept the terms and conditions")
        return errors

    def step_errors(self, step: int) -> FieldErrors:
        gates = {
            CheckoutStep.CONTACT: self.contact_errors,
            CheckoutStep.ADDRESS: self.address_errors,
            CheckoutStep.DELIVERY: self.delivery_errors,
            CheckoutStep.PAYMENT: self.payment_errors,
        }
        return gates[CheckoutStep(step)]()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def continue_step(self, step: int) -> StepResult:
        """
        Validate `step` and advance to the next one.

        Raises:
            ValueError: If `step` is not the current step or is the payment step
        """
        if step not in GATED_STEPS:
            raise ValueError(f"Step {step} cannot be continued; the payment step is completed by submitting")
        if step != self.current_step:
            raise ValueError(f"Cannot continue step {step} while on step {int(self.current_step)}")

        errors = _messages(self.step_errors(step))
        if errors:
            logger.info(f"Step {step} rejected: {', '.join(errors)}")
            return StepResult(
                success=False,
                step=int(self.current_step),
                errors=errors,
                message=next(iter(errors.values())),
            )

        self.completed_steps.add(int(step))
        self.current_step = CheckoutStep(step + 1)
        logger.info(f"Step {step} completed, now on step {int(self.current_step)}")
        return StepResult(success=True, step=int(self.current_step))

    def edit(self, step: int) -> StepResult:
        """Go back to a step already reached; later-step data is kept."""
        if step not in tuple(CheckoutStep):
            raise ValueError(f"Invalid step: {step}")
        if step > self.current_step and step not in self.completed_steps:
            raise ValueError(f"Step {step} has not been reached yet")
        self.current_step = CheckoutStep(step)
        return StepResult(success=True, step=int(self.current_step))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_payload(self) -> OrderPayload:
        form = self.form
        method = self.selected_shipping_method
        return OrderPayload(
            contact=form.contact,
            shipping_address=form.shipping_address,
            billing_address=form.shipping_address if form.billing_same_as_shipping else form.billing_address,
            billing_same_as_shipping=form.billing_same_as_shipping,
            shipping_method=method.id if method else "",
            pickup_point=self.pickup.selected if method and method.requires_pickup_point else None,
            payment_method=form.selected_payment_method,
            card_details=form.card_details if form.selected_payment_method == "card" else None,
            promo_code=self.promo.applied.code if self.promo.applied else None,
            agree_to_terms=form.agree_to_terms,
            items=[
                OrderItemPayload(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    price=unit_price(item),
                )
                for item in self.items
            ],
            summary=self.summary(),
        )

    def snapshot(self) -> CheckoutSessionSnapshot:
        form = self.form
        return CheckoutSessionSnapshot(
            contact=form.contact,
            shipping_address=form.shipping_address,
            billing_address=form.billing_address,
            billing_same_as_shipping=form.billing_same_as_shipping,
            selected_shipping_method=form.selected_shipping_method,
            selected_payment_method=form.selected_payment_method,
            selected_pickup_point=self.pickup.selected,
            agree_to_terms=form.agree_to_terms,
            user_id=self.user_id,
            timestamp=self.clock(),
        )

    async def submit(self) -> SubmitResult:
        """
        Validate the payment step, save a session snapshot and submit the order.

        Only one submission may be in flight and an accepted order is never
        sent twice; failures keep the customer on the payment step. An order
        that needs no payment redirect completes the checkout immediately.
        """
        if self.placed_order is not None:
            logger.warning(f"Order {self.placed_order.order_number} already placed, ignoring submit")
            return SubmitResult(
                success=False,
                order_number=self.placed_order.order_number,
                message=self.t("checkout.already_placed", "Your order has already been placed"),
            )
        if self.submitting:
            logger.warning("Order submission already in progress, ignoring submit")
            return SubmitResult(
                success=False,
                message=self.t("checkout.submit_in_progress", "Your order is already being submitted"),
            )
        if not self.items:
            return SubmitResult(success=False, message=self.t("cart.empty", "Your cart is empty"))
        if self.current_step != CheckoutStep.PAYMENT:
            return SubmitResult(
                success=False,
                message=self.t("checkout.complete_previous_steps", "Please complete the previous steps first"),
            )

        errors: dict[str, str] = {}
        for step in CheckoutStep:
            errors.update(_messages(self.step_errors(step)))
        if errors:
            logger.info(f"Submission rejected: {', '.join(errors)}")
            return SubmitResult(success=False, errors=errors, message=next(iter(errors.values())))

        payload = self.build_payload()
        self.submitting = True
        try:
            self.persistence.save(self.snapshot())
            result = await self.submitter.submit_order(payload)
        except ShopApiError as e:
            logger.error(f"Order submission failed: {e}")
            return SubmitResult(
                success=False,
                message=self.t("checkout.submit_failed", "Could not place your order. Please try again."),
            )
        finally:
            self.submitting = False

        if not result.success and not result.message and result.errors:
            result.message = next(iter(result.errors.values()))
        if result.success:
            self.placed_order = result
            if not result.redirect_url:
                self.complete_order()
        return result

    async def restore_session(self, now: Optional[datetime] = None) -> bool:
        """
        Restore a snapshot saved before a payment redirect.

        On success the customer lands on the payment step with steps 1-3
        completed. The stored snapshot is consumed either way.
        """
        snapshot = self.persistence.restore(self.user_id, now or self.clock())
        if snapshot is None:
            return False

        self.form = CheckoutForm(
            contact=snapshot.contact,
            shipping_address=snapshot.shipping_address,
            billing_address=snapshot.billing_address,
            billing_same_as_shipping=snapshot.billing_same_as_shipping,
            selected_shipping_method=snapshot.selected_shipping_method,
            selected_payment_method=snapshot.selected_payment_method,
            agree_to_terms=snapshot.agree_to_terms,
        )
        await self.pickup.set_country(snapshot.shipping_address.country)
        if snapshot.selected_pickup_point is not None:
            self.pickup.restore(snapshot.selected_pickup_point)

        self.completed_steps = {int(s) for s in GATED_STEPS}
        self.current_step = CheckoutStep.PAYMENT
        self.placed_order = None
        return True

    def complete_order(self) -> None:
        """Order confirmation reached: drop any lingering snapshot and the applied promo."""
        self.persistence.clear()
        self.promo.remove()
        logger.info("Checkout completed, session state cleared")

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def state(self) -> dict[str, Any]:
        """JSON-ready view of the checkout; card number and CVV are masked."""
        form = self.form.model_dump(mode="json")
        card = form["card_details"]
        digits = "".join(ch for ch in card["card_number"] if ch.isdigit())
        card["card_number"] = f"**** {digits[-4:]}" if digits else ""
        card["cvv"] = "***" if card["cvv"] else ""
        return {
            "current_step": int(self.current_step),
            "completed_steps": sorted(self.completed_steps),
            "form": form,
            "shipping_methods": [m.model_dump(mode="json") for m in self.shipping_methods],
            "pickup_point_required": self.pickup_point_required,
            "selected_pickup_point": self.pickup.selected.model_dump(mode="json") if self.pickup.selected else None,
            "promo_code": self.promo.applied.model_dump(mode="json") if self.promo.applied else None,
            "promo_error": self.promo.error,
            "submitting": self.submitting,
            "order_number": self.placed_order.order_number if self.placed_order else None,
            "summary": self.summary().model_dump(mode="json", exclude={"items"}),
        }


def create_checkout(
    settings: CheckoutSettings,
    client: ShopApiClient,
    store: Optional[KeyValueStore] = None,
    items: Optional[list[CartItem]] = None,
) -> CheckoutFlow:
    """Wire a CheckoutFlow and its collaborators from settings."""
    translate = Translator.from_file(settings.translations_file) if settings.translations_file else Translator()
    store = store if store is not None else JsonFileStore(settings.session_file)
    return CheckoutFlow(
        validator=CheckoutValidator(translate, default_region=settings.home_country),
        resolver=ShippingResolver(translate, settings.home_country, settings.free_shipping_threshold),
        promo=PromoCodeCoordinator(client, translate),
        pickup=PickupPointSelector(client),
        persistence=CheckoutSessionPersistence(store),
        submitter=client,
        translate=translate,
        items=items,
        user_id=settings.user_id,
        vat_rate=settings.vat_rate,
    )
