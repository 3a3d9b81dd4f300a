"""Tests for the checkout step state machine and order submission."""

from datetime import datetime, timedelta, timezone

import pytest

from checkout_server.cart import OptimisticCart
from checkout_server.checkout import CheckoutFlow, CheckoutStep
from checkout_server.models import CardDetails, ContactInformation, ShippingAddress, SubmitResult
from checkout_server.pickup import PickupPointSelector
from checkout_server.promo import PromoCodeCoordinator
from checkout_server.session import SNAPSHOT_KEY, CheckoutSessionPersistence, MemoryStore
from checkout_server.shipping import ShippingResolver
from checkout_server.validation import CheckoutValidator
from conftest import make_item, make_point

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
PAYMENT_REDIRECT = SubmitResult(success=True, order_number="ORD-7", redirect_url="https://pay.example/abc")

CONTACT = ContactInformation(full_name="Jonas Jonaitis", email="jonas@example.com", phone="+37061234567")
LT_ADDRESS = ShippingAddress(address_line1="Gedimino pr. 1", city="Vilnius", postal_code="01103", country="LT")
LV_ADDRESS = ShippingAddress(address_line1="Brivibas iela 1", city="Riga", postal_code="LV-1050", country="LV")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_flow(shop, store):
    def factory(items=None, user_id=None):
        return CheckoutFlow(
            validator=CheckoutValidator(),
            resolver=ShippingResolver(),
            promo=PromoCodeCoordinator(shop),
            pickup=PickupPointSelector(shop),
            persistence=CheckoutSessionPersistence(store),
            submitter=shop,
            items=items if items is not None else [make_item(30.0, quantity=2)],
            user_id=user_id,
            clock=lambda: NOW,
        )

    return factory


@pytest.fixture
def flow(make_flow):
    return make_flow()


async def advance_to_payment(flow, address=LT_ADDRESS, method="venipak-courier"):
    flow.set_contact(CONTACT)
    assert flow.continue_step(1).success
    await flow.set_shipping_address(address)
    assert flow.continue_step(2).success
    flow.select_shipping_method(method)
    assert flow.continue_step(3).success


def test_initial_state(flow):
    assert flow.current_step == CheckoutStep.CONTACT
    assert flow.completed_steps == set()


def test_contact_step_rejects_invalid_input(flow):
    flow.set_contact(ContactInformation(full_name="Jonas Jonaitis", email="nope"))

    result = flow.continue_step(1)

    assert not result.success
    assert result.step == 1
    assert set(result.errors) == {"email", "phone"}
    assert flow.current_step == CheckoutStep.CONTACT
    assert flow.completed_steps == set()


def test_only_current_step_can_be_continued(flow):
    with pytest.raises(ValueError):
        flow.continue_step(2)


def test_payment_step_is_not_continued(flow):
    with pytest.raises(ValueError):
        flow.continue_step(4)


@pytest.mark.asyncio
async def test_lithuania_over_threshold_has_free_courier(flow):
    await advance_to_payment(flow)

    summary = flow.summary()
    assert flow.current_step == CheckoutStep.PAYMENT
    assert flow.completed_steps == {1, 2, 3}
    assert summary.subtotal == 60.0
    assert summary.shipping == 0
    assert summary.total == 60.0


@pytest.mark.asyncio
async def test_promo_code_discount_applies_to_total(flow, shop):
    await advance_to_payment(flow)

    assert await flow.apply_promo_code("WELCOME10")

    assert shop.promo_calls == [("WELCOME10", 60.0, "jonas@example.com")]
    summary = flow.summary()
    assert summary.promo_code_discount == 10.0
    assert summary.total == 50.0


@pytest.mark.asyncio
async def test_pickup_method_without_point_blocks_delivery_step(flow):
    flow.set_contact(CONTACT)
    flow.continue_step(1)
    await flow.set_shipping_address(LV_ADDRESS)
    flow.continue_step(2)
    flow.select_shipping_method("venipak-pickup")

    result = flow.continue_step(3)

    assert not result.success
    assert result.step == 3
    assert "pickup_point" in result.errors
    assert flow.current_step == CheckoutStep.DELIVERY


@pytest.mark.asyncio
async def test_pickup_point_satisfies_delivery_step(flow):
    flow.set_contact(CONTACT)
    flow.continue_step(1)
    await flow.set_shipping_address(LV_ADDRESS)
    flow.continue_step(2)
    flow.select_shipping_method("venipak-pickup")
    flow.select_pickup_point("10")

    assert flow.continue_step(3).success
    assert flow.build_payload().pickup_point.id == "10"


@pytest.mark.asyncio
async def test_no_pickup_points_available_message(flow, shop):
    shop.pickup_points["LV"] = []
    flow.set_contact(CONTACT)
    flow.continue_step(1)
    await flow.set_shipping_address(LV_ADDRESS)
    flow.continue_step(2)
    flow.select_shipping_method("venipak-pickup")

    result = flow.continue_step(3)

    assert result.errors["pickup_point"].startswith("No pickup points are available")


def test_delivery_step_requires_a_method(flow):
    assert "shipping_method" in flow.delivery_errors()


@pytest.mark.asyncio
async def test_unavailable_method_cannot_be_selected(flow):
    await flow.set_shipping_address(LT_ADDRESS.model_copy(update={"country": "DE", "postal_code": "10115"}))

    with pytest.raises(ValueError):
        flow.select_shipping_method("venipak-courier")


@pytest.mark.asyncio
async def test_country_change_clears_unavailable_method(flow):
    await flow.set_shipping_address(LT_ADDRESS)
    flow.select_shipping_method("venipak-pickup")

    await flow.set_shipping_address(LT_ADDRESS.model_copy(update={"country": "US", "postal_code": "10001"}))

    assert flow.form.selected_shipping_method is None
    assert [m.id for m in flow.shipping_methods] == ["fedex-courier"]


@pytest.mark.asyncio
async def test_separate_billing_address_is_validated(flow):
    flow.set_contact(CONTACT)
    flow.continue_step(1)
    await flow.set_shipping_address(LT_ADDRESS)
    flow.set_billing_address(ShippingAddress(country="LT"), same_as_shipping=False)

    result = flow.continue_step(2)

    assert not result.success
    assert "billing_address_line1" in result.errors


@pytest.mark.asyncio
async def test_edit_returns_to_earlier_step_and_keeps_data(flow):
    await advance_to_payment(flow)

    flow.edit(1)

    assert flow.current_step == CheckoutStep.CONTACT
    assert flow.form.selected_shipping_method == "venipak-courier"
    assert flow.continue_step(1).step == 2


def test_edit_unreached_step_raises(flow):
    with pytest.raises(ValueError):
        flow.edit(3)


@pytest.mark.asyncio
async def test_twelve_digit_card_blocks_submission(flow, shop):
    await advance_to_payment(flow)
    flow.select_payment_method(
        "card", CardDetails(card_number="123456789012", expiry_date="12/30", cvv="123", cardholder_name="Jonas")
    )
    flow.set_agree_to_terms(True)

    result = await flow.submit()

    assert not result.success
    assert "card_number" in result.errors
    assert shop.submitted == []
    assert flow.current_step == CheckoutStep.PAYMENT


@pytest.mark.asyncio
async def test_terms_must_be_accepted(flow, shop):
    await advance_to_payment(flow)

    result = await flow.submit()

    assert "agree_to_terms" in result.errors
    assert shop.submitted == []


@pytest.mark.asyncio
async def test_submit_before_payment_step_is_refused(flow, shop):
    result = await flow.submit()

    assert not result.success
    assert shop.submitted == []


@pytest.mark.asyncio
async def test_successful_submission(flow, shop, store):
    await advance_to_payment(flow)
    await flow.apply_promo_code("WELCOME10")
    flow.select_payment_method("paysera")
    flow.set_agree_to_terms(True)
    shop.submit_result = SubmitResult(success=True, order_number="ORD-7", redirect_url="https://pay.example/abc")

    result = await flow.submit()

    assert result.success
    assert result.redirect_url == "https://pay.example/abc"
    payload = shop.submitted[0]
    assert payload.items[0].price == 30.0
    assert payload.items[0].quantity == 2
    assert payload.promo_code == "WELCOME10"
    assert payload.billing_address == LT_ADDRESS
    assert payload.card_details is None
    assert payload.summary.total == 50.0
    assert store.get(SNAPSHOT_KEY) is not None
    assert not flow.submitting


@pytest.mark.asyncio
async def test_snapshot_never_contains_card_details(flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    await advance_to_payment(flow)
    flow.select_payment_method(
        "card", CardDetails(card_number="4111111111111111", expiry_date="12/30", cvv="123", cardholder_name="Jonas")
    )
    flow.set_agree_to_terms(True)

    await flow.submit()

    raw = store.get(SNAPSHOT_KEY)
    assert "4111111111111111" not in raw
    assert "cvv" not in raw.lower()


@pytest.mark.asyncio
async def test_server_field_errors_keep_customer_on_payment(flow, shop):
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)
    shop.submit_result = SubmitResult(success=False, errors={"email": "Email is blocked"})

    result = await flow.submit()

    assert not result.success
    assert result.message == "Email is blocked"
    assert flow.current_step == CheckoutStep.PAYMENT


@pytest.mark.asyncio
async def test_transport_failure_gives_generic_message(flow, shop):
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)
    shop.fail_submit = True

    result = await flow.submit()

    assert not result.success
    assert result.message == "Could not place your order. Please try again."
    assert not flow.submitting


@pytest.mark.asyncio
async def test_duplicate_submit_is_ignored(flow, shop):
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)
    flow.submitting = True

    result = await flow.submit()

    assert not result.success
    assert shop.submitted == []


@pytest.mark.asyncio
async def test_restore_session_lands_on_payment(make_flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    first = make_flow()
    first.set_contact(CONTACT)
    first.continue_step(1)
    await first.set_shipping_address(LV_ADDRESS)
    first.continue_step(2)
    first.select_shipping_method("venipak-pickup")
    first.select_pickup_point("10")
    first.continue_step(3)
    first.select_payment_method("stripe")
    first.set_agree_to_terms(True)
    await first.submit()

    second = make_flow()
    assert await second.restore_session(NOW + timedelta(minutes=5))

    assert second.current_step == CheckoutStep.PAYMENT
    assert second.completed_steps == {1, 2, 3}
    assert second.form.contact == CONTACT
    assert second.form.selected_payment_method == "stripe"
    assert second.pickup.selected.id == "10"
    assert second.form.card_details == CardDetails()
    assert store.get(SNAPSHOT_KEY) is None


@pytest.mark.asyncio
async def test_expired_session_is_not_restored(make_flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    first = make_flow()
    await advance_to_payment(first)
    first.set_agree_to_terms(True)
    await first.submit()

    second = make_flow()

    assert not await second.restore_session(NOW + timedelta(minutes=31))
    assert second.current_step == CheckoutStep.CONTACT
    assert store.get(SNAPSHOT_KEY) is None


@pytest.mark.asyncio
async def test_session_of_other_user_is_not_restored(make_flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    first = make_flow(user_id="u1")
    await advance_to_payment(first)
    first.set_agree_to_terms(True)
    await first.submit()

    assert store.get(SNAPSHOT_KEY) is not None
    assert not await make_flow(user_id="u2").restore_session(NOW)


@pytest.mark.asyncio
async def test_complete_order_clears_snapshot_and_promo(flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    await advance_to_payment(flow)
    await flow.apply_promo_code("WELCOME10")
    flow.set_agree_to_terms(True)
    await flow.submit()

    assert store.get(SNAPSHOT_KEY) is not None
    assert flow.promo.applied is not None

    flow.complete_order()

    assert store.get(SNAPSHOT_KEY) is None
    assert flow.promo.applied is None


@pytest.mark.asyncio
async def test_state_masks_card(flow):
    flow.select_payment_method(
        "card", CardDetails(card_number="4111 1111 1111 1234", expiry_date="12/30", cvv="123", cardholder_name="Jonas")
    )

    state = flow.state()

    assert state["form"]["card_details"]["card_number"] == "**** 1234"
    assert state["form"]["card_details"]["cvv"] == "***"
    assert state["current_step"] == 1


def test_unknown_payment_method_is_rejected(flow):
    with pytest.raises(ValueError):
        flow.select_payment_method("bitcoin")


@pytest.mark.asyncio
async def test_empty_cart_cannot_be_submitted(make_flow, shop):
    flow = make_flow(items=[])
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)

    result = await flow.submit()

    assert not result.success
    assert result.message == "Your cart is empty"
    assert shop.submitted == []


@pytest.mark.asyncio
async def test_apply_then_remove_promo_restores_summary(flow):
    await advance_to_payment(flow)
    before = flow.summary()

    assert await flow.apply_promo_code("WELCOME10")
    assert flow.summary() != before
    flow.remove_promo_code()

    assert flow.summary() == before


@pytest.mark.parametrize(
    "items",
    [
        [make_item(30.0, quantity=2)],
        [make_item(19.99, quantity=3, compare_at=24.99), make_item(7.5, product_id="p2", variant_price=6.0, variant_id="v1")],
        [],
    ],
)
def test_cart_and_checkout_totals_agree_without_shipping_or_promo(make_flow, items):
    flow = make_flow(items=items)
    cart = OptimisticCart(items)

    assert flow.form.selected_shipping_method is None
    assert cart.summary().total == flow.summary().total
    assert cart.summary() == flow.summary()


@pytest.mark.asyncio
async def test_order_without_redirect_completes_checkout(flow, shop, store):
    await advance_to_payment(flow)
    await flow.apply_promo_code("WELCOME10")
    flow.set_agree_to_terms(True)

    result = await flow.submit()

    assert result.success
    assert store.get(SNAPSHOT_KEY) is None
    assert flow.promo.applied is None
    assert flow.state()["order_number"] == "ORD-1"


@pytest.mark.asyncio
async def test_placed_order_is_not_submitted_again(flow, shop):
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)
    assert (await flow.submit()).success

    again = await flow.submit()

    assert not again.success
    assert again.order_number == "ORD-1"
    assert again.message == "Your order has already been placed"
    assert len(shop.submitted) == 1


@pytest.mark.asyncio
async def test_redirect_order_keeps_snapshot_until_return(make_flow, shop, store):
    shop.submit_result = PAYMENT_REDIRECT
    flow = make_flow()
    await advance_to_payment(flow)
    flow.set_agree_to_terms(True)
    await flow.submit()

    assert store.get(SNAPSHOT_KEY) is not None
    assert not (await flow.submit()).success

    assert await flow.restore_session(NOW + timedelta(minutes=1))
    shop.submit_result = SubmitResult(success=True, order_number="ORD-8")
    assert (await flow.submit()).success
    assert len(shop.submitted) == 2
