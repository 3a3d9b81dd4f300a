"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from checkout_server import http_server
from checkout_server.cart import OptimisticCart
from checkout_server.checkout import CheckoutFlow
from checkout_server.config import CheckoutSettings
from checkout_server.pickup import PickupPointSelector
from checkout_server.promo import PromoCodeCoordinator
from checkout_server.session import BannerGate, CheckoutSessionPersistence, MemoryStore
from checkout_server.shipping import ShippingResolver
from checkout_server.validation import CheckoutValidator
from conftest import make_item

CONTACT = {"full_name": "Jonas Jonaitis", "email": "jonas@example.com", "phone": "+37061234567"}
ADDRESS = {"address_line1": "Gedimino pr. 1", "city": "Vilnius", "postal_code": "01103", "country": "LT"}


@pytest.fixture
def client(shop, monkeypatch):
    store = MemoryStore()
    checkout = CheckoutFlow(
        validator=CheckoutValidator(),
        resolver=ShippingResolver(),
        promo=PromoCodeCoordinator(shop),
        pickup=PickupPointSelector(shop),
        persistence=CheckoutSessionPersistence(store),
        submitter=shop,
    )
    monkeypatch.setattr(http_server, "settings", CheckoutSettings(), raising=False)
    monkeypatch.setattr(http_server, "cart", OptimisticCart(), raising=False)
    monkeypatch.setattr(http_server, "checkout", checkout, raising=False)
    monkeypatch.setattr(http_server, "banner", BannerGate(store), raising=False)
    # No `with` block: the lifespan would replace the globals above.
    return TestClient(http_server.app)


def set_cart(client):
    items = [make_item(30.0, quantity=2).model_dump(mode="json", by_alias=True)]
    return client.put("/cart", json={"items": items})


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_set_and_update_cart(client):
    response = set_cart(client)

    assert response.status_code == 200
    assert response.json()["summary"]["subtotal"] == 60.0

    response = client.post("/cart/items", json={"item_id": "p1-default", "quantity": 3})
    assert response.json()["item_count"] == 3
    assert http_server.checkout.subtotal == 90.0


def test_update_unknown_cart_item(client):
    assert client.post("/cart/items", json={"item_id": "nope", "quantity": 1}).status_code == 404


def test_full_checkout(client, shop):
    set_cart(client)

    client.post("/checkout/contact", json=CONTACT)
    assert client.post("/checkout/continue", json={"step": 1}).json() == {
        "success": True,
        "step": 2,
        "errors": {},
        "message": None,
    }

    state = client.post("/checkout/address", json={"shipping_address": ADDRESS}).json()
    courier = next(m for m in state["shipping_methods"] if m["id"] == "venipak-courier")
    assert courier["price"] == 0
    assert client.post("/checkout/continue", json={"step": 2}).json()["success"]

    client.post("/checkout/shipping-method", json={"method_id": "venipak-courier"})
    assert client.post("/checkout/continue", json={"step": 3}).json()["step"] == 4

    promo = client.post("/promo-code", json={"code": "welcome10"}).json()
    assert promo["success"]
    assert promo["discount_amount"] == 10.0

    client.post("/checkout/payment", json={"payment_method": "cash", "agree_to_terms": True})
    result = client.post("/checkout/submit").json()

    assert result["success"]
    assert result["orderNumber"] == "ORD-1"
    assert shop.submitted[0].summary.total == 50.0


def test_rejected_step_returns_errors(client):
    body = client.post("/checkout/continue", json={"step": 1}).json()

    assert not body["success"]
    assert body["step"] == 1
    assert "email" in body["errors"]


def test_continue_wrong_step_is_bad_request(client):
    assert client.post("/checkout/continue", json={"step": 3}).status_code == 400


def test_unknown_shipping_method_is_bad_request(client):
    assert client.post("/checkout/shipping-method", json={"method_id": "teleport"}).status_code == 400


def test_unknown_payment_method_is_bad_request(client):
    assert client.post("/checkout/payment", json={"payment_method": "bitcoin"}).status_code == 400


def test_pickup_points_grouped_by_city(client):
    client.post("/checkout/address", json={"shipping_address": ADDRESS})

    body = client.get("/checkout/pickup-points").json()

    assert body["country"] == "LT"
    assert list(body["groups"]) == ["Kaunas", "Vilnius"]


def test_invalid_promo_code(client):
    body = client.post("/promo-code", json={"code": "NOPE"}).json()

    assert not body["success"]
    assert body["error"] == "Promo code not found"


def test_restore_without_snapshot(client):
    assert client.post("/checkout/restore").json()["restored"] is False


def test_banner_shown_once(client):
    assert client.get("/banner").json() == {"show": True}
    assert client.get("/banner").json() == {"show": False}
