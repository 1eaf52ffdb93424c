"""Shared BDD fixtures and step definitions for payment confirmation."""

import json

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from storefront.cart.items import AddToCart
from storefront.checkout.session import StartCheckout
from storefront.checkout.webhook import handle_payment_webhook
from storefront.gateway.fake_adapter import TEST_SIGNATURE
from storefront.order.order import FulfillmentStatus, Order, PaymentStatus
from storefront.order.placement import PlaceOrder
from storefront.stock.ledger import process_stock_command

@pytest.fixture()
def urls():
    return {"success_url": "https://shop.example.test/thanks", "cancel_url": "https://shop.example.test/cart"}


@pytest.fixture()
def shelf():
    """Flavor ids by name, in the order they were stocked."""
    return {}


@pytest.fixture()
def checkout():
    """What the scenario has done so far: owner, session, payload and order id."""
    return {}


@pytest.fixture()
def deliver(checkout):
    def _deliver(payload: bytes):
        result = handle_payment_webhook(payload, TEST_SIGNATURE)
        checkout["order_id"] = result.get("order_id") or checkout.get("order_id")
        return result

    return _deliver


def _fill_cart(shelf, names, quantity, **owner):
    flavor_ids = [shelf[name.strip()] for name in names]
    process_stock_command(
        AddToCart(**owner, product_type="3-pack", flavor_ids=json.dumps(flavor_ids), quantity=quantity)
    )


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("flavors {first}, {second} and {third} with {on_hand:d} on hand each"))
def _(shelf, make_flavor, first, second, third, on_hand):
    for name in (first, second, third):
        shelf[name] = make_flavor(name, on_hand=on_hand)


@given(parsers.cfparse("a guest cart holding {quantity:d} custom pack of {first}, {second} and {third}"))
def _(shelf, checkout, quantity, first, second, third):
    checkout["owner"] = {"guest_id": "guest-bdd"}
    _fill_cart(shelf, (first, second, third), quantity, **checkout["owner"])


@given("the guest started checkout without placing an order")
def _(checkout, gateway, urls):
    command = StartCheckout(**urls, **checkout["owner"], guest_email="guest@example.com")
    checkout["session_id"] = current_domain.process(command, asynchronous=False)["session_id"]


@given(parsers.cfparse("a customer order holding {quantity:d} custom pack of {first}, {second} and {third}"))
def _(shelf, checkout, quantity, first, second, third):
    checkout["owner"] = {"user_id": "user-bdd"}
    _fill_cart(shelf, (first, second, third), quantity, **checkout["owner"])
    checkout["order_id"] = process_stock_command(PlaceOrder(**checkout["owner"]))


@given("the first payment for the order failed")
def _(checkout, gateway, deliver, urls):
    command = StartCheckout(**urls, **checkout["owner"], order_id=checkout["order_id"])
    session_id = current_domain.process(command, asynchronous=False)["session_id"]
    deliver(gateway.failure_payload(session_id, reason="Card declined"))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("exactly one order exists")
def _():
    assert len(current_domain.repository_for(Order)._dao.query.all().items) == 1


@then("the order is confirmed and paid")
def _(checkout):
    order = current_domain.repository_for(Order).get(checkout["order_id"])
    assert order.status == FulfillmentStatus.CONFIRMED.value
    assert order.payment_status == PaymentStatus.PAID.value
    assert order.stock_committed is True


@then(parsers.cfparse("each flavor has {on_hand:d} on hand and {reserved:d} reserved"))
def _(shelf, counter, on_hand, reserved):
    for flavor_id in shelf.values():
        assert counter(flavor_id).on_hand == on_hand
        assert counter(flavor_id).reserved == reserved
