"""Shared BDD fixtures and step definitions for stock reservation."""

import json

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from storefront.cart.items import AddToCart
from storefront.exceptions import InsufficientStock
from storefront.stock.ledger import process_stock_command


@pytest.fixture()
def flavors():
    """Flavor ids by name."""
    return {}


@pytest.fixture()
def cart_line():
    return {}


@pytest.fixture()
def error():
    """Container for the rejection raised by a When step."""
    return {}


@pytest.fixture()
def guest_id():
    return "guest-bdd"


@pytest.fixture()
def add_packs(flavors, guest_id):
    """Add a custom pack, named by its three flavors, to the guest cart."""

    def _add(quantity, *names):
        flavor_ids = [flavors[name.strip()] for name in names]
        return process_stock_command(
            AddToCart(guest_id=guest_id, product_type="3-pack", flavor_ids=json.dumps(flavor_ids), quantity=quantity)
        )

    return _add


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('flavor "{name}" with {on_hand:d} on hand and a safety stock of {safety:d}'))
def _(flavors, make_flavor, name, on_hand, safety):
    flavors[name] = make_flavor(name, on_hand=on_hand, safety_stock=safety)


@given(parsers.cfparse('flavor "{name}" with {on_hand:d} on hand'))
def _(flavors, make_flavor, name, on_hand):
    flavors[name] = make_flavor(name, on_hand=on_hand)


@given(parsers.cfparse("a guest has {quantity:d} packs of {first}, {second} and {third} in the cart"))
def _(add_packs, cart_line, quantity, first, second, third):
    cart_line["id"] = add_packs(quantity, first, second, third)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{name}" has {reserved:d} reserved and {available:d} available'))
def _(flavors, counter, name, reserved, available):
    stock = counter(flavors[name])
    assert stock.reserved == reserved
    assert stock.available == available


@then(parsers.cfparse('"{name}" has {on_hand:d} on hand'))
def _(flavors, counter, name, on_hand):
    assert counter(flavors[name]).on_hand == on_hand


@then(parsers.cfparse('the request is rejected for "{name}" with {available:d} available and {required:d} required'))
def _(flavors, error, name, available, required):
    exc = error["exc"]
    assert isinstance(exc, InsufficientStock)
    assert exc.to_dict() == {"stock_id": flavors[name], "available": available, "required": required}


@then("the request is rejected as invalid")
def _(error):
    assert isinstance(error["exc"], ValidationError)
    assert not isinstance(error["exc"], InsufficientStock)
