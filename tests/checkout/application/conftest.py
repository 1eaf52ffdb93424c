import json

import pytest
from protean import current_domain

from storefront.cart.items import AddToCart
from storefront.checkout.session import StartCheckout
from storefront.checkout.webhook import handle_payment_webhook
from storefront.gateway.fake_adapter import TEST_SIGNATURE
from storefront.stock.ledger import process_stock_command

URLS = {"success_url": "https://shop.example.test/thanks", "cancel_url": "https://shop.example.test/cart"}


@pytest.fixture
def address():
    return {"street": "1 Main St", "city": "Austin", "state": "TX", "postal_code": "78701", "country": "US"}


@pytest.fixture
def fill_cart():
    def _fill(flavor_ids, quantity=1, **owner):
        return process_stock_command(
            AddToCart(**owner, product_type="3-pack", flavor_ids=json.dumps(flavor_ids), quantity=quantity)
        )

    return _fill


@pytest.fixture
def start_checkout(gateway):
    def _start(**fields):
        return current_domain.process(StartCheckout(**URLS, **fields), asynchronous=False)

    return _start


@pytest.fixture
def deliver(gateway):
    """Post a webhook body to the storefront the way the gateway would."""

    def _deliver(payload: bytes):
        return handle_payment_webhook(payload, TEST_SIGNATURE)

    return _deliver
