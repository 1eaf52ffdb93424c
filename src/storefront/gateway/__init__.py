"""Payment gateway factory.

``PAYMENT_GATEWAY`` picks the adapter: ``fake`` (default) or ``stripe``.
get_gateway() / set_gateway() / reset_gateway() let tests swap it.
"""

import os

from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def _create_default_gateway() -> PaymentGateway:
    name = os.getenv("PAYMENT_GATEWAY", "fake").lower()
    if name == "stripe":
        from storefront.gateway.stripe_adapter import StripeGateway

        return StripeGateway()
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _create_default_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
