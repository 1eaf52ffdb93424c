"""Payment gateway port (abstract interface).

The storefront hands the gateway a priced list of line items plus string
metadata, and later receives a webhook whose signature the adapter checks
before turning it into a ``PaymentEvent``. Swapping FakeGateway (dev/test)
for StripeGateway (production) changes nothing else.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

ORDER_ID_KEY = "orderId"
ORDER_DATA_KEY = "orderData"
RETRY_KEY = "isRetry"


class PaymentEventType(Enum):
    SUCCEEDED = "payment_succeeded"
    FAILED = "payment_failed"


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_amount: float
    quantity: int


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class PaymentEvent:
    """A verified, gateway-neutral payment notification."""

    type: PaymentEventType
    reference: str | None = None
    metadata: dict = field(default_factory=dict)
    payer_email: str | None = None
    payer_name: str | None = None
    payer_address: dict | None = None
    amount_paid_minor: int | None = None
    failure_reason: str | None = None

    @property
    def order_id(self) -> str | None:
        return self.metadata.get(ORDER_ID_KEY) or None

    @property
    def snapshot(self) -> str | None:
        return self.metadata.get(ORDER_DATA_KEY) or None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(
        self,
        line_items: list[LineItem],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        """Open a hosted payment page. Raises ``GatewayUnavailable`` on transport failure."""
        ...

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: str | None) -> PaymentEvent | None:
        """Verify and decode a webhook.

        Raises ``InvalidSignature`` before looking at the payload when the
        signature does not match. Returns None for event types the
        storefront does not act on.
        """
        ...
