"""Storefront-specific errors layered on top of ``protean.exceptions``.

Lookups that miss raise ``ObjectNotFoundError`` and bad input raises
``ValidationError``, as everywhere else in the domain. The classes here add
the cases those two cannot express.
"""

from protean.exceptions import ProteanException, ValidationError


class InsufficientStock(ValidationError):
    """Availability check failed for one stock counter.

    Carries the deficit so callers can render it.
    """

    def __init__(self, stock_id: str, available: int, required: int) -> None:
        self.stock_id = str(stock_id)
        self.available = available
        self.required = required
        super().__init__(
            {"stock": [f"Insufficient stock for {self.stock_id}: available {available}, required {required}"]}
        )

    def to_dict(self) -> dict:
        return {
            "stock_id": self.stock_id,
            "available": self.available,
            "required": self.required,
        }


class PaymentStatusConflict(ProteanException):
    """A caller other than the payment gateway tried to write payment status."""


class GatewayUnavailable(ProteanException):
    """The payment gateway or shipping provider could not be reached.

    Local state is left untouched; the caller may retry.
    """

    def __init__(self, service: str, reason: str) -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"{service} unavailable: {reason}")


class InvalidSignature(ProteanException):
    """Webhook payload failed signature verification."""


class AlreadyCommitted(ProteanException):
    """Stock for this order was already committed.

    Expected on duplicate webhook delivery; never surfaced to users.
    """

    def __init__(self, order_id: str) -> None:
        self.order_id = str(order_id)
        super().__init__(f"Order {self.order_id} is already paid")
