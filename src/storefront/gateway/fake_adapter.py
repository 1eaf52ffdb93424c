"""Configurable fake payment gateway for development and testing.

Sessions are kept in memory. ``completion_payload`` and ``failure_payload``
produce webhook bodies for a session the way a real gateway would post them,
signed with the fixed test signature.
"""

import json
from uuid import uuid4

from storefront.exceptions import GatewayUnavailable, InvalidSignature
from storefront.gateway.port import CheckoutSession, LineItem, PaymentEvent, PaymentEventType, PaymentGateway

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway timed out"
        self.calls: list[dict] = []
        self.sessions: dict[str, dict] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway timed out") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_checkout_session(
        self,
        line_items: list[LineItem],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        call = {
            "method": "create_checkout_session",
            "line_items": line_items,
            "metadata": dict(metadata),
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        }
        self.calls.append(call)

        if not self.should_succeed:
            raise GatewayUnavailable("payment gateway", self.failure_reason)

        session_id = f"fake_cs_{uuid4().hex[:16]}"
        self.sessions[session_id] = {
            "metadata": dict(metadata),
            "amount_total": sum(round(item.unit_amount * 100) * item.quantity for item in line_items),
            "customer_email": customer_email,
        }
        return CheckoutSession(session_id=session_id, url=f"https://pay.example.test/{session_id}")

    def completion_payload(
        self,
        session_id: str,
        payer_email: str | None = None,
        payer_name: str | None = None,
        payer_address: dict | None = None,
        amount_paid_minor: int | None = None,
    ) -> bytes:
        session = self.sessions[session_id]
        return self._payload(
            PaymentEventType.SUCCEEDED,
            session_id,
            metadata=session["metadata"],
            payer_email=payer_email or session["customer_email"],
            payer_name=payer_name,
            payer_address=payer_address,
            amount_paid_minor=session["amount_total"] if amount_paid_minor is None else amount_paid_minor,
        )

    def failure_payload(self, session_id: str, reason: str = "Card declined") -> bytes:
        session = self.sessions[session_id]
        return self._payload(PaymentEventType.FAILED, session_id, metadata=session["metadata"], failure_reason=reason)

    def _payload(self, event_type: PaymentEventType, session_id: str, **fields) -> bytes:
        body = {"id": f"evt_{uuid4().hex[:12]}", "type": event_type.value, "reference": session_id, **fields}
        return json.dumps(body).encode()

    def parse_webhook(self, payload: bytes, signature: str | None) -> PaymentEvent | None:
        if signature != TEST_SIGNATURE:
            raise InvalidSignature("Invalid webhook signature")

        body = json.loads(payload)
        try:
            event_type = PaymentEventType(body.get("type"))
        except ValueError:
            return None

        return PaymentEvent(
            type=event_type,
            reference=body.get("reference"),
            metadata=body.get("metadata") or {},
            payer_email=body.get("payer_email"),
            payer_name=body.get("payer_name"),
            payer_address=body.get("payer_address"),
            amount_paid_minor=body.get("amount_paid_minor"),
            failure_reason=body.get("failure_reason"),
        )
