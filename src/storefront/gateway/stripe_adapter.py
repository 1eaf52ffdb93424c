"""Stripe payment gateway adapter (Checkout Sessions + webhooks).

Stripe caps metadata values at 500 characters and keys at 50 per object, so
a long ``orderData`` snapshot is split over ``orderData_0``, ``orderData_1``
... and joined again when the webhook comes back.
"""

import json
import os

import stripe

from storefront.domain import logger
from storefront.exceptions import GatewayUnavailable, InvalidSignature
from storefront.gateway.port import (
    ORDER_DATA_KEY,
    ORDER_ID_KEY,
    CheckoutSession,
    LineItem,
    PaymentEvent,
    PaymentEventType,
    PaymentGateway,
)

METADATA_VALUE_LIMIT = 500
METADATA_KEY_LIMIT = 50

_SUCCEEDED_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
_FAILED_EVENTS = {"checkout.session.async_payment_failed", "payment_intent.payment_failed"}


def split_metadata(metadata: dict[str, str]) -> dict[str, str]:
    """Spread oversized values over numbered keys."""
    result = {}
    for key, value in metadata.items():
        value = str(value)
        if len(value) <= METADATA_VALUE_LIMIT:
            result[key] = value
            continue
        chunks = [value[i : i + METADATA_VALUE_LIMIT] for i in range(0, len(value), METADATA_VALUE_LIMIT)]
        for index, chunk in enumerate(chunks):
            result[f"{key}_{index}"] = chunk
    if len(result) > METADATA_KEY_LIMIT:
        raise ValueError(f"Metadata needs {len(result)} keys, the gateway allows {METADATA_KEY_LIMIT}")
    return result


def join_metadata(metadata: dict[str, str]) -> dict[str, str]:
    """Inverse of ``split_metadata``."""
    joined = {key: value for key, value in metadata.items() if not _chunk_index(key)[0]}
    chunked: dict[str, dict[int, str]] = {}
    for key, value in metadata.items():
        base, index = _chunk_index(key)
        if base:
            chunked.setdefault(base, {})[index] = value
    for base, parts in chunked.items():
        joined[base] = "".join(parts[index] for index in sorted(parts))
    return joined


def _chunk_index(key: str) -> tuple[str | None, int]:
    base, _, suffix = key.rpartition("_")
    if base and suffix.isdigit():
        return base, int(suffix)
    return None, 0


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        currency: str = "usd",
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("STRIPE_SECRET_KEY", "")
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET", "")
        self.currency = currency
        self.timeout = timeout or float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

        stripe.api_key = self.api_key
        stripe.max_network_retries = 2
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    def create_checkout_session(
        self,
        line_items: list[LineItem],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        try:
            stripe_metadata = split_metadata(metadata)
        except ValueError as exc:
            raise GatewayUnavailable("payment gateway", str(exc)) from exc

        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": item.name},
                        "unit_amount": round(item.unit_amount * 100),
                    },
                    "quantity": item.quantity,
                }
                for item in line_items
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": stripe_metadata,
            "shipping_address_collection": {"allowed_countries": ["US", "CA"]},
        }
        if customer_email:
            params["customer_email"] = customer_email
        if ORDER_ID_KEY in metadata:
            # Failure events arrive on the payment intent, not on the session
            params["payment_intent_data"] = {"metadata": {ORDER_ID_KEY: metadata[ORDER_ID_KEY]}}

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session failed", error=str(exc), error_type=type(exc).__name__)
            raise GatewayUnavailable("payment gateway", str(exc)) from exc

        return CheckoutSession(session_id=session.id, url=session.url)

    def parse_webhook(self, payload: bytes, signature: str | None) -> PaymentEvent | None:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(text, signature or "", self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature invalid", error=str(exc))
            raise InvalidSignature("Invalid webhook signature") from exc

        event = json.loads(text)
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}
        metadata = join_metadata(data.get("metadata") or {})

        if event_type in _SUCCEEDED_EVENTS:
            if data.get("payment_status") not in ("paid", "no_payment_required"):
                logger.info("Stripe session completed without payment yet", session_id=data.get("id"))
                return None
            details = data.get("customer_details") or {}
            shipping = data.get("shipping_details") or (data.get("collected_information") or {}).get(
                "shipping_details"
            )
            return PaymentEvent(
                type=PaymentEventType.SUCCEEDED,
                reference=data.get("id"),
                metadata=metadata,
                payer_email=details.get("email") or data.get("customer_email"),
                payer_name=(shipping or {}).get("name") or details.get("name"),
                payer_address=_address((shipping or {}).get("address") or details.get("address")),
                amount_paid_minor=data.get("amount_total"),
            )

        if event_type in _FAILED_EVENTS:
            error = data.get("last_payment_error") or {}
            return PaymentEvent(
                type=PaymentEventType.FAILED,
                reference=data.get("id"),
                metadata=metadata,
                failure_reason=error.get("message"),
            )

        logger.debug("Ignoring Stripe event", event_type=event_type)
        return None


def _address(address: dict | None) -> dict | None:
    if not address or not address.get("line1"):
        return None
    return {
        "street": address.get("line1"),
        "street2": address.get("line2"),
        "city": address.get("city"),
        "state": address.get("state"),
        "postal_code": address.get("postal_code"),
        "country": address.get("country"),
    }
