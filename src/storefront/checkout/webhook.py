"""Entry point for gateway webhooks.

Verification happens before anything is read. The confirmation runs as a
serialized stock command; label purchase and email follow outside of it.
"""

from storefront.checkout.aftercare import after_payment
from storefront.checkout.confirmation import command_for
from storefront.domain import logger
from storefront.gateway import get_gateway
from storefront.stock.ledger import process_stock_command


def handle_payment_webhook(payload: bytes, signature: str | None) -> dict:
    event = get_gateway().parse_webhook(payload, signature)
    if event is None:
        return {"received": True, "handled": False}

    logger.info("Payment event received", event_type=event.type.value, reference=event.reference)
    outcome = process_stock_command(command_for(event))
    if outcome["committed"]:
        outcome["aftercare"] = after_payment(outcome["order_id"], outcome["recipient"])
    return {"received": True, "handled": True, **outcome}
