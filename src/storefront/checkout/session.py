"""Checkout sessions: handing a priced checkout to the payment gateway.

Two ways in:

- with an ``order_id``: the unpaid order already holds its stock. The gateway
  is told the order id only.
- without one: the owner's cart (or an explicit item list) is frozen into a
  ``CheckoutSnapshot`` that travels with the gateway session. The order is
  created when the payment succeeds.

Availability is checked again before the gateway is called. Nothing local
changes when the gateway cannot be reached.
"""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.checkout.lines import (
    gateway_line_items,
    lines_from_cart,
    lines_from_order,
    lines_from_request,
    recheck_availability,
    total_of,
)
from storefront.checkout.snapshot import CheckoutSnapshot
from storefront.domain import logger, storefront
from storefront.gateway import get_gateway
from storefront.gateway.port import ORDER_DATA_KEY, ORDER_ID_KEY, RETRY_KEY
from storefront.identity import Owner
from storefront.order.order import FulfillmentStatus, Order, PaymentStatus
from storefront.stock.ledger import StockLedger
from storefront.stock.reservation import ReservationEngine


@storefront.command(part_of="Order")
class StartCheckout:
    user_id = Identifier()
    guest_id = String(max_length=255)
    guest_email = String(max_length=255)
    order_id = Identifier()
    items = Text()  # JSON array; the owner's cart is used when empty
    shipping_address = Text()  # JSON object
    shipping_rate = Text()  # JSON object
    notes = Text()
    success_url = String(required=True, max_length=2000)
    cancel_url = String(required=True, max_length=2000)


@storefront.command(part_of="Order")
class RetryPayment:
    """Open a new gateway session for an order whose payment failed."""

    user_id = Identifier()
    guest_id = String(max_length=255)
    order_id = Identifier(required=True)
    success_url = String(required=True, max_length=2000)
    cancel_url = String(required=True, max_length=2000)


def _owned_order(order_id, owner: Owner) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if order.owner != owner:
        # Someone else's order looks the same as a missing one
        raise ObjectNotFoundError({"order_id": [f"Order {order_id} not found"]})
    return order


@storefront.command_handler(part_of=Order)
class CheckoutSessionHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        owner = Owner.resolve(command.user_id, command.guest_id)
        ledger = StockLedger()
        order = None

        if command.order_id:
            order = _owned_order(command.order_id, owner)
            if FulfillmentStatus(order.status) == FulfillmentStatus.CANCELLED:
                raise ValidationError({"order_id": ["Order has been cancelled"]})
            if PaymentStatus(order.payment_status) != PaymentStatus.PENDING:
                raise ValidationError({"payment_status": [f"Order payment is {order.payment_status}"]})

            lines = lines_from_order(order)
            recheck_availability(lines, ledger)
            shipping = order.shipping_cost or 0.0
            total = order.total
            metadata = {ORDER_ID_KEY: str(order.id)}
            customer_email = order.guest_email or command.guest_email
        else:
            if command.items:
                lines = lines_from_request(json.loads(command.items), ReservationEngine(ledger))
            else:
                lines = lines_from_cart(current_domain.repository_for(Cart).for_owner(owner))
            recheck_availability(lines, ledger)

            rate = json.loads(command.shipping_rate) if command.shipping_rate else None
            shipping = float(rate.get("amount") or 0.0) if rate else 0.0
            total = total_of(lines, shipping)
            snapshot = CheckoutSnapshot.build(
                owner_key=owner.key,
                is_guest=owner.is_guest,
                guest_email=command.guest_email,
                total=total,
                notes=command.notes,
                items=[line.to_snapshot_item() for line in lines],
                address=json.loads(command.shipping_address) if command.shipping_address else None,
                shipping_rate=rate,
            )
            metadata = {ORDER_DATA_KEY: snapshot.to_metadata()}
            customer_email = command.guest_email

        session = get_gateway().create_checkout_session(
            gateway_line_items(lines, shipping),
            metadata,
            success_url=command.success_url,
            cancel_url=command.cancel_url,
            customer_email=customer_email,
        )

        if order is not None:
            order.attach_payment_session(session.session_id)
            current_domain.repository_for(Order).add(order)

        logger.info(
            "Checkout session opened",
            session_id=session.session_id,
            order_id=str(order.id) if order else None,
            total=total,
        )
        return {"session_id": session.session_id, "url": session.url, "total": total}

    @handle(RetryPayment)
    def retry_payment(self, command):
        order = _owned_order(command.order_id, Owner.resolve(command.user_id, command.guest_id))
        order.reopen_payment()

        lines = lines_from_order(order)
        session = get_gateway().create_checkout_session(
            gateway_line_items(lines, order.shipping_cost or 0.0),
            {ORDER_ID_KEY: str(order.id), RETRY_KEY: "true"},
            success_url=command.success_url,
            cancel_url=command.cancel_url,
            customer_email=order.guest_email,
        )
        order.attach_payment_session(session.session_id)
        current_domain.repository_for(Order).add(order)

        logger.info("Payment retry session opened", order_id=str(order.id), session_id=session.session_id)
        return {"session_id": session.session_id, "url": session.url, "total": order.total}
