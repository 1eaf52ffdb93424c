"""Synchronous order placement at checkout time.

The order is created unpaid (pending/pending). Cart lines move into the order
together with their reservations; explicit items are re-checked and reserved
now. Either way the order's items hold their stock until payment commits it
or an admin cancels the order.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.checkout.lines import (
    lines_from_cart,
    lines_from_request,
    recheck_availability,
    shipping_fields,
    total_of,
)
from storefront.domain import logger, storefront
from storefront.identity import Owner
from storefront.order.order import Order, ShippingAddress
from storefront.stock.ledger import StockLedger
from storefront.stock.reservation import ReservationEngine


@storefront.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier()
    guest_id = String(max_length=255)
    guest_email = String(max_length=255)
    items = Text()  # JSON array; the owner's cart is used when empty
    shipping_address = Text()  # JSON object
    shipping_rate = Text()  # JSON object: rate_id, carrier, service_name, amount
    notes = Text()


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        owner = Owner.resolve(command.user_id, command.guest_id)
        ledger = StockLedger()
        cart = None

        if command.items:
            lines = lines_from_request(json.loads(command.items), ReservationEngine(ledger))
        else:
            cart = current_domain.repository_for(Cart).for_owner(owner)
            lines = lines_from_cart(cart)

        recheck_availability(lines, ledger)
        for line in lines:
            if not line.held:
                for stock_id, amount in line.requirements().items():
                    ledger.adjust_reserved(stock_id, amount)

        address = json.loads(command.shipping_address) if command.shipping_address else None
        rate = json.loads(command.shipping_rate) if command.shipping_rate else {}
        shipping_cost = float(rate.get("amount") or 0.0)
        order = Order.place(
            owner,
            items=[line.to_order_item(held=True) for line in lines],
            total=total_of(lines, shipping_cost),
            guest_email=command.guest_email,
            notes=command.notes,
            shipping_address=ShippingAddress(**address) if address else None,
            **shipping_fields(rate),
        )

        if cart is not None:
            cart.check_out(order.id)
            current_domain.repository_for(Cart).add(cart)
        current_domain.repository_for(Order).add(order)

        logger.info("Order placed", order_id=str(order.id), total=order.total, item_count=len(lines))
        return str(order.id)
