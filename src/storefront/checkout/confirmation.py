"""Payment confirmation: the one place stock leaves the building.

A verified gateway event arrives as ``ProcessPaymentEvent`` and is always run
through ``process_stock_command``. Everything for one event happens in one
unit of work: the order flips to paid (or is created paid), every counter is
committed, and the order is marked committed. A failure anywhere leaves the
order unpaid so a redelivery of the same event can try again.

Duplicate deliveries are expected. For a known order the paid status is the
guard; for an order created from the inline snapshot it is the gateway
reference stored on the order.
"""

import json
from collections import defaultdict

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.checkout.lines import shipping_fields
from storefront.checkout.snapshot import CheckoutSnapshot
from storefront.domain import logger, storefront
from storefront.exceptions import AlreadyCommitted
from storefront.gateway.port import ORDER_DATA_KEY, ORDER_ID_KEY, PaymentEvent, PaymentEventType
from storefront.identity import Owner, get_directory
from storefront.order.order import FulfillmentStatus, Order, OrderItem, ShippingAddress
from storefront.stock.ledger import StockLedger
from storefront.stock.reservation import per_unit_from_units


@storefront.command(part_of="Order")
class ProcessPaymentEvent:
    event_type = String(required=True, choices=PaymentEventType)
    reference = String(max_length=255)
    metadata = Text()  # JSON object
    payer_email = String(max_length=255)
    payer_name = String(max_length=255)
    payer_address = Text()  # JSON object
    amount_paid_minor = Integer()
    failure_reason = String(max_length=1000)


def command_for(event: PaymentEvent) -> ProcessPaymentEvent:
    return ProcessPaymentEvent(
        event_type=event.type.value,
        reference=event.reference,
        metadata=json.dumps(event.metadata or {}),
        payer_email=event.payer_email,
        payer_name=event.payer_name,
        payer_address=json.dumps(event.payer_address) if event.payer_address else None,
        amount_paid_minor=event.amount_paid_minor,
        failure_reason=event.failure_reason,
    )


def _outcome(order_id=None, committed=False, created=False, recipient=None) -> dict:
    return {
        "order_id": str(order_id) if order_id else None,
        "committed": committed,
        "created": created,
        "recipient": recipient,
    }


def _apply_movements(movements: dict[str, tuple[int, int]], ledger: StockLedger) -> None:
    """Commit held units and deduct the rest, counter by counter."""
    for stock_id, (quantity, held) in movements.items():
        if not ledger.exists(stock_id):
            logger.warning("No stock counter at commit, skipped", stock_id=stock_id, quantity=quantity)
            continue
        if held:
            ledger.commit(stock_id, held)
        if quantity > held:
            ledger.deduct(stock_id, quantity - held)


def _amount_paid(command) -> float | None:
    if command.amount_paid_minor is None:
        return None
    return round(command.amount_paid_minor / 100, 2)


def _check_amount(expected: float, paid: float | None, **context) -> None:
    if paid is not None and abs(paid - expected) >= 0.01:
        logger.warning("Amount paid differs from order total", expected=expected, paid=paid, **context)


def _resolve_owner(snapshot: CheckoutSnapshot, payer_email: str | None) -> Owner:
    """Registered checkout owners keep their order; guests are matched by payer email.

    A registered owner wins even when the payer email belongs to someone else.
    """
    if not snapshot.is_guest:
        return Owner(key=snapshot.owner_key, is_guest=False)

    email = payer_email or snapshot.guest_email
    if not email:
        return Owner(key=snapshot.owner_key, is_guest=True)

    user_id = get_directory().find_user_id(email)
    if user_id:
        return Owner(key=user_id, is_guest=False)
    return Owner.guest_for_email(email)


@storefront.command_handler(part_of=Order)
class PaymentConfirmationHandler:
    @handle(ProcessPaymentEvent)
    def process_payment_event(self, command):
        metadata = json.loads(command.metadata or "{}")
        order_id = metadata.get(ORDER_ID_KEY)

        if PaymentEventType(command.event_type) == PaymentEventType.FAILED:
            return self._record_failure(order_id, command)
        if order_id:
            return self._confirm_order(order_id, command)
        if metadata.get(ORDER_DATA_KEY):
            snapshot = CheckoutSnapshot.from_metadata(metadata[ORDER_DATA_KEY])
            return self._create_paid_order(snapshot, command)

        raise ValidationError({"metadata": ["Payment event carries neither an order id nor order data"]})

    def _record_failure(self, order_id, command):
        if not order_id:
            # Nothing was created for an inline checkout, so nothing to mark
            logger.info("Payment failed before an order existed", reference=command.reference)
            return _outcome()

        repo = current_domain.repository_for(Order)
        order = repo.get(order_id)
        try:
            order.record_payment_failure(command.failure_reason)
        except AlreadyCommitted:
            logger.info("Payment failure for a paid order ignored", order_id=order_id)
            return _outcome(order_id)
        repo.add(order)

        logger.info("Payment failed", order_id=order_id, reason=command.failure_reason)
        return _outcome(order_id)

    def _confirm_order(self, order_id, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(order_id)
        expected = order.total
        paid = _amount_paid(command)

        try:
            order.confirm_payment(amount_paid=paid, payment_reference=command.reference)
        except AlreadyCommitted:
            logger.info("Duplicate payment confirmation ignored", order_id=order_id, reference=command.reference)
            return _outcome(order_id)

        _check_amount(expected, paid, order_id=order_id)
        if FulfillmentStatus(order.status) == FulfillmentStatus.CANCELLED:
            logger.warning("Payment received for a cancelled order", order_id=order_id)

        _apply_movements(order.stock_movements(), StockLedger())
        order.mark_stock_committed()
        repo.add(order)

        logger.info("Order paid and stock committed", order_id=order_id, total=order.total)
        return _outcome(order.id, committed=True, recipient=command.payer_email or order.guest_email)

    def _create_paid_order(self, snapshot: CheckoutSnapshot, command):
        if not command.reference:
            raise ValidationError({"reference": ["A payment reference is required to create an order"]})

        repo = current_domain.repository_for(Order)
        existing = repo.with_payment_reference(command.reference)
        if existing is not None:
            logger.info(
                "Duplicate payment confirmation ignored", order_id=str(existing.id), reference=command.reference
            )
            return _outcome(existing.id)

        owner = _resolve_owner(snapshot, command.payer_email)
        paid = _amount_paid(command)
        _check_amount(snapshot.total, paid, reference=command.reference)

        address = snapshot.address.model_dump() if snapshot.address else None
        if address is None and command.payer_address:
            address = {"name": command.payer_name, **json.loads(command.payer_address)}
        rate = snapshot.shipping_rate.model_dump() if snapshot.shipping_rate else None
        guest_email = command.payer_email or snapshot.guest_email

        order = Order.from_payment(
            owner,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    recipe_id=item.recipe_id,
                    sku=item.sku,
                    quantity=item.quantity,
                    price=item.price,
                    flavor_ids=json.dumps(item.units),
                    custom_name=item.custom_name,
                )
                for item in snapshot.items
            ],
            total=paid if paid is not None else snapshot.total,
            payment_reference=command.reference,
            guest_email=guest_email,
            notes=snapshot.notes,
            shipping_address=ShippingAddress(**address) if address else None,
            **shipping_fields(rate),
        )

        # Cart lines still hold their reservations; the order takes them over
        cart_owner = Owner(key=snapshot.owner_key, is_guest=snapshot.is_guest)
        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.for_owner(cart_owner)
        movements: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for item in snapshot.items:
            held = 0
            if cart is not None and item.cart_line_id:
                held = cart.consume(item.cart_line_id, item.quantity, order.id)
            per_unit = per_unit_from_units(item.units) if item.units else {item.product_id: 1}
            for stock_id, amount in per_unit.items():
                movements[stock_id][0] += amount * item.quantity
                movements[stock_id][1] += amount * held

        _apply_movements({stock_id: tuple(pair) for stock_id, pair in movements.items()}, StockLedger())
        order.mark_stock_committed()
        repo.add(order)
        if cart is not None:
            cart_repo.add(cart)

        logger.info(
            "Order created from payment",
            order_id=str(order.id),
            reference=command.reference,
            owner_key=owner.key,
            total=order.total,
        )
        return _outcome(order.id, committed=True, created=True, recipient=guest_email)
