"""Order aggregate: a durable, priced purchase and its two lifecycles.

``status`` tracks fulfillment and is driven by admins:
    PENDING → CONFIRMED → SHIPPED → DELIVERED, any of them → CANCELLED

``payment_status`` tracks money and is driven only by the payment gateway:
    PENDING → PAID | FAILED, FAILED → PENDING (retry) | PAID, PAID → REFUNDED

The two never share an enum or a setter. A payment confirmation may move
``status`` from PENDING to CONFIRMED and nothing else. Stock for an order is
committed once, in the same unit of work that flips the order to PAID.
"""

import json
from collections import defaultdict
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront.domain import storefront
from storefront.exceptions import AlreadyCommitted
from storefront.identity import Owner
from storefront.order.events import (
    OrderPaid,
    OrderPaymentFailed,
    OrderPaymentReopened,
    OrderPlaced,
    OrderShipmentRecorded,
    OrderStatusChanged,
    OrderStockCommitted,
)
from storefront.stock.reservation import per_unit_from_units, scale

ADMIN_PAGE_SIZE = 50
ADMIN_PAGE_LIMIT = 200


class FulfillmentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


_FULFILLMENT_TRANSITIONS = {
    FulfillmentStatus.PENDING: {FulfillmentStatus.CONFIRMED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.CONFIRMED: {FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.DELIVERED: {FulfillmentStatus.CANCELLED},
    FulfillmentStatus.CANCELLED: set(),  # Terminal
}

_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Where the order ships, as captured at checkout or from the payer."""

    name = String(max_length=255)
    street = String(required=True, max_length=255)
    street2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    phone = String(max_length=50)

    def to_dict(self) -> dict:
        return {
            key: getattr(self, key)
            for key in ("name", "street", "street2", "city", "state", "postal_code", "country", "phone")
            if getattr(self, key)
        }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier()  # Empty for packs
    recipe_id = Identifier()
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    price = Float(required=True, min_value=0.0)
    flavor_ids = Text(default="[]")  # JSON array, one entry per unit of a single pack
    custom_name = String(max_length=255)
    holds_reservation = Boolean(default=False)

    @property
    def units(self) -> list[str]:
        return json.loads(self.flavor_ids or "[]")

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)

    def stock_requirements(self) -> dict[str, int]:
        """Units to take from each stock counter for this item."""
        if self.units:
            return scale(per_unit_from_units(self.units), self.quantity)
        if self.product_id:
            return {str(self.product_id): self.quantity}
        return {}


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    user_id = Identifier()
    guest_id = String(max_length=255)
    guest_email = String(max_length=255)
    status = String(max_length=20, choices=FulfillmentStatus, default=FulfillmentStatus.PENDING.value)
    payment_status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    total = Float(required=True, min_value=0.0)
    notes = Text()
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    shipping_rate_id = String(max_length=255)
    shipping_carrier = String(max_length=100)
    shipping_service = String(max_length=100)
    shipping_cost = Float(min_value=0.0)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=1000)
    label_cost = Float()
    payment_reference = String(max_length=255)  # Gateway checkout session
    stock_committed = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()

    @invariant.post
    def order_must_have_exactly_one_owner(self):
        if bool(self.user_id) == bool(self.guest_id):
            raise ValidationError({"owner": ["An order belongs to either a user or a guest"]})

    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["An order needs at least one item"]})

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, owner: Owner, items, total, guest_email=None, notes=None, shipping_address=None, **shipping):
        """Create an unpaid order at checkout time."""
        return cls._build(
            owner,
            items,
            total,
            FulfillmentStatus.PENDING,
            PaymentStatus.PENDING,
            guest_email=guest_email,
            notes=notes,
            shipping_address=shipping_address,
            **shipping,
        )

    @classmethod
    def from_payment(
        cls,
        owner: Owner,
        items,
        total,
        payment_reference,
        guest_email=None,
        notes=None,
        shipping_address=None,
        **shipping,
    ):
        """Create an order whose payment already succeeded.

        Such orders exist only as paid and confirmed.
        """
        order = cls._build(
            owner,
            items,
            total,
            FulfillmentStatus.CONFIRMED,
            PaymentStatus.PAID,
            guest_email=guest_email,
            notes=notes,
            shipping_address=shipping_address,
            payment_reference=payment_reference,
            **shipping,
        )
        order.paid_at = order.created_at
        order.raise_(
            OrderPaid(
                order_id=str(order.id),
                amount=order.total,
                payment_reference=payment_reference,
                paid_at=order.paid_at,
            )
        )
        return order

    @classmethod
    def _build(cls, owner, items, total, status, payment_status, guest_email=None, **attributes):
        now = datetime.now(UTC)
        order = cls(
            user_id=owner.user_id,
            guest_id=owner.guest_id,
            guest_email=guest_email if owner.is_guest else None,
            status=status.value,
            payment_status=payment_status.value,
            total=round(total, 2),
            items=items,
            created_at=now,
            updated_at=now,
            **attributes,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                owner_key=owner.key,
                is_guest=owner.is_guest,
                status=order.status,
                payment_status=order.payment_status,
                total=order.total,
                item_count=len(order.items),
                placed_at=now,
            )
        )
        return order

    @property
    def owner(self) -> Owner:
        if self.guest_id:
            return Owner(key=self.guest_id, is_guest=True)
        return Owner(key=str(self.user_id), is_guest=False)

    @property
    def items_total(self) -> float:
        return round(sum(item.line_total for item in self.items), 2)

    # -------------------------------------------------------------------
    # Payment lifecycle (gateway-driven)
    # -------------------------------------------------------------------
    def _move_payment(self, target: PaymentStatus) -> None:
        current = PaymentStatus(self.payment_status)
        if target not in _PAYMENT_TRANSITIONS[current]:
            raise ValidationError(
                {"payment_status": [f"Cannot move payment from {current.value} to {target.value}"]}
            )
        self.payment_status = target.value
        self.updated_at = datetime.now(UTC)

    def confirm_payment(self, amount_paid=None, payment_reference=None) -> None:
        """Record a successful payment.

        Raises ``AlreadyCommitted`` when the order was already paid, which is
        the expected outcome of a duplicate confirmation.
        """
        if PaymentStatus(self.payment_status) in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise AlreadyCommitted(self.id)

        self._move_payment(PaymentStatus.PAID)
        if FulfillmentStatus(self.status) == FulfillmentStatus.PENDING:
            self.status = FulfillmentStatus.CONFIRMED.value
        if amount_paid is not None:
            self.total = round(amount_paid, 2)
        if payment_reference:
            self.payment_reference = payment_reference
        self.paid_at = self.updated_at

        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                amount=self.total,
                payment_reference=self.payment_reference,
                paid_at=self.paid_at,
            )
        )

    def record_payment_failure(self, reason=None) -> None:
        if PaymentStatus(self.payment_status) in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise AlreadyCommitted(self.id)
        if PaymentStatus(self.payment_status) == PaymentStatus.FAILED:
            return
        self._move_payment(PaymentStatus.FAILED)
        self.raise_(OrderPaymentFailed(order_id=str(self.id), reason=reason))

    def reopen_payment(self) -> None:
        """Send a failed order back to the gateway."""
        if PaymentStatus(self.payment_status) != PaymentStatus.FAILED:
            raise ValidationError({"payment_status": ["Only orders with a failed payment can be retried"]})
        self._move_payment(PaymentStatus.PENDING)
        self.raise_(OrderPaymentReopened(order_id=str(self.id)))

    def attach_payment_session(self, payment_reference) -> None:
        self.payment_reference = payment_reference
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------
    def stock_movements(self) -> dict[str, tuple[int, int]]:
        """Per stock counter: ``(quantity, held)`` to commit for this order."""
        movements = defaultdict(lambda: [0, 0])
        for item in self.items:
            for stock_id, amount in item.stock_requirements().items():
                movements[stock_id][0] += amount
                if item.holds_reservation:
                    movements[stock_id][1] += amount
        return {stock_id: (quantity, held) for stock_id, (quantity, held) in movements.items()}

    def held_reservations(self) -> dict[str, int]:
        return {stock_id: held for stock_id, (_, held) in self.stock_movements().items() if held}

    def mark_stock_committed(self) -> None:
        if self.stock_committed:
            raise AlreadyCommitted(self.id)
        now = datetime.now(UTC)
        for item in self.items:
            item.holds_reservation = False
        self.stock_committed = True
        self.updated_at = now
        self.raise_(OrderStockCommitted(order_id=str(self.id), committed_at=now))

    def drop_holds(self) -> None:
        for item in self.items:
            item.holds_reservation = False
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Fulfillment lifecycle (admin-driven)
    # -------------------------------------------------------------------
    def update_status(self, new_status: FulfillmentStatus) -> None:
        if not isinstance(new_status, FulfillmentStatus):
            raise ValidationError({"status": [f"Not a fulfillment status: {new_status!r}"]})

        current = FulfillmentStatus(self.status)
        if new_status not in _FULFILLMENT_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move order from {current.value} to {new_status.value}"]})

        self.status = new_status.value
        self.updated_at = datetime.now(UTC)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=current.value,
                new_status=new_status.value,
            )
        )

    # -------------------------------------------------------------------
    # Shipping
    # -------------------------------------------------------------------
    def record_shipment(self, tracking_number, tracking_url=None, label_cost=None, carrier=None) -> None:
        if not tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number is required"]})
        self.tracking_number = tracking_number
        self.tracking_url = tracking_url
        self.label_cost = label_cost
        if carrier:
            self.shipping_carrier = carrier
        self.updated_at = datetime.now(UTC)
        self.raise_(
            OrderShipmentRecorded(
                order_id=str(self.id),
                carrier=self.shipping_carrier,
                tracking_number=tracking_number,
                tracking_url=tracking_url,
                label_cost=label_cost,
            )
        )


@storefront.repository(part_of=Order)
class OrderRepository:
    def for_owner(self, owner: Owner) -> list[Order]:
        criteria = {"guest_id": owner.key} if owner.is_guest else {"user_id": owner.key}
        orders = self._dao.query.filter(**criteria).limit(None).all().items
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def with_status(self, status: FulfillmentStatus) -> list[Order]:
        return self._dao.query.filter(status=status.value).limit(None).all().items

    def with_payment_reference(self, payment_reference) -> Order | None:
        orders = self._dao.query.filter(payment_reference=payment_reference).all().items
        return orders[0] if orders else None

    def listing(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        page: int = 1,
        per_page: int = ADMIN_PAGE_SIZE,
        sort_by: str = "created_at",
        descending: bool = True,
    ):
        """One page of orders for the back office, newest first by default."""
        per_page = min(per_page, ADMIN_PAGE_LIMIT)
        criteria = {}
        if status:
            criteria["status"] = status
        if payment_status:
            criteria["payment_status"] = payment_status

        query = self._dao.query.filter(**criteria) if criteria else self._dao.query
        return (
            query.order_by(f"-{sort_by}" if descending else sort_by)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
