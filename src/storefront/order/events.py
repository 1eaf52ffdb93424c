"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order row now exists, either at checkout or on payment confirmation."""

    __version__ = 1

    order_id = Identifier(required=True)
    owner_key = String(required=True)
    is_guest = Boolean(default=False)
    status = String(required=True)
    payment_status = String(required=True)
    total = Float(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    payment_reference = String()
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()


@storefront.event(part_of="Order")
class OrderPaymentReopened:
    """A failed order was sent back to the gateway for another attempt."""

    __version__ = 1

    order_id = Identifier(required=True)


@storefront.event(part_of="Order")
class OrderStockCommitted:
    __version__ = 1

    order_id = Identifier(required=True)
    committed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)


@storefront.event(part_of="Order")
class OrderShipmentRecorded:
    __version__ = 1

    order_id = Identifier(required=True)
    carrier = String()
    tracking_number = String(required=True)
    tracking_url = String()
    label_cost = Float()
