"""Admin order management: fulfillment status, shipments, bulk cleanup.

Admins drive ``status`` only. Cancelling an unpaid order gives its held
reservations back to the ledger; once an order is paid its stock is gone and
cancelling does not touch the ledger.
"""

import json

from protean import handle
from protean.exceptions import ProteanException, ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import logger, storefront
from storefront.order.order import FulfillmentStatus, Order
from storefront.stock.ledger import StockLedger

BULK_LIMIT = 1000


@storefront.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=FulfillmentStatus)


@storefront.command(part_of="Order")
class BulkUpdateOrderStatus:
    order_ids = Text(required=True)  # JSON array
    status = String(required=True, choices=FulfillmentStatus)


@storefront.command(part_of="Order")
class RecordShipment:
    order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=255)
    tracking_url = String(max_length=1000)
    label_cost = Float()
    carrier = String(max_length=100)


@storefront.command(part_of="Order")
class PurgeOrders:
    """Delete every order in a fulfillment status."""

    status = String(required=True, choices=FulfillmentStatus)


def _release_holds(order: Order, ledger: StockLedger) -> None:
    if order.stock_committed:
        return
    held = order.held_reservations()
    for stock_id, amount in held.items():
        if ledger.exists(stock_id):
            ledger.adjust_reserved(stock_id, -amount)
    if held:
        order.drop_holds()
        logger.info("Released reservations of unpaid order", order_id=str(order.id), counters=len(held))


def _change_status(order: Order, status: FulfillmentStatus, ledger: StockLedger) -> None:
    order.update_status(status)
    if status == FulfillmentStatus.CANCELLED:
        _release_holds(order, ledger)


@storefront.command_handler(part_of=Order)
class OrderAdministrationHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        _change_status(order, FulfillmentStatus(command.status), StockLedger())
        repo.add(order)

        logger.info("Order status updated", order_id=str(order.id), status=order.status)
        return order.status

    @handle(BulkUpdateOrderStatus)
    def bulk_update_order_status(self, command):
        order_ids = json.loads(command.order_ids)
        if not isinstance(order_ids, list) or not order_ids:
            raise ValidationError({"order_ids": ["Order IDs array is required"]})
        if len(order_ids) > BULK_LIMIT:
            raise ValidationError({"order_ids": [f"Bulk operations are limited to {BULK_LIMIT} orders at a time"]})

        repo = current_domain.repository_for(Order)
        ledger = StockLedger()
        status = FulfillmentStatus(command.status)
        updated, skipped = [], []
        for order_id in order_ids:
            try:
                order = repo.get(order_id)
                _change_status(order, status, ledger)
            except ProteanException as exc:
                skipped.append({"order_id": str(order_id), "reason": str(exc)})
                continue
            repo.add(order)
            updated.append(str(order_id))

        logger.info("Bulk status update", status=status.value, updated=len(updated), skipped=len(skipped))
        return {"updated": updated, "skipped": skipped}

    @handle(RecordShipment)
    def record_shipment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_shipment(
            tracking_number=command.tracking_number,
            tracking_url=command.tracking_url,
            label_cost=command.label_cost,
            carrier=command.carrier,
        )
        repo.add(order)

    @handle(PurgeOrders)
    def purge_orders(self, command):
        repo = current_domain.repository_for(Order)
        ledger = StockLedger()
        orders = repo.with_status(FulfillmentStatus(command.status))
        for order in orders:
            _release_holds(order, ledger)
            repo._dao.delete(order)

        logger.info("Orders purged", status=command.status, count=len(orders))
        return len(orders)
