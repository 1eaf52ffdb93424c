import json

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.order.administration import (
    BULK_LIMIT,
    BulkUpdateOrderStatus,
    PurgeOrders,
    RecordShipment,
    UpdateOrderStatus,
)
from storefront.order.order import FulfillmentStatus, Order, PaymentStatus
from storefront.order.placement import PlaceOrder
from storefront.stock.ledger import process_stock_command


@pytest.fixture
def place(three_flavors):
    def _place(quantity=1):
        items = [{"product_type": "3-pack", "flavor_ids": three_flavors, "quantity": quantity}]
        return process_stock_command(PlaceOrder(user_id="user-1", items=json.dumps(items)))

    return _place


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _set_status(order_id, status):
    return process_stock_command(UpdateOrderStatus(order_id=order_id, status=status.value))


class TestUpdateOrderStatus:
    def test_confirm_and_ship(self, place):
        order_id = place()
        _set_status(order_id, FulfillmentStatus.CONFIRMED)
        assert _set_status(order_id, FulfillmentStatus.SHIPPED) == "shipped"

        order = _order(order_id)
        assert order.status == FulfillmentStatus.SHIPPED.value
        assert order.payment_status == PaymentStatus.PENDING.value

    def test_cancelling_unpaid_order_releases_holds(self, place, three_flavors, counter):
        order_id = place(quantity=2)
        assert counter(three_flavors[0]).reserved == 2

        _set_status(order_id, FulfillmentStatus.CANCELLED)

        assert all(counter(flavor_id).reserved == 0 for flavor_id in three_flavors)
        assert all(counter(flavor_id).on_hand == 10 for flavor_id in three_flavors)
        assert _order(order_id).held_reservations() == {}

    def test_invalid_transition_is_rejected(self, place):
        order_id = place()
        with pytest.raises(ValidationError):
            _set_status(order_id, FulfillmentStatus.DELIVERED)
        assert _order(order_id).status == FulfillmentStatus.PENDING.value

    def test_payment_status_is_not_a_fulfillment_status(self, place):
        with pytest.raises(ValidationError):
            process_stock_command(UpdateOrderStatus(order_id=place(), status="paid"))

    def test_unknown_order(self):
        with pytest.raises(ObjectNotFoundError):
            _set_status("missing", FulfillmentStatus.CONFIRMED)


class TestBulkUpdate:
    def test_updates_valid_and_skips_invalid(self, place):
        first, second = place(), place()
        _set_status(second, FulfillmentStatus.CANCELLED)

        result = process_stock_command(
            BulkUpdateOrderStatus(order_ids=json.dumps([first, second, "missing"]), status="confirmed")
        )

        assert result["updated"] == [first]
        assert [entry["order_id"] for entry in result["skipped"]] == [second, "missing"]
        assert _order(first).status == FulfillmentStatus.CONFIRMED.value

    def test_limit(self):
        order_ids = json.dumps([f"order-{index}" for index in range(BULK_LIMIT + 1)])
        with pytest.raises(ValidationError):
            process_stock_command(BulkUpdateOrderStatus(order_ids=order_ids, status="confirmed"))

    def test_empty_list(self):
        with pytest.raises(ValidationError):
            process_stock_command(BulkUpdateOrderStatus(order_ids="[]", status="confirmed"))


class TestShipmentAndPurge:
    def test_record_shipment(self, place):
        order_id = place()
        current_domain.process(
            RecordShipment(order_id=order_id, tracking_number="1Z999", carrier="UPS", label_cost=6.25),
            asynchronous=False,
        )
        order = _order(order_id)
        assert order.tracking_number == "1Z999"
        assert order.label_cost == 6.25

    def test_purge_deletes_only_matching_status(self, place, three_flavors, counter):
        kept = place()
        purged = place(quantity=2)
        _set_status(kept, FulfillmentStatus.CONFIRMED)

        assert process_stock_command(PurgeOrders(status="pending")) == 1

        with pytest.raises(ObjectNotFoundError):
            _order(purged)
        assert _order(kept).status == FulfillmentStatus.CONFIRMED.value
        # Only the kept order still holds stock
        assert counter(three_flavors[0]).reserved == 1
