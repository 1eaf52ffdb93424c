"""Order repository reads over more rows than a single default page."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain

from storefront.identity import Owner
from storefront.order.administration import PurgeOrders
from storefront.order.order import ADMIN_PAGE_LIMIT, FulfillmentStatus, Order, OrderItem, PaymentStatus
from storefront.stock.ledger import process_stock_command

MANY = 108


@pytest.fixture
def seed_orders():
    """Store orders directly, one minute apart, oldest first."""

    def _seed(count, owner=None, status=None, total=27.0):
        owner = owner or Owner.resolve(user_id="user-1")
        repo = current_domain.repository_for(Order)
        start = datetime(2026, 1, 1, tzinfo=UTC)
        ids = []
        for index in range(count):
            item = OrderItem(sku="3P-TRA-CHEx2-LIM", quantity=1, price=total, flavor_ids=json.dumps(["a", "a", "b"]))
            order = Order.place(owner, items=[item], total=total + index)
            order.created_at = start + timedelta(minutes=index)
            if status is not None:
                order.status = status.value
            repo.add(order)
            ids.append(str(order.id))
        return ids

    return _seed


def _repo():
    return current_domain.repository_for(Order)


class TestOwnerOrders:
    def test_every_order_returned_newest_first(self, seed_orders):
        ids = seed_orders(MANY)

        orders = _repo().for_owner(Owner.resolve(user_id="user-1"))

        assert len(orders) == MANY
        assert str(orders[0].id) == ids[-1]
        assert str(orders[-1].id) == ids[0]


class TestPurgeAtScale:
    def test_purge_deletes_every_order_in_status(self, seed_orders):
        seed_orders(MANY)
        kept = seed_orders(3, status=FulfillmentStatus.CONFIRMED)

        assert process_stock_command(PurgeOrders(status="pending")) == MANY

        assert _repo().with_status(FulfillmentStatus.PENDING) == []
        assert {str(order.id) for order in _repo().with_status(FulfillmentStatus.CONFIRMED)} == set(kept)


class TestAdminListing:
    def test_pages_through_all_orders(self, seed_orders):
        ids = seed_orders(MANY)

        first = _repo().listing(page=1, per_page=50)
        last = _repo().listing(page=3, per_page=50)

        assert first.total == MANY
        assert [str(order.id) for order in first.items][:2] == [ids[-1], ids[-2]]
        assert len(last.items) == MANY - 100
        assert str(last.items[-1].id) == ids[0]

    def test_page_size_is_capped(self, seed_orders):
        seed_orders(ADMIN_PAGE_LIMIT + 5)

        result = _repo().listing(per_page=500)

        assert len(result.items) == ADMIN_PAGE_LIMIT
        assert result.total == ADMIN_PAGE_LIMIT + 5

    def test_filters_by_either_status(self, seed_orders):
        seed_orders(4)
        confirmed = seed_orders(2, status=FulfillmentStatus.CONFIRMED)

        result = _repo().listing(status="confirmed", payment_status=PaymentStatus.PENDING.value)

        assert {str(order.id) for order in result.items} == set(confirmed)
        assert _repo().listing(payment_status=PaymentStatus.PAID.value).total == 0

    def test_sorts_by_total_ascending(self, seed_orders):
        ids = seed_orders(5)

        result = _repo().listing(sort_by="total", descending=False)

        assert [str(order.id) for order in result.items] == ids
