import json

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.cart.cart import Cart
from storefront.checkout.confirmation import ProcessPaymentEvent
from storefront.checkout.session import RetryPayment, StartCheckout
from storefront.checkout.webhook import handle_payment_webhook
from storefront.exceptions import InvalidSignature
from storefront.identity import InMemoryCustomerDirectory, Owner, set_directory
from storefront.order.administration import UpdateOrderStatus
from storefront.order.order import FulfillmentStatus, Order, PaymentStatus
from storefront.order.placement import PlaceOrder
from storefront.stock.ledger import StockLedger, process_stock_command


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


class TestInlineOrderCreation:
    def test_paid_guest_checkout_commits_each_flavor_once(
        self, three_flavors, fill_cart, start_checkout, deliver, gateway, counter
    ):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1", guest_email="guest@example.com")

        result = deliver(gateway.completion_payload(session["session_id"]))

        assert result["handled"] is True
        assert result["created"] is True
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == FulfillmentStatus.CONFIRMED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.total == 27.0
        assert order.payment_reference == session["session_id"]
        assert order.stock_committed is True
        for flavor_id in three_flavors:
            assert counter(flavor_id).on_hand == 9
            assert counter(flavor_id).reserved == 0
        cart = current_domain.repository_for(Cart).for_owner(Owner.resolve(guest_id="guest-1"))
        assert cart.lines == []

    def test_duplicate_delivery_creates_one_order(
        self, three_flavors, fill_cart, start_checkout, deliver, gateway, counter
    ):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1", guest_email="guest@example.com")
        payload = gateway.completion_payload(session["session_id"])

        first = deliver(payload)
        second = deliver(payload)

        assert second["order_id"] == first["order_id"]
        assert second["committed"] is False
        assert len(_orders()) == 1
        assert counter(three_flavors[0]).on_hand == 9

    def test_explicit_items_are_deducted(self, three_flavors, start_checkout, deliver, gateway, counter):
        items = [{"product_type": "3-pack", "flavor_ids": three_flavors, "quantity": 2}]
        session = start_checkout(guest_id="guest-2", guest_email="g2@example.com", items=json.dumps(items))

        deliver(gateway.completion_payload(session["session_id"]))

        assert counter(three_flavors[0]).on_hand == 8
        assert counter(three_flavors[0]).reserved == 0

    def test_cart_grown_after_checkout_keeps_the_extra(
        self, three_flavors, fill_cart, start_checkout, deliver, gateway, counter
    ):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")
        fill_cart(three_flavors, quantity=2, guest_id="guest-1")

        deliver(gateway.completion_payload(session["session_id"], payer_email="guest@example.com"))

        cart = current_domain.repository_for(Cart).for_owner(Owner.resolve(guest_id="guest-1"))
        assert [line.quantity for line in cart.lines] == [2]
        assert counter(three_flavors[0]).reserved == 2
        assert counter(three_flavors[0]).on_hand == 9

    def test_guest_order_keyed_by_payer_email(self, three_flavors, fill_cart, start_checkout, deliver, gateway):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")

        result = deliver(gateway.completion_payload(session["session_id"], payer_email="Buyer@Example.com"))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.guest_id == Owner.guest_for_email("buyer@example.com").key
        assert order.guest_email == "Buyer@Example.com"

    def test_registered_payer_gets_the_order(self, three_flavors, fill_cart, start_checkout, deliver, gateway):
        directory = InMemoryCustomerDirectory()
        directory.register("user-42", "buyer@example.com")
        set_directory(directory)
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")

        result = deliver(gateway.completion_payload(session["session_id"], payer_email="buyer@example.com"))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.user_id == "user-42"

    def test_registered_owner_keeps_the_order(self, three_flavors, fill_cart, start_checkout, deliver, gateway):
        fill_cart(three_flavors, user_id="user-7")
        session = start_checkout(user_id="user-7")

        result = deliver(gateway.completion_payload(session["session_id"], payer_email="someone@example.com"))

        assert current_domain.repository_for(Order).get(result["order_id"]).user_id == "user-7"

    def test_payer_address_used_when_none_was_given(
        self, three_flavors, fill_cart, start_checkout, deliver, gateway, address
    ):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")

        result = deliver(
            gateway.completion_payload(session["session_id"], payer_name="Pat Buyer", payer_address=address)
        )

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.shipping_address.name == "Pat Buyer"
        assert order.shipping_address.city == "Austin"

    def test_amount_paid_becomes_the_total(self, three_flavors, fill_cart, start_checkout, deliver, gateway):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")

        result = deliver(gateway.completion_payload(session["session_id"], amount_paid_minor=2500))

        assert current_domain.repository_for(Order).get(result["order_id"]).total == 25.0

    def test_failure_before_order_exists_is_a_no_op(self, three_flavors, fill_cart, start_checkout, deliver, gateway):
        fill_cart(three_flavors, guest_id="guest-1")
        session = start_checkout(guest_id="guest-1")

        result = deliver(gateway.failure_payload(session["session_id"]))

        assert result["order_id"] is None
        assert _orders() == []

    def test_snapshot_that_fails_validation_is_rejected(self):
        command = ProcessPaymentEvent(
            event_type="payment_succeeded",
            reference="cs_bad",
            metadata=json.dumps({"orderData": json.dumps({"owner_key": "guest-1", "total": 5})}),
        )
        with pytest.raises(ValidationError):
            process_stock_command(command)
        assert _orders() == []

    def test_event_without_order_reference_is_rejected(self):
        with pytest.raises(ValidationError):
            process_stock_command(ProcessPaymentEvent(event_type="payment_succeeded", reference="cs_1", metadata="{}"))


class TestExistingOrderPayment:
    @pytest.fixture
    def order_id(self, three_flavors, fill_cart):
        fill_cart(three_flavors, quantity=2, user_id="user-1")
        return process_stock_command(PlaceOrder(user_id="user-1"))

    def test_payment_commits_held_stock(self, order_id, three_flavors, start_checkout, deliver, gateway, counter):
        session = start_checkout(user_id="user-1", order_id=order_id)

        result = deliver(gateway.completion_payload(session["session_id"], payer_email="user1@example.com"))

        assert result["committed"] is True
        assert result["created"] is False
        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.status == FulfillmentStatus.CONFIRMED.value
        for flavor_id in three_flavors:
            assert counter(flavor_id).on_hand == 8
            assert counter(flavor_id).reserved == 0

    def test_failed_then_retried_commits_once(self, order_id, three_flavors, start_checkout, deliver, gateway, counter):
        first = start_checkout(user_id="user-1", order_id=order_id)
        deliver(gateway.failure_payload(first["session_id"], reason="Card declined"))

        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.status == FulfillmentStatus.PENDING.value
        # A failed payment keeps the stock on hold
        assert counter(three_flavors[0]).reserved == 2

        retry = current_domain.process(
            RetryPayment(
                user_id="user-1",
                order_id=order_id,
                success_url="https://shop.example.test/thanks",
                cancel_url="https://shop.example.test/orders",
            ),
            asynchronous=False,
        )
        assert gateway.calls[-1]["metadata"]["isRetry"] == "true"

        payload = gateway.completion_payload(retry["session_id"])
        deliver(payload)
        deliver(payload)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert counter(three_flavors[0]).on_hand == 8
        assert counter(three_flavors[0]).reserved == 0

    def test_ledger_failure_mid_commit_leaves_order_unpaid(
        self, order_id, three_flavors, start_checkout, deliver, gateway, counter, monkeypatch
    ):
        session = start_checkout(user_id="user-1", order_id=order_id)
        payload = gateway.completion_payload(session["session_id"])
        payment_status = current_domain.repository_for(Order).get(order_id).payment_status

        commit = StockLedger.commit
        calls = []

        def flaky_commit(ledger, stock_id, amount):
            calls.append(stock_id)
            if len(calls) == 2:
                raise RuntimeError("ledger write failed")
            return commit(ledger, stock_id, amount)

        monkeypatch.setattr(StockLedger, "commit", flaky_commit)
        with pytest.raises(RuntimeError):
            deliver(payload)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == payment_status
        assert order.stock_committed is False
        for flavor_id in three_flavors:
            assert counter(flavor_id).on_hand == 10
            assert counter(flavor_id).reserved == 2

        monkeypatch.setattr(StockLedger, "commit", commit)
        assert deliver(payload)["committed"] is True
        assert deliver(payload)["committed"] is False

        assert current_domain.repository_for(Order).get(order_id).payment_status == PaymentStatus.PAID.value
        for flavor_id in three_flavors:
            assert counter(flavor_id).on_hand == 8
            assert counter(flavor_id).reserved == 0

    def test_retry_requires_failed_payment(self, order_id, gateway):
        with pytest.raises(ValidationError):
            current_domain.process(
                RetryPayment(user_id="user-1", order_id=order_id, success_url="https://a", cancel_url="https://b"),
                asynchronous=False,
            )
        assert gateway.calls == []

    def test_failure_after_payment_is_ignored(self, order_id, start_checkout, deliver, gateway):
        session = start_checkout(user_id="user-1", order_id=order_id)
        deliver(gateway.completion_payload(session["session_id"]))
        deliver(gateway.failure_payload(session["session_id"]))

        assert current_domain.repository_for(Order).get(order_id).payment_status == PaymentStatus.PAID.value

    def test_payment_for_cancelled_order_still_takes_stock(
        self, order_id, three_flavors, start_checkout, deliver, gateway, counter
    ):
        session = start_checkout(user_id="user-1", order_id=order_id)
        process_stock_command(UpdateOrderStatus(order_id=order_id, status="cancelled"))

        deliver(gateway.completion_payload(session["session_id"]))

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == FulfillmentStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert counter(three_flavors[0]).on_hand == 8
        assert counter(three_flavors[0]).reserved == 0


class TestWebhookEntry:
    def test_bad_signature(self, gateway):
        with pytest.raises(InvalidSignature):
            handle_payment_webhook(b"{}", "forged")

    def test_unknown_event_type_is_acknowledged(self, deliver):
        result = deliver(json.dumps({"type": "customer.created"}).encode())
        assert result == {"received": True, "handled": False}

    def test_start_checkout_command_requires_urls(self):
        with pytest.raises(ValidationError):
            StartCheckout(guest_id="guest-1")
