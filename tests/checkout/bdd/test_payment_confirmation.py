"""BDD tests for payment confirmation and stock commit."""

from protean import current_domain
from pytest_bdd import parsers, scenarios, when

from storefront.checkout.session import RetryPayment

scenarios("features/payment_confirmation.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the customer retries the payment")
def _(checkout, gateway, urls):
    command = RetryPayment(**urls, **checkout["owner"], order_id=checkout["order_id"])
    checkout["session_id"] = current_domain.process(command, asynchronous=False)["session_id"]


@when(parsers.cfparse("the gateway confirms a payment of ${amount:f}"))
def _(checkout, gateway, deliver, amount):
    checkout["payload"] = gateway.completion_payload(checkout["session_id"], amount_paid_minor=round(amount * 100))
    assert deliver(checkout["payload"])["committed"] is True


@when("the same confirmation is delivered again")
def _(checkout, deliver):
    assert deliver(checkout["payload"])["committed"] is False
