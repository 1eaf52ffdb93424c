"""Work that follows a committed payment: shipping label and confirmation email.

Both steps talk to outside services and run after the payment's unit of work
has been committed. Their failures are logged and swallowed; a paid order
stays paid whether or not a label or an email went out.
"""

from protean.utils.globals import current_domain

from storefront.carrier import get_carrier
from storefront.carrier.port import DEFAULT_PARCEL
from storefront.channel import get_email_channel
from storefront.channel.templates import OrderConfirmationTemplate
from storefront.domain import logger
from storefront.order.administration import RecordShipment
from storefront.order.order import Order


def purchase_label(order: Order) -> bool:
    """Buy a label for the order's chosen rate, or the cheapest quote."""
    if order.tracking_number:
        return False
    if not order.shipping_address:
        logger.info("No shipping address, label skipped", order_id=str(order.id))
        return False

    carrier = get_carrier()
    rate_id = order.shipping_rate_id
    carrier_name = order.shipping_carrier
    if not rate_id:
        rates = carrier.get_rates(order.shipping_address.to_dict(), [DEFAULT_PARCEL])
        if not rates:
            logger.warning("Carrier returned no rates", order_id=str(order.id))
            return False
        cheapest = min(rates, key=lambda rate: rate.amount)
        rate_id, carrier_name = cheapest.rate_id, cheapest.carrier

    shipment = carrier.create_shipment(rate_id)
    current_domain.process(
        RecordShipment(
            order_id=str(order.id),
            tracking_number=shipment.tracking_number,
            tracking_url=shipment.tracking_url,
            label_cost=shipment.label_cost,
            carrier=carrier_name,
        ),
        asynchronous=False,
    )
    logger.info("Shipping label purchased", order_id=str(order.id), tracking_number=shipment.tracking_number)
    return True


def send_confirmation(order: Order, recipient: str | None) -> bool:
    if not recipient:
        logger.info("No recipient for order confirmation", order_id=str(order.id))
        return False

    message = OrderConfirmationTemplate.render(
        {
            "order_id": str(order.id),
            "total": order.total,
            "items": [
                {
                    "quantity": item.quantity,
                    "name": item.custom_name or item.sku or str(item.product_id),
                    "line_total": item.line_total,
                }
                for item in order.items
            ],
            "tracking_number": order.tracking_number,
        }
    )
    delivery = get_email_channel().send(to=recipient, **message)
    if not delivery.sent:
        logger.warning("Order confirmation not sent", order_id=str(order.id), error=delivery.error)
    return delivery.sent


def after_payment(order_id: str, recipient: str | None = None) -> dict:
    """Run the post-payment steps for a freshly committed order.

    Returns which steps went through.
    """
    outcome = {"label": False, "email": False}
    repo = current_domain.repository_for(Order)

    try:
        outcome["label"] = purchase_label(repo.get(order_id))
    except Exception as e:
        logger.error("Shipping label purchase failed", order_id=order_id, error=str(e))

    try:
        outcome["email"] = send_confirmation(repo.get(order_id), recipient)
    except Exception as e:
        logger.error("Order confirmation email failed", order_id=order_id, error=str(e))

    return outcome
