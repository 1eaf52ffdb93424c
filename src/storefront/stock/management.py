"""Stock counter administration: product counters, restocking, safety buffers."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from storefront.domain import logger, storefront
from storefront.stock.counter import StockCounter, StockKind
from storefront.stock.ledger import StockLedger


@storefront.command(part_of="StockCounter")
class OpenProductStock:
    """Start tracking a regular (non-pack) product."""

    product_id = Identifier(required=True)
    on_hand = Integer(default=0, min_value=0)
    safety_stock = Integer(default=0, min_value=0)


@storefront.command(part_of="StockCounter")
class ReceiveStock:
    stock_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="StockCounter")
class SetSafetyStock:
    stock_id = Identifier(required=True)
    safety_stock = Integer(required=True, min_value=0)


@storefront.command_handler(part_of=StockCounter)
class StockManagementHandler:
    @handle(OpenProductStock)
    def open_product_stock(self, command):
        repo = current_domain.repository_for(StockCounter)
        if StockLedger().exists(command.product_id):
            raise ValidationError({"product_id": ["Stock is already tracked for this product"]})

        counter = StockCounter.open(
            stock_id=command.product_id,
            kind=StockKind.PRODUCT,
            on_hand=command.on_hand or 0,
            safety_stock=command.safety_stock or 0,
        )
        repo.add(counter)
        logger.info("Product stock opened", stock_id=str(command.product_id), on_hand=counter.on_hand)
        return str(counter.stock_id)

    @handle(ReceiveStock)
    def receive_stock(self, command):
        StockLedger().receive(command.stock_id, command.quantity)
        logger.info("Stock received", stock_id=str(command.stock_id), quantity=command.quantity)

    @handle(SetSafetyStock)
    def set_safety_stock(self, command):
        StockLedger().set_safety_stock(command.stock_id, command.safety_stock)
