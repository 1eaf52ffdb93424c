"""Domain events for stock counters."""

from protean.fields import Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="StockCounter")
class StockCounterOpened:
    """A counter was created for a flavor or a product."""

    __version__ = 1

    stock_id = Identifier(required=True)
    kind = String(required=True)
    on_hand = Integer(required=True)


@storefront.event(part_of="StockCounter")
class ReservedAdjusted:
    """``reserved`` moved by ``delta``; ``applied`` differs when a release was clamped at zero."""

    __version__ = 1

    stock_id = Identifier(required=True)
    delta = Integer(required=True)
    applied = Integer(required=True)
    reserved = Integer(required=True)
    available = Integer(required=True)


@storefront.event(part_of="StockCounter")
class StockCommitted:
    """A sale completed: units left the warehouse for good."""

    __version__ = 1

    stock_id = Identifier(required=True)
    quantity = Integer(required=True)
    held = Integer(required=True)  # units taken out of ``reserved``
    on_hand = Integer(required=True)
    reserved = Integer(required=True)
    shortfall = Integer(default=0)


@storefront.event(part_of="StockCounter")
class StockReceived:
    __version__ = 1

    stock_id = Identifier(required=True)
    quantity = Integer(required=True)
    on_hand = Integer(required=True)


@storefront.event(part_of="StockCounter")
class SafetyStockChanged:
    __version__ = 1

    stock_id = Identifier(required=True)
    previous = Integer(required=True)
    safety_stock = Integer(required=True)


@storefront.event(part_of="StockCounter")
class StockRanLow:
    """Nothing left to sell above the safety buffer."""

    __version__ = 1

    stock_id = Identifier(required=True)
    available = Integer(required=True)
