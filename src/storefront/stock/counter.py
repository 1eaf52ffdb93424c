"""StockCounter aggregate: one row of counters per flavor (or product).

Counter model:
    on_hand:      physical units in the warehouse
    reserved:     units promised to open carts and unpaid orders
    safety_stock: buffer that is never sold
    available:    on_hand - reserved - safety_stock

Availability checks and counter moves happen inside the same unit of work
(see ``storefront.stock.ledger``); the counter itself only guarantees that
neither ``on_hand`` nor ``reserved`` is ever stored below zero.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront
from storefront.exceptions import InsufficientStock
from storefront.stock.events import (
    ReservedAdjusted,
    SafetyStockChanged,
    StockCommitted,
    StockCounterOpened,
    StockRanLow,
    StockReceived,
)


class StockKind(Enum):
    FLAVOR = "flavor"
    PRODUCT = "product"


@storefront.aggregate
class StockCounter:
    stock_id = Identifier(identifier=True, required=True)
    kind = String(max_length=20, choices=StockKind, default=StockKind.FLAVOR.value)
    on_hand = Integer(default=0, min_value=0)
    reserved = Integer(default=0, min_value=0)
    safety_stock = Integer(default=0, min_value=0)
    updated_at = DateTime()

    @invariant.post
    def counters_must_not_be_negative(self):
        if (self.on_hand or 0) < 0 or (self.reserved or 0) < 0 or (self.safety_stock or 0) < 0:
            raise ValidationError({"stock": ["Stock counters cannot be negative"]})

    @classmethod
    def open(cls, stock_id, kind=StockKind.FLAVOR, on_hand=0, safety_stock=0):
        if on_hand < 0 or safety_stock < 0:
            raise ValidationError({"on_hand": ["Initial counters cannot be negative"]})
        counter = cls(
            stock_id=str(stock_id),
            kind=kind.value,
            on_hand=on_hand,
            reserved=0,
            safety_stock=safety_stock,
            updated_at=datetime.now(UTC),
        )
        counter.raise_(StockCounterOpened(stock_id=str(stock_id), kind=kind.value, on_hand=on_hand))
        return counter

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved - self.safety_stock

    def ensure_available(self, required: int) -> None:
        if self.available < required:
            raise InsufficientStock(self.stock_id, self.available, required)

    def adjust_reserved(self, delta: int) -> int:
        """Move ``reserved`` by ``delta`` and return the change actually applied.

        Releases clamp at zero instead of failing.
        """
        if delta == 0:
            return 0

        previous = self.reserved
        self.reserved = max(0, previous + delta)
        applied = self.reserved - previous
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ReservedAdjusted(
                stock_id=self.stock_id,
                delta=delta,
                applied=applied,
                reserved=self.reserved,
                available=self.available,
            )
        )
        if delta > 0 and self.available <= 0:
            self.raise_(StockRanLow(stock_id=self.stock_id, available=self.available))
        return applied

    def commit(self, quantity: int, held: int | None = None) -> int:
        """Take ``quantity`` units out of the warehouse.

        ``held`` is how many of them were reserved beforehand (all of them by
        default). Returns the shortfall: units sold beyond ``on_hand``.
        """
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        held = quantity if held is None else held

        shortfall = max(0, quantity - self.on_hand)
        self.on_hand = max(0, self.on_hand - quantity)
        self.reserved = max(0, self.reserved - held)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockCommitted(
                stock_id=self.stock_id,
                quantity=quantity,
                held=held,
                on_hand=self.on_hand,
                reserved=self.reserved,
                shortfall=shortfall,
            )
        )
        if self.available <= 0:
            self.raise_(StockRanLow(stock_id=self.stock_id, available=self.available))
        return shortfall

    def receive(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        self.on_hand += quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(StockReceived(stock_id=self.stock_id, quantity=quantity, on_hand=self.on_hand))

    def set_safety_stock(self, safety_stock: int) -> None:
        if safety_stock < 0:
            raise ValidationError({"safety_stock": ["Safety stock cannot be negative"]})
        previous = self.safety_stock
        self.safety_stock = safety_stock
        self.updated_at = datetime.now(UTC)
        self.raise_(SafetyStockChanged(stock_id=self.stock_id, previous=previous, safety_stock=safety_stock))


@storefront.repository(part_of=StockCounter)
class StockCounterRepository:
    def running_low(self) -> list[StockCounter]:
        """Counters with nothing left to sell."""
        counters = self._dao.query.limit(None).all().items
        return [counter for counter in counters if counter.available <= 0]
