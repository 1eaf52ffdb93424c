"""Checkout lines: the priced, frozen items of a checkout.

Lines come either from the owner's cart (their stock is already reserved)
or from an explicit item list (nothing reserved yet). Before anything is
handed to the gateway, availability is checked again:

- a reserved line needs its counters to still cover their reservations
  (``available >= 0``);
- an unreserved line needs ``available >= required``.
"""

import json
from collections import defaultdict
from dataclasses import dataclass

from protean.exceptions import ValidationError

from storefront.cart.cart import Cart
from storefront.catalogue.products import default_price
from storefront.checkout.snapshot import SnapshotItem
from storefront.exceptions import InsufficientStock
from storefront.gateway.port import LineItem
from storefront.order.order import Order, OrderItem
from storefront.stock.ledger import StockLedger
from storefront.stock.reservation import PackIntent, ReservationEngine, per_unit_from_units, scale


@dataclass(frozen=True)
class CheckoutLine:
    name: str
    quantity: int
    price: float
    sku: str | None = None
    product_id: str | None = None
    recipe_id: str | None = None
    units: tuple[str, ...] = ()
    custom_name: str | None = None
    cart_line_id: str | None = None
    held: bool = False

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)

    def requirements(self) -> dict[str, int]:
        if self.units:
            return scale(per_unit_from_units(self.units), self.quantity)
        return {str(self.product_id): self.quantity}

    def to_order_item(self, held: bool | None = None) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            recipe_id=self.recipe_id,
            sku=self.sku,
            quantity=self.quantity,
            price=self.price,
            flavor_ids=json.dumps(list(self.units)),
            custom_name=self.custom_name,
            holds_reservation=self.held if held is None else held,
        )

    def to_snapshot_item(self) -> SnapshotItem:
        return SnapshotItem(
            product_id=self.product_id,
            recipe_id=self.recipe_id,
            sku=self.sku,
            quantity=self.quantity,
            price=self.price,
            units=list(self.units),
            custom_name=self.custom_name,
            cart_line_id=self.cart_line_id,
        )


def lines_from_cart(cart: Cart | None) -> list[CheckoutLine]:
    if cart is None or not cart.lines:
        raise ValidationError({"cart": ["Cart is empty"]})
    return [
        CheckoutLine(
            name=line.name or line.sku,
            quantity=line.quantity,
            price=line.unit_price,
            sku=line.sku,
            recipe_id=str(line.recipe_id) if line.recipe_id else None,
            units=tuple(line.units),
            custom_name=None if line.recipe_id else line.name,
            cart_line_id=str(line.id),
            held=True,
        )
        for line in cart.lines
    ]


def lines_from_request(items: list[dict], engine: ReservationEngine) -> list[CheckoutLine]:
    """Build unreserved lines from an explicit item list.

    Pack items carry ``product_type`` plus ``recipe_id`` or ``flavor_ids``
    and are priced from the pack defaults. Regular products carry
    ``product_id``, ``name`` and ``price``.
    """
    if not items:
        raise ValidationError({"items": ["At least one item is required"]})

    lines = []
    for item in items:
        quantity = int(item.get("quantity") or 0)
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than 0"]})

        if item.get("product_id"):
            price = item.get("price")
            if price is None or float(price) < 0:
                raise ValidationError({"price": [f"A valid price is required for product {item['product_id']}"]})
            engine.ledger.counter(item["product_id"])
            lines.append(
                CheckoutLine(
                    name=item.get("name") or str(item["product_id"]),
                    quantity=quantity,
                    price=float(price),
                    product_id=str(item["product_id"]),
                )
            )
            continue

        product_type = item.get("product_type") or "3-pack"
        composition = engine.resolve(
            PackIntent(
                product_type=product_type,
                quantity=quantity,
                recipe_id=item.get("recipe_id"),
                flavor_ids=tuple(item.get("flavor_ids") or ()),
            )
        )
        lines.append(
            CheckoutLine(
                name=composition.name or composition.sku,
                quantity=quantity,
                price=default_price(product_type),
                sku=composition.sku,
                recipe_id=composition.recipe_id,
                units=tuple(composition.units),
                custom_name=None if composition.recipe_id else composition.name,
            )
        )
    return lines


def recheck_availability(lines: list[CheckoutLine], ledger: StockLedger) -> None:
    unheld: dict[str, int] = defaultdict(int)
    held: set[str] = set()
    for line in lines:
        for stock_id, amount in line.requirements().items():
            if line.held:
                held.add(stock_id)
            else:
                unheld[stock_id] += amount

    for stock_id, required in unheld.items():
        ledger.counter(stock_id).ensure_available(required)
    for stock_id in held - set(unheld):
        available = ledger.get_available(stock_id)
        if available < 0:
            raise InsufficientStock(stock_id, available, 0)


def total_of(lines: list[CheckoutLine], shipping: float = 0.0) -> float:
    return round(sum(line.line_total for line in lines) + (shipping or 0.0), 2)


def lines_from_order(order: Order) -> list[CheckoutLine]:
    return [
        CheckoutLine(
            name=item.custom_name or item.sku or str(item.product_id),
            quantity=item.quantity,
            price=item.price,
            sku=item.sku,
            product_id=str(item.product_id) if item.product_id else None,
            recipe_id=str(item.recipe_id) if item.recipe_id else None,
            units=tuple(item.units),
            custom_name=item.custom_name,
            held=item.holds_reservation,
        )
        for item in order.items
    ]


def gateway_line_items(lines: list[CheckoutLine], shipping: float = 0.0) -> list[LineItem]:
    items = [LineItem(name=line.name, unit_amount=line.price, quantity=line.quantity) for line in lines]
    if shipping:
        items.append(LineItem(name="Shipping", unit_amount=shipping, quantity=1))
    return items


def shipping_fields(rate: dict | None) -> dict:
    """Order attributes for a chosen shipping rate."""
    if not rate:
        return {}
    return {
        "shipping_rate_id": rate.get("rate_id"),
        "shipping_carrier": rate.get("carrier"),
        "shipping_service": rate.get("service_name"),
        "shipping_cost": float(rate.get("amount") or 0.0),
    }
