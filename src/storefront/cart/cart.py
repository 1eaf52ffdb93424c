"""Cart aggregate: pack lines held for one owner, each backed by a reservation.

The cart itself never touches stock. Handlers in ``storefront.cart.items``
move the ledger through the reservation engine and then mutate the cart in the
same unit of work.
"""

import json
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from storefront.cart.events import (
    CartCleared,
    CartLineAdded,
    CartLineQuantityChanged,
    CartLineRemoved,
    CartLinesCheckedOut,
)
from storefront.domain import storefront
from storefront.identity import Owner
from storefront.stock.reservation import PackComposition, per_unit_from_units


@storefront.entity(part_of="Cart")
class CartLine:
    product_type = String(required=True, max_length=20)
    recipe_id = Identifier()  # Empty for custom packs
    flavor_ids = Text(required=True)  # JSON array, one entry per unit of a single pack
    name = String(max_length=255)
    sku = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    added_at = DateTime()

    @property
    def units(self) -> list[str]:
        return json.loads(self.flavor_ids)

    @property
    def per_unit(self) -> dict[str, int]:
        return per_unit_from_units(self.units)

    @property
    def merge_key(self) -> tuple:
        if self.recipe_id:
            return (self.product_type, "recipe", str(self.recipe_id))
        return (self.product_type, "custom", tuple(sorted(self.per_unit)))

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@storefront.aggregate
class Cart:
    user_id = Identifier()  # Registered owner
    guest_id = String(max_length=255)  # Guest owner
    lines = HasMany(CartLine)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cart_must_have_exactly_one_owner(self):
        if bool(self.user_id) == bool(self.guest_id):
            raise ValidationError({"owner": ["A cart belongs to either a user or a guest"]})

    @classmethod
    def create(cls, owner: Owner):
        now = datetime.now(UTC)
        return cls(
            user_id=owner.user_id,
            guest_id=owner.guest_id,
            created_at=now,
            updated_at=now,
        )

    @property
    def owner(self) -> Owner:
        if self.guest_id:
            return Owner(key=self.guest_id, is_guest=True)
        return Owner(key=str(self.user_id), is_guest=False)

    @property
    def subtotal(self) -> float:
        return round(sum(line.line_total for line in self.lines), 2)

    def find_line(self, line_id) -> CartLine:
        line = next((line for line in self.lines if str(line.id) == str(line_id)), None)
        if line is None:
            raise ObjectNotFoundError({"line_id": [f"Cart line {line_id} not found"]})
        return line

    def find_mergeable(self, composition: PackComposition) -> CartLine | None:
        return next((line for line in self.lines if line.merge_key == composition.merge_key), None)

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_line(self, composition: PackComposition, quantity: int, unit_price: float) -> CartLine:
        """Add packs, merging into a line with the same product and composition."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than 0"]})

        now = datetime.now(UTC)
        line = self.find_mergeable(composition)
        merged = line is not None
        if merged:
            line.quantity += quantity
        else:
            line = CartLine(
                product_type=composition.product_type,
                recipe_id=composition.recipe_id,
                flavor_ids=json.dumps(composition.units),
                name=composition.name,
                sku=composition.sku,
                quantity=quantity,
                unit_price=unit_price,
                added_at=now,
            )
            self.add_lines(line)
        self.updated_at = now

        self.raise_(
            CartLineAdded(
                cart_id=str(self.id),
                line_id=str(line.id),
                sku=line.sku,
                quantity_added=quantity,
                quantity=line.quantity,
                merged=merged,
            )
        )
        return line

    def change_quantity(self, line_id, new_quantity: int) -> int:
        """Set a line's quantity and return the previous one."""
        if new_quantity is None or new_quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than 0"]})

        line = self.find_line(line_id)
        previous = line.quantity
        line.quantity = new_quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartLineQuantityChanged(
                cart_id=str(self.id),
                line_id=str(line.id),
                previous_quantity=previous,
                new_quantity=new_quantity,
            )
        )
        return previous

    def remove_line(self, line_id) -> CartLine:
        line = self.find_line(line_id)
        self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartLineRemoved(cart_id=str(self.id), line_id=str(line.id), quantity=line.quantity))
        return line

    def clear(self) -> list[CartLine]:
        removed = list(self.lines)
        for line in removed:
            self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCleared(cart_id=str(self.id), line_count=len(removed)))
        return removed

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def check_out(self, order_id=None) -> list[CartLine]:
        """Hand every line (and its reservation) over to an order."""
        if not self.lines:
            raise ValidationError({"cart": ["Cart is empty"]})
        taken = list(self.lines)
        for line in taken:
            self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartLinesCheckedOut(
                cart_id=str(self.id),
                line_ids=json.dumps([str(line.id) for line in taken]),
                order_id=str(order_id) if order_id else None,
            )
        )
        return taken

    def consume(self, line_id, quantity: int, order_id=None) -> int:
        """Take up to ``quantity`` packs of a line for a paid order.

        Returns how many packs were still held by the line (0 if the line is
        gone). The line shrinks, or disappears once fully consumed.
        """
        line = next((line for line in self.lines if str(line.id) == str(line_id)), None)
        if line is None:
            return 0

        held = min(line.quantity, quantity)
        if held == line.quantity:
            self.remove_lines(line)
        else:
            line.quantity -= held
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartLinesCheckedOut(
                cart_id=str(self.id),
                line_ids=json.dumps([str(line_id)]),
                order_id=str(order_id) if order_id else None,
            )
        )
        return held


@storefront.repository(part_of=Cart)
class CartRepository:
    def for_owner(self, owner: Owner) -> Cart | None:
        criteria = {"guest_id": owner.key} if owner.is_guest else {"user_id": owner.key}
        carts = self._dao.query.filter(**criteria).all().items
        return carts[0] if carts else None
