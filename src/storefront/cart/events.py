"""Domain events for the Cart aggregate."""

from protean.fields import Boolean, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Cart")
class CartLineAdded:
    """Packs were added to the cart, as a new line or merged into an existing one."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    sku = String(required=True)
    quantity_added = Integer(required=True)
    quantity = Integer(required=True)
    merged = Boolean(default=False)


@storefront.event(part_of="Cart")
class CartLineQuantityChanged:
    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@storefront.event(part_of="Cart")
class CartLineRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    quantity = Integer(required=True)


@storefront.event(part_of="Cart")
class CartCleared:
    __version__ = 1

    cart_id = Identifier(required=True)
    line_count = Integer(required=True)


@storefront.event(part_of="Cart")
class CartLinesCheckedOut:
    """Lines left the cart together with their reservations (order placement or payment)."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_ids = Text(required=True)  # JSON array
    order_id = Identifier()
