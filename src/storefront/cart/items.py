"""Cart line management: commands and handler.

Every handler moves the ledger and the cart inside one unit of work; callers
dispatch these commands through ``process_stock_command``.
"""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError, ProteanException
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.catalogue.products import default_price
from storefront.domain import logger, storefront
from storefront.identity import Owner
from storefront.stock.reservation import PackIntent, ReservationEngine


@storefront.command(part_of="Cart")
class AddToCart:
    user_id = Identifier()
    guest_id = String(max_length=255)
    product_type = String(required=True, max_length=20)
    recipe_id = Identifier()
    flavor_ids = Text()  # JSON array of exactly three flavor ids
    quantity = Integer(required=True)


@storefront.command(part_of="Cart")
class UpdateCartLine:
    user_id = Identifier()
    guest_id = String(max_length=255)
    line_id = Identifier(required=True)
    quantity = Integer(required=True)


@storefront.command(part_of="Cart")
class RemoveCartLine:
    user_id = Identifier()
    guest_id = String(max_length=255)
    line_id = Identifier(required=True)


@storefront.command(part_of="Cart")
class ClearCart:
    user_id = Identifier()
    guest_id = String(max_length=255)


def _owned_cart(owner: Owner) -> Cart:
    cart = current_domain.repository_for(Cart).for_owner(owner)
    if cart is None:
        raise ObjectNotFoundError({"cart": ["No cart found for this owner"]})
    return cart


@storefront.command_handler(part_of=Cart)
class CartLineHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        owner = Owner.resolve(command.user_id, command.guest_id)
        engine = ReservationEngine()
        composition = engine.resolve(
            PackIntent(
                product_type=command.product_type,
                quantity=command.quantity,
                recipe_id=command.recipe_id,
                flavor_ids=tuple(json.loads(command.flavor_ids)) if command.flavor_ids else (),
            )
        )
        engine.reserve(composition.per_unit, command.quantity)

        repo = current_domain.repository_for(Cart)
        cart = repo.for_owner(owner) or Cart.create(owner)
        line = cart.add_line(composition, command.quantity, default_price(command.product_type))
        repo.add(cart)

        logger.info("Packs added to cart", cart_id=str(cart.id), line_id=str(line.id), sku=line.sku)
        return str(line.id)

    @handle(UpdateCartLine)
    def update_cart_line(self, command):
        owner = Owner.resolve(command.user_id, command.guest_id)
        cart = _owned_cart(owner)
        line = cart.find_line(command.line_id)

        previous = cart.change_quantity(line.id, command.quantity)
        ReservationEngine().adjust_quantity(line.per_unit, previous, command.quantity)
        current_domain.repository_for(Cart).add(cart)
        return str(line.id)

    @handle(RemoveCartLine)
    def remove_cart_line(self, command):
        owner = Owner.resolve(command.user_id, command.guest_id)
        cart = _owned_cart(owner)
        line = cart.find_line(command.line_id)

        ReservationEngine().release(line.per_unit, line.quantity)
        cart.remove_line(line.id)
        current_domain.repository_for(Cart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        """Release every line, collecting failures instead of stopping at the first one."""
        owner = Owner.resolve(command.user_id, command.guest_id)
        cart = current_domain.repository_for(Cart).for_owner(owner)
        if cart is None:
            return []

        engine = ReservationEngine()
        warnings = []
        for line in list(cart.lines):
            try:
                engine.release(line.per_unit, line.quantity)
            except (ProteanException, ValueError) as exc:
                logger.warning("Could not release cart line", line_id=str(line.id), error=str(exc))
                warnings.append(f"Line {line.id} ({line.sku}): {exc}")

        cart.clear()
        current_domain.repository_for(Cart).add(cart)
        return warnings
