"""Domain events for flavors and pack recipes."""

from protean.fields import Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Flavor")
class FlavorCreated:
    """A new flavor was added; its stock counter starts at zero."""

    __version__ = 1

    flavor_id = Identifier(required=True)
    name = String(required=True)
    kind = String()


@storefront.event(part_of="Flavor")
class FlavorDeactivated:
    __version__ = 1

    flavor_id = Identifier(required=True)


@storefront.event(part_of="Flavor")
class FlavorActivated:
    __version__ = 1

    flavor_id = Identifier(required=True)


@storefront.event(part_of="PackRecipe")
class PackRecipeCreated:
    """A predefined pack composition was published."""

    __version__ = 1

    recipe_id = Identifier(required=True)
    name = String(required=True)
    kind = String(required=True)
    product_type = String(required=True)
    items = Text(required=True)  # JSON: [{"flavor_id": ..., "quantity": ...}]
    unit_count = Integer(required=True)


@storefront.event(part_of="PackRecipe")
class PackRecipeDeactivated:
    __version__ = 1

    recipe_id = Identifier(required=True)
