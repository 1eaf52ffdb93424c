"""Catalogue commands: flavors and pack recipes.

Creating a flavor opens its stock counter at zero in the same unit of work.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.catalogue.flavor import Flavor
from storefront.catalogue.products import ensure_supported
from storefront.catalogue.recipe import PackRecipe
from storefront.domain import logger, storefront
from storefront.stock.counter import StockCounter, StockKind


@storefront.command(part_of="Flavor")
class CreateFlavor:
    name = String(required=True, max_length=100)
    kind = String(max_length=50)
    description = String(max_length=500)


@storefront.command(part_of="Flavor")
class DeactivateFlavor:
    flavor_id = Identifier(required=True)


@storefront.command(part_of="Flavor")
class ActivateFlavor:
    flavor_id = Identifier(required=True)


@storefront.command_handler(part_of=Flavor)
class FlavorCommandHandler:
    @handle(CreateFlavor)
    def create_flavor(self, command):
        flavor = Flavor.create(name=command.name, kind=command.kind, description=command.description)
        current_domain.repository_for(Flavor).add(flavor)
        current_domain.repository_for(StockCounter).add(StockCounter.open(stock_id=flavor.id, kind=StockKind.FLAVOR))

        logger.info("Flavor created", flavor_id=str(flavor.id), name=flavor.name)
        return str(flavor.id)

    @handle(DeactivateFlavor)
    def deactivate_flavor(self, command):
        repo = current_domain.repository_for(Flavor)
        flavor = repo.get(command.flavor_id)
        flavor.deactivate()
        repo.add(flavor)

    @handle(ActivateFlavor)
    def activate_flavor(self, command):
        repo = current_domain.repository_for(Flavor)
        flavor = repo.get(command.flavor_id)
        flavor.activate()
        repo.add(flavor)


@storefront.command(part_of="PackRecipe")
class CreatePackRecipe:
    name = String(required=True, max_length=100)
    kind = String(required=True, max_length=50)
    product_type = String(max_length=20, default="3-pack")
    items = Text(required=True)  # JSON: [{"flavor_id": ..., "quantity": ...}]


@storefront.command(part_of="PackRecipe")
class DeactivatePackRecipe:
    recipe_id = Identifier(required=True)


@storefront.command_handler(part_of=PackRecipe)
class PackRecipeCommandHandler:
    @handle(CreatePackRecipe)
    def create_pack_recipe(self, command):
        product_type = command.product_type or "3-pack"
        ensure_supported(product_type)

        items = json.loads(command.items)
        flavor_repo = current_domain.repository_for(Flavor)
        for item in items:
            flavor = flavor_repo.get(item["flavor_id"])
            if not flavor.is_active:
                raise ValidationError({"items": [f"Flavor is not active: {flavor.name}"]})

        recipe = PackRecipe.create(name=command.name, kind=command.kind, items=items, product_type=product_type)
        current_domain.repository_for(PackRecipe).add(recipe)

        logger.info("Pack recipe created", recipe_id=str(recipe.id), name=recipe.name)
        return str(recipe.id)

    @handle(DeactivatePackRecipe)
    def deactivate_pack_recipe(self, command):
        repo = current_domain.repository_for(PackRecipe)
        recipe = repo.get(command.recipe_id)
        recipe.deactivate()
        repo.add(recipe)
