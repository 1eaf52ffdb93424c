"""PackRecipe aggregate: a named, predefined composition of flavors."""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from storefront.catalogue.events import PackRecipeCreated, PackRecipeDeactivated
from storefront.catalogue.products import PACK_SIZE
from storefront.domain import storefront


@storefront.entity(part_of="PackRecipe")
class RecipeItem:
    flavor_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@storefront.aggregate
class PackRecipe:
    name = String(required=True, max_length=100)
    kind = String(required=True, max_length=50)
    product_type = String(max_length=20, default="3-pack")
    items = HasMany(RecipeItem)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @classmethod
    def create(cls, name, kind, items, product_type="3-pack"):
        """Create a recipe from ``[{"flavor_id": ..., "quantity": ...}]``.

        Quantities must add up to exactly one pack.
        """
        if not items:
            raise ValidationError({"items": ["A recipe needs at least one flavor"]})
        total = sum(int(item["quantity"]) for item in items)
        if total != PACK_SIZE:
            raise ValidationError({"items": [f"Recipe quantities must sum to {PACK_SIZE}, got {total}"]})

        recipe = cls(
            name=name,
            kind=kind,
            product_type=product_type,
            is_active=True,
            created_at=datetime.now(UTC),
        )
        for item in items:
            recipe.add_items(RecipeItem(flavor_id=item["flavor_id"], quantity=int(item["quantity"])))

        recipe.raise_(
            PackRecipeCreated(
                recipe_id=str(recipe.id),
                name=name,
                kind=kind,
                product_type=product_type,
                items=json.dumps([{"flavor_id": str(i.flavor_id), "quantity": i.quantity} for i in recipe.items]),
                unit_count=total,
            )
        )
        return recipe

    @property
    def unit_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def per_unit_requirements(self) -> dict[str, int]:
        """Units of each flavor consumed by one pack of this recipe."""
        requirements: dict[str, int] = {}
        for item in self.items:
            key = str(item.flavor_id)
            requirements[key] = requirements.get(key, 0) + item.quantity
        return requirements

    def deactivate(self):
        if not self.is_active:
            raise ValidationError({"is_active": ["Recipe is already inactive"]})
        self.is_active = False
        self.raise_(PackRecipeDeactivated(recipe_id=str(self.id)))
