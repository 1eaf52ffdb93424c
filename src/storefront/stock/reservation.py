"""Reservation engine: turns pack intents into ledger moves.

An intent names either a recipe or exactly three distinct flavors, plus a
quantity of packs. ``resolve`` validates it against the catalogue and yields a
``PackComposition`` (units of each flavor per pack). Reserving checks every
flavor first and only then moves ``reserved``, so a rejected request leaves
the ledger untouched. The whole pass runs inside the caller's unit of work.
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.catalogue.flavor import Flavor
from storefront.catalogue.products import PACK_SIZE, ensure_supported
from storefront.catalogue.recipe import PackRecipe
from storefront.catalogue.sku import custom_pack_sku, recipe_sku
from storefront.domain import logger
from storefront.stock.ledger import StockLedger


@dataclass(frozen=True)
class PackIntent:
    product_type: str
    quantity: int
    recipe_id: str | None = None
    flavor_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class PackComposition:
    product_type: str
    sku: str
    per_unit: dict[str, int] = field(default_factory=dict)
    recipe_id: str | None = None
    name: str | None = None

    @property
    def units(self) -> list[str]:
        """Flavor ids of one pack, repeated by quantity (``[A, A, B]``)."""
        return [stock_id for stock_id, count in self.per_unit.items() for _ in range(count)]

    @property
    def merge_key(self) -> tuple:
        if self.recipe_id:
            return (self.product_type, "recipe", str(self.recipe_id))
        return (self.product_type, "custom", tuple(sorted(self.per_unit)))

    def requirements(self, quantity: int) -> dict[str, int]:
        return scale(self.per_unit, quantity)


def per_unit_from_units(units: Iterable[str]) -> dict[str, int]:
    """Inverse of ``PackComposition.units``."""
    return dict(Counter(str(unit) for unit in units))


def scale(per_unit: Mapping[str, int], quantity: int) -> dict[str, int]:
    return {stock_id: count * quantity for stock_id, count in per_unit.items()}


class ReservationEngine:
    def __init__(self, ledger: StockLedger | None = None) -> None:
        self.ledger = ledger or StockLedger()

    # -------------------------------------------------------------------
    # Intent validation
    # -------------------------------------------------------------------
    def resolve(self, intent: PackIntent) -> PackComposition:
        ensure_supported(intent.product_type)
        if intent.quantity is None or intent.quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than 0"]})

        has_recipe = bool(intent.recipe_id)
        has_flavors = bool(intent.flavor_ids)
        if has_recipe == has_flavors:
            raise ValidationError({"intent": ["Provide either a recipe id or a set of flavor ids"]})

        if has_recipe:
            return self._resolve_recipe(intent.recipe_id, intent.product_type)
        return self._resolve_custom(intent.flavor_ids, intent.product_type)

    def _resolve_recipe(self, recipe_id, product_type) -> PackComposition:
        recipe = current_domain.repository_for(PackRecipe).get(recipe_id)
        if not recipe.is_active:
            raise ValidationError({"recipe_id": ["Pack recipe is not active"]})
        if recipe.unit_count != PACK_SIZE:
            raise ValidationError(
                {"recipe_id": [f"Pack recipe quantities must sum to {PACK_SIZE}, got {recipe.unit_count}"]}
            )

        per_unit = recipe.per_unit_requirements()
        flavor_repo = current_domain.repository_for(Flavor)
        components = [(flavor_repo.get(flavor_id).name, count) for flavor_id, count in per_unit.items()]
        return PackComposition(
            product_type=product_type,
            sku=recipe_sku(recipe.kind, components, product_type),
            per_unit=per_unit,
            recipe_id=str(recipe.id),
            name=recipe.name,
        )

    def _resolve_custom(self, flavor_ids, product_type) -> PackComposition:
        ids = [str(flavor_id) for flavor_id in flavor_ids]
        if len(ids) != PACK_SIZE or len(set(ids)) != PACK_SIZE:
            raise ValidationError({"flavor_ids": [f"A custom pack needs exactly {PACK_SIZE} distinct flavors"]})

        flavor_repo = current_domain.repository_for(Flavor)
        names = []
        for flavor_id in ids:
            try:
                flavor = flavor_repo.get(flavor_id)
            except ObjectNotFoundError as exc:
                raise ValidationError({"flavor_ids": [f"Unknown flavor: {flavor_id}"]}) from exc
            if not flavor.is_active:
                raise ValidationError({"flavor_ids": [f"Flavor is not active: {flavor.name}"]})
            names.append(flavor.name)

        return PackComposition(
            product_type=product_type,
            sku=custom_pack_sku(names, product_type),
            per_unit={flavor_id: 1 for flavor_id in ids},
            name=" / ".join(names),
        )

    # -------------------------------------------------------------------
    # Ledger moves
    # -------------------------------------------------------------------
    def reserve(self, per_unit: Mapping[str, int], quantity: int) -> dict[str, int]:
        """Reserve ``quantity`` packs. All flavors are checked before any moves."""
        requirements = scale(per_unit, quantity)
        self.ledger.ensure_available(requirements)
        for stock_id, amount in requirements.items():
            self.ledger.adjust_reserved(stock_id, amount)
        return requirements

    def release(self, per_unit: Mapping[str, int], quantity: int) -> dict[str, int]:
        """Release ``quantity`` packs. Counters that no longer exist are skipped."""
        released = {}
        for stock_id, amount in scale(per_unit, quantity).items():
            if not self.ledger.exists(stock_id):
                logger.warning("Releasing against a missing stock counter", stock_id=stock_id, amount=amount)
                continue
            released[stock_id] = -self.ledger.adjust_reserved(stock_id, -amount)
        return released

    def adjust_quantity(self, per_unit: Mapping[str, int], old_quantity: int, new_quantity: int) -> dict[str, int]:
        """Reserve or release the difference between two quantities."""
        delta = new_quantity - old_quantity
        if delta > 0:
            return self.reserve(per_unit, delta)
        if delta < 0:
            released = self.release(per_unit, -delta)
            return {stock_id: -amount for stock_id, amount in released.items()}
        return {}
