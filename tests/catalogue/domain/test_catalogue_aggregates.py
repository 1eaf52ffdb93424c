import pytest
from protean.exceptions import ValidationError

from storefront.catalogue.events import FlavorDeactivated, PackRecipeCreated
from storefront.catalogue.flavor import Flavor
from storefront.catalogue.products import default_price, ensure_supported, supported_product_types
from storefront.catalogue.recipe import PackRecipe


class TestFlavor:
    def test_create_defaults(self):
        flavor = Flavor.create(name="  Cherry ")
        assert flavor.name == "Cherry"
        assert flavor.kind == "Traditional"
        assert flavor.is_active is True

    def test_name_required(self):
        with pytest.raises(ValidationError):
            Flavor.create(name=" ")

    def test_deactivate_and_activate(self):
        flavor = Flavor.create(name="Cherry")
        flavor.deactivate()
        assert flavor.is_active is False
        assert isinstance(flavor._events[-1], FlavorDeactivated)

        flavor.activate()
        assert flavor.is_active is True

    def test_deactivate_twice_rejected(self):
        flavor = Flavor.create(name="Cherry")
        flavor.deactivate()
        with pytest.raises(ValidationError):
            flavor.deactivate()


class TestPackRecipe:
    def test_create_with_repeated_flavor(self):
        recipe = PackRecipe.create(
            name="Double Cherry",
            kind="Traditional",
            items=[{"flavor_id": "flv-cherry", "quantity": 2}, {"flavor_id": "flv-lime", "quantity": 1}],
        )
        assert recipe.unit_count == 3
        assert recipe.per_unit_requirements() == {"flv-cherry": 2, "flv-lime": 1}
        assert isinstance(recipe._events[-1], PackRecipeCreated)

    @pytest.mark.parametrize("quantities", [[1, 1], [2, 2], [4]])
    def test_quantities_must_sum_to_a_pack(self, quantities):
        items = [{"flavor_id": f"flv-{i}", "quantity": q} for i, q in enumerate(quantities)]
        with pytest.raises(ValidationError):
            PackRecipe.create(name="Odd", kind="Traditional", items=items)

    def test_needs_items(self):
        with pytest.raises(ValidationError):
            PackRecipe.create(name="Empty", kind="Traditional", items=[])

    def test_deactivate(self):
        recipe = PackRecipe.create(name="Trio", kind="Sour", items=[{"flavor_id": "flv-a", "quantity": 3}])
        recipe.deactivate()
        assert recipe.is_active is False


class TestProductTypes:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SUPPORTED_PRODUCT_TYPES", raising=False)
        assert supported_product_types() == ["3-pack", "5-pack"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SUPPORTED_PRODUCT_TYPES", "3-pack, 6-pack")
        assert supported_product_types() == ["3-pack", "6-pack"]
        with pytest.raises(ValidationError):
            ensure_supported("5-pack")

    def test_default_price_fallback_and_env(self, monkeypatch):
        monkeypatch.delenv("DEFAULT_3_PACK_PRICE", raising=False)
        assert default_price("3-pack") == 27.0
        monkeypatch.setenv("DEFAULT_3_PACK_PRICE", "24.50")
        assert default_price("3-pack") == 24.5

    def test_default_price_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_3_PACK_PRICE", "cheap")
        with pytest.raises(ValidationError):
            default_price("3-pack")
