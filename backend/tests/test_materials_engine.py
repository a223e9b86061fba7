"""
test_materials_engine.py — Unit tests for MaterialsEngine.

Tests cover:
  - Recipe costing: Σ(quantity × price) / output quantity
  - Recipe detail rows (one per ingredient, in recipe order)
  - Missing supply prices counted as 0 with a warning
  - Non-positive output quantity treated as 1
  - Products without a recipe falling back to the stored unit cost
  - Failures inside recipe costing falling back without raising

All tests are pure unit tests; no database required.
"""

import pytest

from cost_allocator.models.costing_snapshot import ProductRow, RecipeItemRow, RecipeRow


@pytest.fixture
def product():
    return ProductRow(id=1, name="Bloque A", category_id=10, unit_cost=20.0)


@pytest.fixture
def recipe():
    return RecipeRow(id=100, product_id=1, name="Bloque A std", output_quantity=2.0,
                     output_unit_label="bloques", intermediate_quantity=4.0,
                     intermediate_unit_label="placas", units_per_item=12.0,
                     base_type="per_bank")


@pytest.fixture
def items():
    return (
        RecipeItemRow(recipe_id=100, supply_id=11, quantity=2.0, supply_name="Cemento", unit_measure="kg"),
        RecipeItemRow(recipe_id=100, supply_id=12, quantity=4.0, supply_name="Arena", unit_measure="kg"),
    )


class _ExplodingItem:
    """Recipe item whose quantity cannot be read."""
    supply_id = 99

    @property
    def quantity(self):
        raise RuntimeError("corrupt recipe row")


# ===========================================================================
# Recipe costing
# ===========================================================================

class TestRecipeCosting:

    def test_per_unit_divides_by_output_quantity(self, materials_engine, product, recipe, items):
        """
        2 × 5.0 + 4 × 2.5 = 20.0 per batch; batch yields 2 → 10.0 per unit.
        """
        result = materials_engine.cost_product(product, recipe, items, {11: 5.0, 12: 2.5})
        assert result.recipe_total == pytest.approx(20.0)
        assert result.per_unit == pytest.approx(10.0)
        assert result.has_recipe
        assert result.warnings == ()

    def test_recipe_metadata_carried_through(self, materials_engine, product, recipe, items):
        result = materials_engine.cost_product(product, recipe, items, {11: 5.0, 12: 2.5})
        assert result.recipe_id == 100
        assert result.recipe_name == "Bloque A std"
        assert result.output_unit_label == "bloques"
        assert result.intermediate_quantity == 4.0
        assert result.intermediate_unit_label == "placas"
        assert result.units_per_item == 12.0
        assert result.base_type == "per_bank"

    def test_detail_rows_in_recipe_order(self, materials_engine, product, recipe, items):
        result = materials_engine.cost_product(product, recipe, items, {11: 5.0, 12: 2.5})
        assert [d["supply_id"] for d in result.details] == [11, 12]
        first = result.details[0]
        assert first["supply_name"] == "Cemento"
        assert first["unit_measure"] == "kg"
        assert first["unit_price"] == 5.0
        assert first["total_cost"] == pytest.approx(10.0)

    def test_empty_recipe_costs_zero(self, materials_engine, product, recipe):
        result = materials_engine.cost_product(product, recipe, (), {})
        assert result.per_unit == 0.0
        assert result.details == ()
        assert result.warnings == ()


# ===========================================================================
# Degraded inputs
# ===========================================================================

class TestMaterialsFallbacks:

    def test_missing_price_counts_as_zero(self, materials_engine, product, recipe, items):
        """
        Supply 12 has no price: only 2 × 5.0 = 10.0 per batch → 5.0 per unit.
        """
        result = materials_engine.cost_product(product, recipe, items, {11: 5.0})
        assert result.per_unit == pytest.approx(5.0)
        assert [w.code for w in result.warnings] == ["missing_supply_price"]
        assert result.warnings[0].product_id == 1
        assert result.details[1]["unit_price"] == 0.0

    @pytest.mark.parametrize("output_quantity", [0.0, -3.0])
    def test_non_positive_output_treated_as_one(self, materials_engine, product, items, output_quantity):
        recipe = RecipeRow(id=100, product_id=1, name="broken yield", output_quantity=output_quantity)
        result = materials_engine.cost_product(product, recipe, items, {11: 5.0, 12: 2.5})
        assert result.output_quantity == 1.0
        assert result.per_unit == pytest.approx(20.0)

    def test_no_recipe_uses_stored_cost(self, materials_engine, product):
        result = materials_engine.cost_product(product, None, (), {11: 5.0})
        assert result.per_unit == 20.0
        assert not result.has_recipe
        assert [w.code for w in result.warnings] == ["no_recipe"]

    def test_costing_error_falls_back_without_raising(self, materials_engine, product, recipe):
        result = materials_engine.cost_product(product, recipe, (_ExplodingItem(),), {99: 1.0})
        assert result.per_unit == 20.0
        assert result.recipe_id == 100
        assert [w.code for w in result.warnings] == ["materials_fallback"]
        assert "corrupt recipe row" in result.warnings[0].message
