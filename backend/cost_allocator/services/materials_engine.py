"""
MaterialsEngine — direct materials cost per output unit from a product's recipe.

    per_unit = Σ(item quantity × latest unit price) / recipe output quantity

A product without a recipe falls back to its stored unit cost. Lookups are
best-effort: a supply without a price contributes 0, and any failure while
costing a recipe falls back to the stored unit cost. Neither case raises;
both are reported as AllocationWarning entries.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from cost_allocator.models.costing_snapshot import (
    AllocationWarning,
    ProductRow,
    RecipeItemRow,
    RecipeRow,
)

_default_logger = logging.getLogger("cost-allocator.materials")

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

STAGE = "materials"


@dataclass(frozen=True)
class MaterialsCost:
    product_id: int
    per_unit: float
    recipe_total: float
    recipe_id: Optional[int] = None
    recipe_name: Optional[str] = None
    output_quantity: float = 1.0
    output_unit_label: str = "units"
    intermediate_quantity: float = 1.0
    intermediate_unit_label: str = "sheets"
    units_per_item: float = 1.0
    base_type: str = "standard"
    details: Tuple[Dict[str, Any], ...] = ()
    warnings: Tuple[AllocationWarning, ...] = ()

    @property
    def has_recipe(self) -> bool:
        return self.recipe_id is not None


class MaterialsEngine:
    """Costs recipes against a pre-loaded supply price map."""

    def __init__(self, logger: Optional[LoggerLike] = None) -> None:
        self.logger = logger or _default_logger

    def cost_product(
        self,
        product: ProductRow,
        recipe: Optional[RecipeRow],
        items: Sequence[RecipeItemRow],
        supply_prices: Mapping[int, float],
    ) -> MaterialsCost:
        if recipe is None:
            return MaterialsCost(
                product_id=product.id,
                per_unit=product.unit_cost,
                recipe_total=0.0,
                warnings=(
                    AllocationWarning(
                        code="no_recipe",
                        stage=STAGE,
                        message="No active recipe; using stored unit cost",
                        product_id=product.id,
                    ),
                ),
            )

        try:
            return self._cost_recipe(product, recipe, items, supply_prices)
        except Exception as e:
            self.logger.error(
                f"Materials costing failed for product {product.id}: {e}",
                extra={"stage": STAGE, "product_id": product.id},
            )
            return MaterialsCost(
                product_id=product.id,
                per_unit=product.unit_cost,
                recipe_total=0.0,
                recipe_id=recipe.id,
                recipe_name=recipe.name,
                warnings=(
                    AllocationWarning(
                        code="materials_fallback",
                        stage=STAGE,
                        message=f"Recipe costing failed ({e}); using stored unit cost",
                        product_id=product.id,
                    ),
                ),
            )

    def _cost_recipe(
        self,
        product: ProductRow,
        recipe: RecipeRow,
        items: Sequence[RecipeItemRow],
        supply_prices: Mapping[int, float],
    ) -> MaterialsCost:
        recipe_total = 0.0
        details = []
        warnings = []

        for item in items:
            unit_price = supply_prices.get(item.supply_id)
            if unit_price is None:
                warnings.append(
                    AllocationWarning(
                        code="missing_supply_price",
                        stage=STAGE,
                        message=f"No price at or before the month for supply {item.supply_id}",
                        product_id=product.id,
                    )
                )
                unit_price = 0.0
            line_total = item.quantity * unit_price
            recipe_total += line_total
            details.append({
                "supply_id": item.supply_id,
                "supply_name": item.supply_name,
                "quantity": item.quantity,
                "unit_measure": item.unit_measure,
                "unit_price": unit_price,
                "total_cost": line_total,
            })

        # A missing or non-positive yield is treated as one unit per batch
        output_quantity = recipe.output_quantity if recipe.output_quantity > 0 else 1.0
        per_unit = recipe_total / output_quantity

        if recipe_total == 0.0 and items:
            self.logger.warning(
                f"Recipe {recipe.id} costs 0 — check supply prices",
                extra={"stage": STAGE, "product_id": product.id},
            )

        return MaterialsCost(
            product_id=product.id,
            per_unit=per_unit,
            recipe_total=recipe_total,
            recipe_id=recipe.id,
            recipe_name=recipe.name,
            output_quantity=output_quantity,
            output_unit_label=recipe.output_unit_label,
            intermediate_quantity=recipe.intermediate_quantity,
            intermediate_unit_label=recipe.intermediate_unit_label,
            units_per_item=recipe.units_per_item,
            base_type=recipe.base_type,
            details=tuple(details),
            warnings=tuple(warnings),
        )
