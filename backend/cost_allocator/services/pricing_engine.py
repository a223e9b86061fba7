"""
PricingEngine — assembles per-product cost reports and suggested prices.

Pipeline for one (company, month, distribution method) snapshot:
  1. Materials costing per product (recipe / BOM)
  2. Indirect cost allocation
  3. Employee cost allocation
  4. Merge into an immutable ProductCostReport:
       total unit cost = materials + indirect per unit + employee per unit
       suggested price = total unit cost × 1.3

A failure while assembling one product never aborts the batch: that product
gets a fallback report built from its stored cost and a warning.
"""
import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from cost_allocator.models.costing_snapshot import (
    AllocationWarning,
    CostingSnapshot,
    ProductRow,
)
from cost_allocator.models.report_models import (
    CostBreakdown,
    DebugInfo,
    DistributionInfo,
    EmployeeCostBreakdownItem,
    IndirectCostBreakdownItem,
    PricingCalculatorResponse,
    ProductCostReport,
    ProductionInfo,
    RecipeDetail,
    WarningItem,
)
from cost_allocator.services.allocation_engine import (
    AllocationEngine,
    ProductAllocation,
)
from cost_allocator.services.materials_engine import MaterialsCost, MaterialsEngine
from cost_allocator.services.perf_monitor import PerformanceTracker

_default_logger = logging.getLogger("cost-allocator.pricing")

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

# Fixed 30 % margin on the fully-loaded unit cost (not configurable)
SUGGESTED_PRICE_MARKUP: float = 1.3

REPORT_VERSION = "batched-allocation"


@dataclass(frozen=True)
class ProductCostResult:
    """A product's report plus every fallback that shaped it."""
    report: ProductCostReport
    warnings: Tuple[AllocationWarning, ...] = ()

    @property
    def used_fallback(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class PricingRun:
    results: Tuple[ProductCostResult, ...]
    debug_info: DebugInfo
    stage_warnings: Tuple[AllocationWarning, ...] = ()

    @property
    def reports(self) -> List[ProductCostReport]:
        return [r.report for r in self.results]

    def to_response(self) -> PricingCalculatorResponse:
        return PricingCalculatorResponse(product_prices=self.reports, debug_info=self.debug_info)

    def warning_counts(self) -> Dict[str, int]:
        counts: Counter = Counter(w.code for r in self.results for w in r.warnings)
        counts.update(w.code for w in self.stage_warnings)
        return dict(counts)


class PricingEngine:

    def __init__(
        self,
        logger: Optional[LoggerLike] = None,
        materials_engine: Optional[MaterialsEngine] = None,
        allocation_engine: Optional[AllocationEngine] = None,
        tracker: Optional[PerformanceTracker] = None,
    ) -> None:
        self.logger = logger or _default_logger
        self.materials_engine = materials_engine or MaterialsEngine(logger=self.logger)
        self.allocation_engine = allocation_engine or AllocationEngine(logger=self.logger)
        self.tracker = tracker

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_report(self, snapshot: CostingSnapshot) -> PricingRun:
        """Compute every product's report for the snapshot."""
        data_source = snapshot.data_source

        with self._stage("materials"):
            materials = {p.id: self._cost_materials(snapshot, p) for p in snapshot.products}

        with self._stage("indirect_allocation"):
            indirect = self.allocation_engine.allocate_indirect_costs(
                snapshot.products, snapshot.indirect_pool, snapshot.indirect_rules,
                snapshot.volumes, data_source,
            )

        with self._stage("employee_allocation"):
            employee = self.allocation_engine.allocate_employee_costs(
                snapshot.products, snapshot.employee_pool, snapshot.employee_rules,
                snapshot.volumes, data_source,
            )

        with self._stage("assembly"):
            category_sizes = Counter(p.category_id for p in snapshot.products)
            category_volumes: Dict[Optional[int], float] = {}
            for p in snapshot.products:
                category_volumes[p.category_id] = (
                    category_volumes.get(p.category_id, 0.0) + snapshot.volumes.get(p.id, 0.0)
                )

            results = []
            for product in snapshot.products:
                try:
                    results.append(
                        self._assemble(
                            snapshot, product, materials[product.id],
                            indirect.for_product(product.id),
                            employee.for_product(product.id),
                            category_sizes[product.category_id],
                            category_volumes[product.category_id],
                        )
                    )
                except Exception as e:
                    self.logger.error(
                        f"Report assembly failed for product {product.id}: {e}",
                        extra={"stage": "assembly", "product_id": product.id},
                    )
                    results.append(self._fallback_result(snapshot, product, e))

        run = PricingRun(
            results=tuple(results),
            debug_info=self._summary(snapshot, results),
            stage_warnings=indirect.warnings + employee.warnings,
        )
        self._log_summary(run)
        return run

    def suggested_price(self, total_unit_cost: float) -> float:
        return total_unit_cost * SUGGESTED_PRICE_MARKUP

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _cost_materials(self, snapshot: CostingSnapshot, product: ProductRow) -> MaterialsCost:
        recipe = snapshot.recipes_by_product.get(product.id)
        items = snapshot.recipe_items.get(recipe.id, ()) if recipe else ()
        return self.materials_engine.cost_product(product, recipe, items, snapshot.supply_prices)

    def _assemble(
        self,
        snapshot: CostingSnapshot,
        product: ProductRow,
        materials: MaterialsCost,
        indirect: ProductAllocation,
        employee: ProductAllocation,
        products_in_category: int,
        category_volume: float,
    ) -> ProductCostResult:
        total = materials.per_unit + indirect.per_unit + employee.per_unit
        breakdown = CostBreakdown(
            materials=materials.per_unit,
            indirect_costs=indirect.per_unit,
            employee_costs=employee.per_unit,
            total=total,
        )

        planned = indirect.product_quantity
        if materials.has_recipe:
            batches_needed = planned / materials.output_quantity
            cost_per_batch = materials.recipe_total
        else:
            batches_needed = 0.0
            cost_per_batch = materials.per_unit

        method = snapshot.distribution_method
        production_info = ProductionInfo(
            source=f"{indirect.data_source}_actual" if indirect.has_real_data else "equal_split",
            actual_production=snapshot.volumes.get(product.id, 0.0) if method == "production" else 0.0,
            planned_production=planned,
            production_month=snapshot.production_month,
            batches_needed=batches_needed,
            materials_cost_per_batch=cost_per_batch,
            category_total_production=indirect.category_total_quantity,
            distribution_ratio=indirect.distribution_ratio,
            distribution_method=method,
        )
        distribution_info = DistributionInfo(
            method=method,
            data_source=indirect.data_source,
            product_quantity=indirect.product_quantity,
            category_total_quantity=indirect.category_total_quantity,
            distribution_ratio=indirect.distribution_ratio,
            percentage_of_category=indirect.percentage_of_category,
            has_real_data=indirect.has_real_data,
            category_total_cost=indirect.category_total_cost,
            product_total_cost=indirect.total,
        )

        warnings = materials.warnings + indirect.warnings + employee.warnings
        report = ProductCostReport(
            id=product.id,
            product_name=product.name,
            product_description=product.description,
            sku=product.sku,
            category_name=product.category_name,
            category_id=product.category_id,
            current_price=product.unit_price,
            current_cost=product.unit_cost,
            stock_quantity=product.stock_quantity,
            calculated_cost=total,
            calculated_price=self.suggested_price(total),
            average_sale_price=snapshot.average_sale_prices.get(product.id, 0.0),
            recipe_id=materials.recipe_id,
            recipe_name=materials.recipe_name,
            output_quantity=materials.output_quantity,
            output_unit_label=materials.output_unit_label,
            intermediate_quantity=materials.intermediate_quantity,
            intermediate_unit_label=materials.intermediate_unit_label,
            units_per_item=materials.units_per_item,
            base_type=materials.base_type,
            cost_breakdown=breakdown,
            cost_breakdown_per_unit=breakdown,
            recipe_details=[RecipeDetail(**d) for d in materials.details],
            indirect_costs_breakdown=[IndirectCostBreakdownItem(**b) for b in indirect.breakdown],
            employee_costs_breakdown=[EmployeeCostBreakdownItem(**b) for b in employee.breakdown],
            total_products_in_category=products_in_category,
            total_production_in_category=category_volume,
            production_info=production_info,
            distribution_info=distribution_info,
            warnings=[WarningItem(code=w.code, stage=w.stage, message=w.message) for w in warnings],
        )
        return ProductCostResult(report=report, warnings=warnings)

    def _fallback_result(
        self, snapshot: CostingSnapshot, product: ProductRow, error: Exception
    ) -> ProductCostResult:
        warning = AllocationWarning(
            code="report_fallback",
            stage="report",
            message=f"Cost computation failed ({error}); using stored unit cost",
            product_id=product.id,
        )
        breakdown = CostBreakdown(materials=product.unit_cost, total=product.unit_cost)
        report = ProductCostReport(
            id=product.id,
            product_name=product.name,
            product_description=product.description,
            sku=product.sku,
            category_name=product.category_name,
            category_id=product.category_id,
            current_price=product.unit_price,
            current_cost=product.unit_cost,
            stock_quantity=product.stock_quantity,
            calculated_cost=product.unit_cost,
            calculated_price=self.suggested_price(product.unit_cost),
            average_sale_price=snapshot.average_sale_prices.get(product.id, 0.0),
            cost_breakdown=breakdown,
            cost_breakdown_per_unit=breakdown,
            production_info=ProductionInfo(
                production_month=snapshot.production_month,
                distribution_method=snapshot.distribution_method,
            ),
            distribution_info=DistributionInfo(
                method=snapshot.distribution_method,
                data_source=snapshot.data_source,
            ),
            warnings=[WarningItem(code=warning.code, stage=warning.stage, message=warning.message)],
        )
        return ProductCostResult(report=report, warnings=(warning,))

    # ------------------------------------------------------------------
    # Summary & instrumentation
    # ------------------------------------------------------------------

    @staticmethod
    def _summary(snapshot: CostingSnapshot, results: List[ProductCostResult]) -> DebugInfo:
        with_recipe = sum(1 for r in results if r.report.recipe_id is not None)
        return DebugInfo(
            total_products=len(results),
            products_with_recipe=with_recipe,
            products_without_recipe=len(results) - with_recipe,
            products_with_zero_cost=sum(1 for r in results if r.report.calculated_cost == 0),
            products_with_warnings=sum(1 for r in results if r.used_fallback),
            total_recipes=snapshot.total_recipes,
            total_supplies=len(snapshot.supply_prices),
            production_month=snapshot.production_month,
            distribution_method=snapshot.distribution_method,
            version=REPORT_VERSION,
        )

    def _log_summary(self, run: PricingRun) -> None:
        info = run.debug_info
        self.logger.info(
            f"Pricing run complete: {info.total_products} products, "
            f"{info.products_with_recipe} with recipe, "
            f"{info.products_without_recipe} without, "
            f"{info.products_with_zero_cost} at zero cost",
            extra={"stage": "summary"},
        )
        if self.tracker is not None:
            for code, count in run.warning_counts().items():
                self.tracker.record_fallback(code, count)

    def _stage(self, name: str) -> "_StageTimer":
        return _StageTimer(name, self.tracker)


class _StageTimer:
    """Context manager recording a pipeline stage's duration and failures."""

    def __init__(self, name: str, tracker: Optional[PerformanceTracker]) -> None:
        self.name = name
        self.tracker = tracker
        self._start = 0.0

    def __enter__(self) -> "_StageTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.tracker is not None:
            duration_ms = round((time.perf_counter() - self._start) * 1000, 2)
            self.tracker.record_stage_duration(self.name, duration_ms)
            if exc_type is not None:
                self.tracker.record_stage_error(self.name)
        return False
