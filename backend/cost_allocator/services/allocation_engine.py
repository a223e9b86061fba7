"""
AllocationEngine — spreads shared monthly cost pools across products.

Covers:
  - Indirect costs: named monthly cost records → product categories
  - Employee costs: payroll per employee category → product categories

Both pools follow the same algorithm:

  1. category pool   = Σ over rules targeting the category of (entry amount × pct / 100)
  2. product ratio   = product volume / category volume
                       (1 / products-in-category when the category has no volume)
  3. product total   = category pool × ratio
  4. per-unit cost   = product total / product volume  (0 when the volume is 0)

The equal-split fallback guarantees every category pool is fully assigned
even with sparse volume data. Every fallback is reported as an
AllocationWarning so callers can tell real figures from defaults.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from cost_allocator.models.costing_snapshot import (
    AllocationWarning,
    DistributionRule,
    PoolEntry,
    ProductRow,
)

_default_logger = logging.getLogger("cost-allocator.allocation")

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

STAGE_INDIRECT = "indirect"
STAGE_EMPLOYEE = "employee"

# Breakdown row labels per pool: (name key, base amount key)
_BREAKDOWN_KEYS: Dict[str, Tuple[str, str]] = {
    STAGE_INDIRECT: ("cost_name", "base_amount"),
    STAGE_EMPLOYEE: ("employee_category_name", "total_salary"),
}


@dataclass(frozen=True)
class ProductAllocation:
    product_id: int
    per_unit: float = 0.0
    total: float = 0.0
    breakdown: Tuple[Dict[str, Any], ...] = ()
    product_quantity: float = 0.0
    category_total_quantity: float = 0.0
    distribution_ratio: float = 0.0
    percentage_of_category: float = 0.0
    has_real_data: bool = False
    data_source: str = "sales"
    category_total_cost: float = 0.0
    products_in_category: int = 0
    warnings: Tuple[AllocationWarning, ...] = ()


@dataclass(frozen=True)
class AllocationOutcome:
    stage: str
    by_product: Dict[int, ProductAllocation] = field(default_factory=dict)
    category_totals: Dict[int, float] = field(default_factory=dict)
    warnings: Tuple[AllocationWarning, ...] = ()

    def for_product(self, product_id: int) -> ProductAllocation:
        return self.by_product.get(product_id) or ProductAllocation(product_id=product_id)

    @property
    def distributed_total(self) -> float:
        return sum(a.total for a in self.by_product.values())


class AllocationEngine:
    """
    Pure proportional allocator. Holds no state between calls; every input
    comes from the request's CostingSnapshot.
    """

    def __init__(self, logger: Optional[LoggerLike] = None) -> None:
        self.logger = logger or _default_logger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def allocate_indirect_costs(
        self,
        products: Sequence[ProductRow],
        pool: Sequence[PoolEntry],
        rules: Sequence[DistributionRule],
        volumes: Mapping[int, float],
        data_source: str = "sales",
    ) -> AllocationOutcome:
        """Distribute the month's indirect cost records across products."""
        return self._allocate_safely(STAGE_INDIRECT, products, pool, rules, volumes, data_source)

    def allocate_employee_costs(
        self,
        products: Sequence[ProductRow],
        pool: Sequence[PoolEntry],
        rules: Sequence[DistributionRule],
        volumes: Mapping[int, float],
        data_source: str = "sales",
    ) -> AllocationOutcome:
        """Distribute payroll totals per employee category across products."""
        return self._allocate_safely(STAGE_EMPLOYEE, products, pool, rules, volumes, data_source)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _allocate_safely(
        self,
        stage: str,
        products: Sequence[ProductRow],
        pool: Sequence[PoolEntry],
        rules: Sequence[DistributionRule],
        volumes: Mapping[int, float],
        data_source: str,
    ) -> AllocationOutcome:
        try:
            return self._allocate(stage, products, pool, rules, volumes, data_source)
        except Exception as e:
            self.logger.exception(
                f"{stage} allocation failed; assigning zero to every product",
                extra={"stage": stage},
            )
            return self._zero_outcome(
                stage, products, data_source,
                code="allocation_failed",
                message=f"{stage} allocation failed ({e}); cost set to 0",
            )

    def _allocate(
        self,
        stage: str,
        products: Sequence[ProductRow],
        pool: Sequence[PoolEntry],
        rules: Sequence[DistributionRule],
        volumes: Mapping[int, float],
        data_source: str,
    ) -> AllocationOutcome:
        if not pool:
            self.logger.warning(
                f"No {stage} cost pool for the month; costs set to 0",
                extra={"stage": stage},
            )
            return self._zero_outcome(
                stage, products, data_source,
                code="no_cost_pool",
                message=f"No {stage} cost pool entries for the month",
            )

        category_totals, category_breakdowns, stage_warnings = self._category_pools(stage, pool, rules)

        members: Dict[Optional[int], List[ProductRow]] = OrderedDict()
        for product in products:
            members.setdefault(product.category_id, []).append(product)

        by_product: Dict[int, ProductAllocation] = {}
        for category_id, category_products in members.items():
            category_cost = category_totals.get(category_id, 0.0) if category_id is not None else 0.0
            if category_cost <= 0:
                for product in category_products:
                    by_product[product.id] = ProductAllocation(
                        product_id=product.id,
                        data_source=data_source,
                        products_in_category=len(category_products),
                    )
                continue

            allocations = self._split_category(
                stage, category_id, category_cost, category_products,
                category_breakdowns.get(category_id, ()), volumes, data_source,
            )
            by_product.update(allocations)

        outcome = AllocationOutcome(
            stage=stage,
            by_product=by_product,
            category_totals=dict(category_totals),
            warnings=tuple(stage_warnings),
        )
        self.logger.info(
            f"{stage} allocation complete: {len(category_totals)} categories, "
            f"{outcome.distributed_total:,.2f} distributed",
            extra={"stage": stage},
        )
        return outcome

    def _category_pools(
        self,
        stage: str,
        pool: Sequence[PoolEntry],
        rules: Sequence[DistributionRule],
    ) -> Tuple[Dict[int, float], Dict[int, Tuple[Dict[str, Any], ...]], List[AllocationWarning]]:
        """Sum weighted pool entries per target product category."""
        name_key, base_key = _BREAKDOWN_KEYS[stage]
        entries = {entry.key: entry for entry in pool}

        totals: Dict[int, float] = OrderedDict()
        breakdowns: Dict[int, List[Dict[str, Any]]] = OrderedDict()
        warnings: List[AllocationWarning] = []

        for rule in rules:
            totals.setdefault(rule.product_category_id, 0.0)
            breakdowns.setdefault(rule.product_category_id, [])

            entry = entries.get(rule.pool_key)
            if entry is None:
                warnings.append(
                    AllocationWarning(
                        code="unmatched_distribution_rule",
                        stage=stage,
                        message=f"Rule for '{rule.pool_name}' has no pool amount this month",
                    )
                )
                continue
            if not 0 <= rule.percentage <= 100:
                self.logger.warning(
                    f"Distribution percentage {rule.percentage} for '{rule.pool_name}' outside 0–100",
                    extra={"stage": stage, "category_id": rule.product_category_id},
                )

            assigned = entry.amount * (rule.percentage / 100)
            totals[rule.product_category_id] += assigned
            breakdowns[rule.product_category_id].append({
                name_key: entry.name,
                base_key: entry.amount,
                "percentage": rule.percentage,
                "assigned_amount": assigned,
            })

        for category_id, total in totals.items():
            self.logger.info(
                f"{stage} pool for category {category_id}: {total:,.2f}",
                extra={"stage": stage, "category_id": category_id},
            )

        return totals, {k: tuple(v) for k, v in breakdowns.items()}, warnings

    def _split_category(
        self,
        stage: str,
        category_id: int,
        category_cost: float,
        category_products: Sequence[ProductRow],
        breakdown: Tuple[Dict[str, Any], ...],
        volumes: Mapping[int, float],
        data_source: str,
    ) -> Dict[int, ProductAllocation]:
        count = len(category_products)
        quantities = {p.id: float(volumes.get(p.id, 0.0) or 0.0) for p in category_products}
        category_quantity = sum(quantities.values())
        has_real_data = category_quantity > 0

        if not has_real_data:
            self.logger.warning(
                f"Category {category_id} has no {data_source} volume; splitting {stage} pool equally "
                f"across {count} products",
                extra={"stage": stage, "category_id": category_id},
            )

        result: Dict[int, ProductAllocation] = {}
        for product in category_products:
            quantity = quantities[product.id]
            ratio = quantity / category_quantity if has_real_data else 1 / count
            total = category_cost * ratio
            # Intentionally 0 for zero volume, even under equal split; the ERP route used quantity 1 here
            per_unit = total / quantity if quantity > 0 else 0.0

            warnings: List[AllocationWarning] = []
            if not has_real_data:
                warnings.append(
                    AllocationWarning(
                        code="equal_split_fallback",
                        stage=stage,
                        message=f"No {data_source} volume in category; equal share 1/{count}",
                        product_id=product.id,
                    )
                )
            if quantity <= 0:
                warnings.append(
                    AllocationWarning(
                        code="zero_volume",
                        stage=stage,
                        message=f"No {data_source} volume for product; per-unit cost set to 0",
                        product_id=product.id,
                    )
                )

            self.logger.debug(
                f"{product.name}: {quantity}/{category_quantity} in category = {ratio * 100:.1f}%, "
                f"assigned {total:,.2f}, per unit {per_unit:,.2f}",
                extra={"stage": stage, "category_id": category_id, "product_id": product.id},
            )

            result[product.id] = ProductAllocation(
                product_id=product.id,
                per_unit=per_unit,
                total=total,
                breakdown=breakdown,
                product_quantity=quantity,
                category_total_quantity=category_quantity,
                distribution_ratio=ratio,
                percentage_of_category=ratio * 100,
                has_real_data=has_real_data,
                data_source=data_source,
                category_total_cost=category_cost,
                products_in_category=count,
                warnings=tuple(warnings),
            )
        return result

    @staticmethod
    def _zero_outcome(
        stage: str,
        products: Sequence[ProductRow],
        data_source: str,
        code: str,
        message: str,
    ) -> AllocationOutcome:
        by_product = {
            p.id: ProductAllocation(
                product_id=p.id,
                data_source=data_source,
                warnings=(AllocationWarning(code=code, stage=stage, message=message, product_id=p.id),),
            )
            for p in products
        }
        return AllocationOutcome(stage=stage, by_product=by_product)
