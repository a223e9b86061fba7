"""
Snapshot loader — batch-reads one (company, month, method) snapshot.

Issues a fixed number of queries regardless of catalog size, then reduces
the rows into keyed maps (CostingSnapshot) for the in-memory engines.
The reducers are plain functions over row tuples so they can be exercised
without a database.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cost_allocator.models.costing_snapshot import (
    UNCATEGORIZED_LABEL,
    CostingSnapshot,
    DistributionRule,
    PoolEntry,
    ProductRow,
    RecipeItemRow,
    RecipeRow,
)
from cost_allocator.models.orm_models import (
    CostDistributionConfig,
    Employee,
    EmployeeCategory,
    EmployeeCostDistribution,
    EmployeeSalaryHistory,
    IndirectCostBase,
    IndirectCostMonthlyRecord,
    MonthlyProduction,
    MonthlySale,
    Product,
    ProductCategory,
    Recipe,
    RecipeItem,
    Supply,
    SupplyMonthlyPrice,
)
from cost_allocator.services.errors import SnapshotLoadError
from cost_allocator.services.perf_monitor import timed_async

logger = logging.getLogger("cost-allocator.loader")


# ---------------------------------------------------------------------------
# Month handling
# ---------------------------------------------------------------------------

def parse_month(value: str) -> Tuple[date, date]:
    """
    Parse "YYYY-MM" into (first day of month, first day of next month).

    Raises ValueError for anything else, including months outside 01–12.
    """
    if not isinstance(value, str) or len(value) != 7 or value[4] != "-":
        raise ValueError(f"Expected YYYY-MM, got {value!r}")
    year_part, month_part = value[:4], value[5:]
    if not (year_part.isdigit() and month_part.isdigit()):
        raise ValueError(f"Expected YYYY-MM, got {value!r}")
    year, month = int(year_part), int(month_part)
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range in {value!r}")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _num(value: Any) -> float:
    """Numeric/Decimal column value as float; NULL reads as 0."""
    return float(value) if value is not None else 0.0


# ---------------------------------------------------------------------------
# Row reducers
# ---------------------------------------------------------------------------

def latest_supply_prices(rows: Iterable[Tuple[int, date, Any]]) -> Dict[int, float]:
    """
    Keep, per supply, the price with the greatest month_year.

    Rows are (supply_id, month_year, price_per_unit) already restricted to
    months at or before the target month.
    """
    latest: Dict[int, Tuple[date, float]] = {}
    for supply_id, month_year, price in rows:
        current = latest.get(supply_id)
        if current is None or month_year > current[0]:
            latest[supply_id] = (month_year, _num(price))
    return {supply_id: price for supply_id, (_, price) in latest.items()}


def indirect_pool_entries(rows: Iterable[Tuple[str, Any]]) -> Tuple[PoolEntry, ...]:
    """Sum the month's (cost_name, amount) records into one entry per cost name."""
    totals: Dict[str, float] = {}
    for cost_name, amount in rows:
        totals[cost_name] = totals.get(cost_name, 0.0) + _num(amount)
    return tuple(PoolEntry(key=name, name=name, amount=amount) for name, amount in totals.items())


def employee_salary_pool(
    categories: Iterable[Tuple[int, str]],
    employees: Iterable[Tuple[int, int]],
    salaries: Iterable[Tuple[int, date, Any, Any]],
) -> Tuple[PoolEntry, ...]:
    """
    Payroll pool per employee category.

    Each active employee contributes gross salary + payroll taxes from their
    most recent salary record. Categories with employees but no salary
    history contribute 0; categories without active employees are omitted.
    """
    latest: Dict[int, Tuple[date, float]] = {}
    for employee_id, effective_from, gross, taxes in salaries:
        current = latest.get(employee_id)
        if current is None or effective_from > current[0]:
            latest[employee_id] = (effective_from, _num(gross) + _num(taxes))

    by_category: Dict[int, float] = {}
    for employee_id, category_id in employees:
        salary = latest.get(employee_id, (None, 0.0))[1]
        by_category[category_id] = by_category.get(category_id, 0.0) + salary

    return tuple(
        PoolEntry(key=category_id, name=name, amount=by_category[category_id])
        for category_id, name in categories
        if category_id in by_category
    )


def sums_by_product(rows: Iterable[Tuple[int, Any]]) -> Dict[int, float]:
    volumes: Dict[int, float] = {}
    for product_id, quantity in rows:
        volumes[int(product_id)] = volumes.get(int(product_id), 0.0) + _num(quantity)
    return volumes


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def sales_in_month_clause(production_month: str, start: date, end: date):
    """
    A sale belongs to the month when its imputation month matches, or its
    month_year date lies in the month, or both are empty and it was created
    in the month.
    """
    start_dt = datetime(start.year, start.month, start.day)
    end_dt = datetime(end.year, end.month, end.day)
    return or_(
        MonthlySale.imputation_month == production_month,
        and_(
            MonthlySale.month_year.is_not(None),
            MonthlySale.month_year >= start,
            MonthlySale.month_year < end,
        ),
        and_(
            MonthlySale.month_year.is_(None),
            MonthlySale.imputation_month.is_(None),
            MonthlySale.created_at.is_not(None),
            MonthlySale.created_at >= start_dt,
            MonthlySale.created_at < end_dt,
        ),
    )


class SqlSnapshotLoader:
    """Reads a CostingSnapshot through an AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @timed_async
    async def load(
        self,
        company_id: int,
        production_month: str,
        distribution_method: str,
    ) -> CostingSnapshot:
        try:
            return await self._load(company_id, production_month, distribution_method)
        except SQLAlchemyError as e:
            raise SnapshotLoadError("Could not load costing data", details=str(e)) from e

    async def _load(
        self,
        company_id: int,
        production_month: str,
        distribution_method: str,
    ) -> CostingSnapshot:
        start, end = parse_month(production_month)

        products = await self._products(company_id)
        recipes_by_product, total_recipes = await self._recipes(company_id)
        recipe_items = await self._recipe_items(company_id, [r.id for r in recipes_by_product.values()])

        price_rows = await self._rows(
            select(SupplyMonthlyPrice.supply_id, SupplyMonthlyPrice.month_year, SupplyMonthlyPrice.price_per_unit)
            .where(SupplyMonthlyPrice.company_id == company_id, SupplyMonthlyPrice.month_year < end)
            .order_by(SupplyMonthlyPrice.supply_id, SupplyMonthlyPrice.month_year, SupplyMonthlyPrice.id)
        )

        indirect_rows = await self._rows(
            select(IndirectCostBase.name, IndirectCostMonthlyRecord.amount)
            .join(IndirectCostBase, IndirectCostMonthlyRecord.cost_base_id == IndirectCostBase.id)
            .where(
                IndirectCostMonthlyRecord.company_id == company_id,
                IndirectCostMonthlyRecord.imputation_month == production_month,
            )
            .order_by(IndirectCostBase.name, IndirectCostMonthlyRecord.id)
        )

        config_rows = await self._rows(
            select(
                CostDistributionConfig.cost_name,
                CostDistributionConfig.product_category_id,
                CostDistributionConfig.percentage,
            )
            .where(CostDistributionConfig.company_id == company_id, CostDistributionConfig.is_active.is_(True))
            .order_by(CostDistributionConfig.product_category_id, CostDistributionConfig.cost_name,
                      CostDistributionConfig.id)
        )

        employee_pool = await self._employee_pool(company_id, end)

        employee_rule_rows = await self._rows(
            select(
                EmployeeCostDistribution.employee_category_id,
                EmployeeCategory.name,
                EmployeeCostDistribution.product_category_id,
                EmployeeCostDistribution.percentage,
            )
            .outerjoin(EmployeeCategory, EmployeeCostDistribution.employee_category_id == EmployeeCategory.id)
            .where(
                EmployeeCostDistribution.company_id == company_id,
                EmployeeCostDistribution.is_active.is_(True),
            )
            .order_by(EmployeeCostDistribution.product_category_id, EmployeeCategory.name,
                      EmployeeCostDistribution.id)
        )

        sales_rows = await self._rows(
            select(MonthlySale.product_id, func.sum(MonthlySale.quantity_sold), func.avg(MonthlySale.unit_price))
            .where(MonthlySale.company_id == company_id, sales_in_month_clause(production_month, start, end))
            .group_by(MonthlySale.product_id)
            .order_by(MonthlySale.product_id)
        )
        average_sale_prices = {int(pid): _num(avg) for pid, _, avg in sales_rows if avg is not None}

        if distribution_method == "production":
            volumes = sums_by_product(await self._rows(
                select(MonthlyProduction.product_id, func.sum(MonthlyProduction.quantity))
                .where(
                    MonthlyProduction.company_id == company_id,
                    MonthlyProduction.production_month == production_month,
                )
                .group_by(MonthlyProduction.product_id)
                .order_by(MonthlyProduction.product_id)
            ))
        else:
            volumes = sums_by_product((pid, qty) for pid, qty, _ in sales_rows)

        snapshot = CostingSnapshot(
            company_id=company_id,
            production_month=production_month,
            distribution_method=distribution_method,
            products=products,
            recipes_by_product=recipes_by_product,
            recipe_items=recipe_items,
            supply_prices=latest_supply_prices(price_rows),
            indirect_pool=indirect_pool_entries(indirect_rows),
            indirect_rules=tuple(
                DistributionRule(pool_key=name, pool_name=name, product_category_id=cat_id, percentage=_num(pct))
                for name, cat_id, pct in config_rows
            ),
            employee_pool=employee_pool,
            employee_rules=tuple(
                DistributionRule(
                    pool_key=emp_cat_id,
                    pool_name=emp_cat_name or f"Employee category {emp_cat_id}",
                    product_category_id=cat_id,
                    percentage=_num(pct),
                )
                for emp_cat_id, emp_cat_name, cat_id, pct in employee_rule_rows
            ),
            volumes=volumes,
            average_sale_prices=average_sale_prices,
            total_recipes=total_recipes,
        )
        logger.info(
            f"Snapshot loaded: {len(products)} products, {total_recipes} recipes, "
            f"{len(snapshot.supply_prices)} supply prices, {len(volumes)} products with volume",
            extra={
                "company_id": company_id,
                "production_month": production_month,
                "distribution_method": distribution_method,
            },
        )
        return snapshot

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    async def _rows(self, stmt) -> List[Tuple[Any, ...]]:
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def _products(self, company_id: int) -> Tuple[ProductRow, ...]:
        rows = await self._rows(
            select(
                Product.id, Product.name, Product.description, Product.sku, Product.category_id,
                Product.unit_price, Product.unit_cost, Product.stock_quantity, ProductCategory.name,
            )
            .outerjoin(ProductCategory, Product.category_id == ProductCategory.id)
            .where(Product.company_id == company_id, Product.is_active.is_(True))
            .order_by(ProductCategory.name, Product.name, Product.id)
        )
        return tuple(
            ProductRow(
                id=int(pid),
                name=name,
                category_id=category_id,
                category_name=category_name or UNCATEGORIZED_LABEL,
                description=description or "",
                sku=sku or "",
                unit_price=_num(unit_price),
                unit_cost=_num(unit_cost),
                stock_quantity=_num(stock),
            )
            for pid, name, description, sku, category_id, unit_price, unit_cost, stock, category_name in rows
        )

    async def _recipes(self, company_id: int) -> Tuple[Dict[int, RecipeRow], int]:
        result = await self.session.execute(
            select(Recipe)
            .where(Recipe.company_id == company_id, Recipe.is_active.is_(True))
            .order_by(Recipe.id)
        )
        recipes = result.scalars().all()

        by_product: Dict[int, RecipeRow] = {}
        for r in recipes:
            # First active recipe per product wins
            if r.product_id is None or r.product_id in by_product:
                continue
            by_product[r.product_id] = RecipeRow(
                id=r.id,
                product_id=r.product_id,
                name=r.name,
                output_quantity=_num(r.output_quantity) or 1.0,
                output_unit_label=r.output_unit_label or "units",
                intermediate_quantity=_num(r.intermediate_quantity) or 1.0,
                intermediate_unit_label=r.intermediate_unit_label or "sheets",
                units_per_item=_num(r.units_per_item) or 1.0,
                base_type=r.base_type or "standard",
            )
        return by_product, len(recipes)

    async def _recipe_items(
        self, company_id: int, recipe_ids: Sequence[int]
    ) -> Dict[int, Tuple[RecipeItemRow, ...]]:
        if not recipe_ids:
            return {}
        rows = await self._rows(
            select(
                RecipeItem.recipe_id, RecipeItem.supply_id, RecipeItem.quantity,
                RecipeItem.unit_measure, Supply.name,
            )
            .outerjoin(Supply, RecipeItem.supply_id == Supply.id)
            .where(
                RecipeItem.company_id == company_id,
                RecipeItem.recipe_id.in_(recipe_ids),
            )
            .order_by(RecipeItem.recipe_id, RecipeItem.id)
        )
        items: Dict[int, List[RecipeItemRow]] = {}
        for recipe_id, supply_id, quantity, unit_measure, supply_name in rows:
            items.setdefault(recipe_id, []).append(
                RecipeItemRow(
                    recipe_id=recipe_id,
                    supply_id=int(supply_id),
                    quantity=_num(quantity),
                    supply_name=supply_name or "",
                    unit_measure=unit_measure or "",
                )
            )
        return {recipe_id: tuple(rows) for recipe_id, rows in items.items()}

    async def _employee_pool(self, company_id: int, end: date) -> Tuple[PoolEntry, ...]:
        categories = await self._rows(
            select(EmployeeCategory.id, EmployeeCategory.name)
            .where(EmployeeCategory.company_id == company_id, EmployeeCategory.is_active.is_(True))
            .order_by(EmployeeCategory.name, EmployeeCategory.id)
        )
        if not categories:
            return ()

        employees = await self._rows(
            select(Employee.id, Employee.category_id)
            .where(
                Employee.company_id == company_id,
                Employee.active.is_(True),
                Employee.category_id.in_([cat_id for cat_id, _ in categories]),
            )
            .order_by(Employee.id)
        )
        if not employees:
            return ()

        salaries = await self._rows(
            select(
                EmployeeSalaryHistory.employee_id,
                EmployeeSalaryHistory.effective_from,
                EmployeeSalaryHistory.gross_salary,
                EmployeeSalaryHistory.payroll_taxes,
            )
            .where(
                EmployeeSalaryHistory.employee_id.in_([emp_id for emp_id, _ in employees]),
                EmployeeSalaryHistory.effective_from < end,
            )
            .order_by(EmployeeSalaryHistory.employee_id, EmployeeSalaryHistory.effective_from,
                      EmployeeSalaryHistory.id)
        )
        return employee_salary_pool(categories, employees, salaries)
