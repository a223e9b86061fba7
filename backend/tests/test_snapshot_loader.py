"""
test_snapshot_loader.py — Tests for snapshot loading.

Tests cover:
  - parse_month: valid months, December rollover, malformed input
  - latest_supply_prices: latest month wins per supply
  - indirect_pool_entries: duplicate cost names summed
  - employee_salary_pool: latest salary per employee, gross + taxes per category
  - sums_by_product: Decimal/None handling
  - sales_in_month_clause: three-way month match
  - SqlSnapshotLoader against a scripted session (no database)
  - SQLAlchemy failures surfacing as SnapshotLoadError
"""

import asyncio
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from cost_allocator.services.errors import SnapshotLoadError
from cost_allocator.services.snapshot_loader import (
    SqlSnapshotLoader,
    employee_salary_pool,
    indirect_pool_entries,
    latest_supply_prices,
    parse_month,
    sales_in_month_clause,
    sums_by_product,
)


# ===========================================================================
# Month parsing
# ===========================================================================

class TestParseMonth:

    def test_regular_month(self):
        assert parse_month("2025-08") == (date(2025, 8, 1), date(2025, 9, 1))

    def test_december_rolls_into_next_year(self):
        assert parse_month("2024-12") == (date(2024, 12, 1), date(2025, 1, 1))

    @pytest.mark.parametrize("value", ["2025-13", "2025-00", "2025-8", "202508", "abcd-ef", "", None, "2025/08"])
    def test_malformed_month_rejected(self, value):
        with pytest.raises(ValueError):
            parse_month(value)


# ===========================================================================
# Reducers
# ===========================================================================

class TestRowReducers:

    def test_latest_price_per_supply(self):
        rows = [
            (11, date(2025, 6, 1), Decimal("4.00")),
            (11, date(2025, 8, 1), Decimal("5.50")),
            (11, date(2025, 7, 1), Decimal("5.00")),
            (12, date(2024, 1, 1), 2.5),
        ]
        assert latest_supply_prices(rows) == {11: 5.5, 12: 2.5}

    def test_null_price_reads_as_zero(self):
        assert latest_supply_prices([(11, date(2025, 8, 1), None)]) == {11: 0.0}

    def test_indirect_entries_summed_by_name(self):
        """
        Two "Electricidad" records (600 + 400) collapse into one 1000 entry.
        """
        entries = indirect_pool_entries([
            ("Alquiler", Decimal("2000")),
            ("Electricidad", Decimal("600")),
            ("Electricidad", 400),
        ])
        assert [(e.key, e.amount) for e in entries] == [("Alquiler", 2000.0), ("Electricidad", 1000.0)]

    def test_employee_pool_uses_latest_salary(self):
        """
        Employee 1: latest record 1200 + 300 = 1500 (older 1000 ignored)
        Employee 2: 800 + 200 = 1000
        Employee 3: no salary history → 0
        Operarios (7) = 1500 + 1000 = 2500; Ventas (8) = 0; Admin (9) has no employees.
        """
        categories = [(7, "Operarios"), (8, "Ventas"), (9, "Admin")]
        employees = [(1, 7), (2, 7), (3, 8)]
        salaries = [
            (1, date(2025, 1, 1), Decimal("1000"), Decimal("250")),
            (1, date(2025, 6, 1), Decimal("1200"), Decimal("300")),
            (2, date(2025, 3, 1), 800, 200),
        ]
        pool = employee_salary_pool(categories, employees, salaries)
        assert [(e.key, e.name, e.amount) for e in pool] == [
            (7, "Operarios", 2500.0),
            (8, "Ventas", 0.0),
        ]

    def test_sums_by_product(self):
        rows = [(1, Decimal("30")), (2, None), ("1", 5)]
        assert sums_by_product(rows) == {1: 35.0, 2: 0.0}


class TestSalesMonthClause:

    def test_clause_covers_all_three_month_sources(self):
        start, end = parse_month("2025-08")
        sql = str(sales_in_month_clause("2025-08", start, end))
        assert "monthly_sales.fecha_imputacion" in sql
        assert "monthly_sales.month_year" in sql
        assert "monthly_sales.created_at" in sql
        assert " OR " in sql


# ===========================================================================
# Loader (scripted session)
# ===========================================================================

class _Result:
    def __init__(self, rows):
        self._rows = rows

    def all(self):
        return list(self._rows)

    def scalars(self):
        return self


class _ScriptedSession:
    """Returns the queued result lists in order, one per execute() call."""

    def __init__(self, *results):
        self._results = list(results)
        self.calls = 0

    async def execute(self, stmt):
        self.calls += 1
        return _Result(self._results.pop(0) if self._results else [])


class _FailingSession:
    async def execute(self, stmt):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def _recipe(id, product_id, output_quantity):
    return SimpleNamespace(
        id=id, product_id=product_id, name=f"Recipe {id}", output_quantity=Decimal(output_quantity),
        output_unit_label=None, intermediate_quantity=None, intermediate_unit_label=None,
        units_per_item=None, base_type=None,
    )


class TestSqlSnapshotLoader:

    def test_empty_company_loads_empty_snapshot(self):
        snapshot = asyncio.run(SqlSnapshotLoader(_ScriptedSession()).load(1, "2025-08", "sales"))
        assert snapshot.products == ()
        assert snapshot.indirect_pool == ()
        assert snapshot.employee_pool == ()
        assert snapshot.volumes == {}
        assert snapshot.total_recipes == 0

    def test_rows_reduced_into_snapshot(self):
        session = _ScriptedSession(
            # products
            [(1, "Bloque A", None, "BA-1", 10, Decimal("50"), Decimal("20"), Decimal("100"), "Bloques"),
             (2, "Suelto", None, None, None, None, None, None, None)],
            # recipes: second active recipe for product 1 is ignored
            [_recipe(100, 1, "2"), _recipe(101, 1, "5")],
            # recipe items
            [(100, 11, Decimal("2"), "kg", "Cemento")],
            # supply prices
            [(11, date(2025, 7, 1), Decimal("5"))],
            # indirect records
            [("Electricidad", Decimal("1000"))],
            # distribution config
            [("Electricidad", 10, Decimal("100"))],
            # employee categories
            [(7, "Operarios")],
            # employees
            [(1, 7)],
            # salaries
            [(1, date(2025, 1, 1), Decimal("2000"), Decimal("500"))],
            # employee distribution rules
            [(7, "Operarios", 10, Decimal("100"))],
            # sales: product, quantity, avg price
            [(1, Decimal("30"), Decimal("48.5"))],
        )
        snapshot = asyncio.run(SqlSnapshotLoader(session).load(1, "2025-08", "sales"))

        assert [p.id for p in snapshot.products] == [1, 2]
        loose = snapshot.products[1]
        assert loose.category_name == "Uncategorized"
        assert loose.sku == ""
        assert loose.unit_cost == 0.0
        assert snapshot.total_recipes == 2
        assert snapshot.recipes_by_product[1].id == 100
        assert snapshot.recipes_by_product[1].output_quantity == 2.0
        assert snapshot.recipe_items[100][0].supply_name == "Cemento"
        assert snapshot.supply_prices == {11: 5.0}
        assert snapshot.indirect_pool[0].amount == 1000.0
        assert snapshot.indirect_rules[0].percentage == 100.0
        assert snapshot.employee_pool[0].amount == 2500.0
        assert snapshot.employee_rules[0].pool_key == 7
        assert snapshot.volumes == {1: 30.0}
        assert snapshot.average_sale_prices == {1: 48.5}
        assert session.calls == 11

    def test_database_error_wrapped(self):
        with pytest.raises(SnapshotLoadError) as exc_info:
            asyncio.run(SqlSnapshotLoader(_FailingSession()).load(1, "2025-08", "sales"))
        assert exc_info.value.status_code == 500
        assert "connection refused" in exc_info.value.details
