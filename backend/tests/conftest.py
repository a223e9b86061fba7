"""
conftest.py — Shared pytest fixtures for the cost allocator test suite.

No database fixtures are defined here. Engine tests run against in-memory
CostingSnapshot objects; route tests override the snapshot loader
dependency with a fake that returns one of those snapshots.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``cost_allocator.*`` imports resolve correctly regardless of where pytest
    is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def materials_engine():
    from cost_allocator.services.materials_engine import MaterialsEngine
    return MaterialsEngine()


@pytest.fixture
def allocation_engine():
    from cost_allocator.services.allocation_engine import AllocationEngine
    return AllocationEngine()


@pytest.fixture
def pricing_engine():
    """PricingEngine with its own tracker so tests never share counters."""
    from cost_allocator.services.perf_monitor import PerformanceTracker
    from cost_allocator.services.pricing_engine import PricingEngine
    return PricingEngine(tracker=PerformanceTracker())


# ---------------------------------------------------------------------------
# Shared catalog data
# ---------------------------------------------------------------------------

BLOQUES = 10
VIGUETAS = 20
ADOQUINES = 30


@pytest.fixture
def catalog():
    """
    Five products across three categories:

      Bloques   (10): A id=1, B id=2
      Viguetas  (20): C id=3, D id=4
      Adoquines (30): E id=5   — no distribution rules target this category
    """
    from cost_allocator.models.costing_snapshot import ProductRow
    return (
        ProductRow(id=1, name="Bloque A", category_id=BLOQUES, category_name="Bloques",
                   unit_price=50.0, unit_cost=20.0, stock_quantity=100.0),
        ProductRow(id=2, name="Bloque B", category_id=BLOQUES, category_name="Bloques",
                   unit_price=60.0, unit_cost=25.0),
        ProductRow(id=3, name="Vigueta 3m", category_id=VIGUETAS, category_name="Viguetas",
                   unit_cost=40.0),
        ProductRow(id=4, name="Vigueta 4m", category_id=VIGUETAS, category_name="Viguetas",
                   unit_cost=55.0),
        ProductRow(id=5, name="Adoquin", category_id=ADOQUINES, category_name="Adoquines",
                   unit_cost=7.5),
    )


@pytest.fixture
def make_snapshot(catalog):
    """
    Factory for CostingSnapshot with sensible defaults:

      Indirect pool: "Electricidad" 1000 → 100 % Bloques
                     "Alquiler"     2000 → 50 % Viguetas
      Employee pool: Operarios (id 7) 3000 → 100 % Bloques
      Recipe 100 for product 1: 2 × supply 11 @ 5.0 + 4 × supply 12 @ 2.5, yields 2
    """
    from cost_allocator.models.costing_snapshot import (
        CostingSnapshot,
        DistributionRule,
        PoolEntry,
        RecipeItemRow,
        RecipeRow,
    )

    def _make(**overrides):
        values = dict(
            company_id=1,
            production_month="2025-08",
            distribution_method="sales",
            products=catalog,
            recipes_by_product={
                1: RecipeRow(id=100, product_id=1, name="Bloque A std", output_quantity=2.0),
            },
            recipe_items={
                100: (
                    RecipeItemRow(recipe_id=100, supply_id=11, quantity=2.0,
                                  supply_name="Cemento", unit_measure="kg"),
                    RecipeItemRow(recipe_id=100, supply_id=12, quantity=4.0,
                                  supply_name="Arena", unit_measure="kg"),
                ),
            },
            supply_prices={11: 5.0, 12: 2.5},
            indirect_pool=(
                PoolEntry(key="Electricidad", name="Electricidad", amount=1000.0),
                PoolEntry(key="Alquiler", name="Alquiler", amount=2000.0),
            ),
            indirect_rules=(
                DistributionRule(pool_key="Electricidad", pool_name="Electricidad",
                                 product_category_id=BLOQUES, percentage=100.0),
                DistributionRule(pool_key="Alquiler", pool_name="Alquiler",
                                 product_category_id=VIGUETAS, percentage=50.0),
            ),
            employee_pool=(PoolEntry(key=7, name="Operarios", amount=3000.0),),
            employee_rules=(
                DistributionRule(pool_key=7, pool_name="Operarios",
                                 product_category_id=BLOQUES, percentage=100.0),
            ),
            volumes={1: 30.0, 2: 70.0, 3: 10.0, 4: 10.0},
            average_sale_prices={1: 48.5},
            total_recipes=1,
        )
        values.update(overrides)
        return CostingSnapshot(**values)

    return _make
