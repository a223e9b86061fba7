"""
test_import_safety.py — Import and circular-import checks.

Verifies that every cost_allocator module imports cleanly without a
database connection (DATABASE_URL unset falls back to a placeholder URL and
no connection is opened at import time).

No database, network, or external services are required.
"""

import importlib
import pytest

MODULES = [
    "cost_allocator.services.settings",
    "cost_allocator.services.errors",
    "cost_allocator.services.logging_config",
    "cost_allocator.services.perf_monitor",
    "cost_allocator.services.middleware",
    "cost_allocator.services.materials_engine",
    "cost_allocator.services.allocation_engine",
    "cost_allocator.services.pricing_engine",
    "cost_allocator.services.snapshot_loader",
    "cost_allocator.models.costing_snapshot",
    "cost_allocator.models.report_models",
    "cost_allocator.models.orm_models",
    "cost_allocator.db",
    "cost_allocator.api.pricing_routes",
    "cost_allocator.main",
]


@pytest.mark.parametrize("module_name", MODULES)
def test_module_imports(module_name):
    assert importlib.import_module(module_name) is not None


def test_database_url_uses_async_driver():
    from cost_allocator.services import settings
    if settings.DATABASE_CONFIGURED and not settings.DATABASE_URL.startswith("postgres"):
        pytest.skip("non-PostgreSQL DATABASE_URL configured")
    assert settings.DATABASE_URL.startswith("postgresql+asyncpg://")


def test_orm_tables_registered():
    from cost_allocator.db import Base
    importlib.import_module("cost_allocator.models.orm_models")
    expected = {
        "products", "product_categories", "recipes", "recipe_items", "supply_monthly_prices",
        "indirect_cost_monthly_records", "cost_distribution_config", "employee_categories",
        "employees", "employee_salary_history", "employee_cost_distribution",
        "monthly_sales", "monthly_production",
    }
    assert expected <= set(Base.metadata.tables)
