"""
In-memory snapshot of everything one pricing run reads.

The loader fills a CostingSnapshot once per request (batch queries keyed into
dicts); the engines then compute over it without touching the database.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

UNCATEGORIZED_LABEL = "Uncategorized"


@dataclass(frozen=True)
class ProductRow:
    id: int
    name: str
    category_id: Optional[int]
    category_name: str = UNCATEGORIZED_LABEL
    description: str = ""
    sku: str = ""
    unit_price: float = 0.0
    unit_cost: float = 0.0
    stock_quantity: float = 0.0


@dataclass(frozen=True)
class RecipeRow:
    id: int
    product_id: int
    name: str
    output_quantity: float = 1.0
    output_unit_label: str = "units"
    intermediate_quantity: float = 1.0
    intermediate_unit_label: str = "sheets"
    units_per_item: float = 1.0
    base_type: str = "standard"


@dataclass(frozen=True)
class RecipeItemRow:
    recipe_id: int
    supply_id: int
    quantity: float
    supply_name: str = ""
    unit_measure: str = ""


@dataclass(frozen=True)
class PoolEntry:
    """A named monthly cost amount to be spread across product categories.

    ``key`` is the cost name for indirect pools and the employee category id
    for payroll pools; distribution rules reference entries by it.
    """
    key: Union[str, int]
    name: str
    amount: float


@dataclass(frozen=True)
class DistributionRule:
    pool_key: Union[str, int]
    pool_name: str
    product_category_id: int
    percentage: float               # 0–100


@dataclass(frozen=True)
class AllocationWarning:
    """Marks a value that was produced by a fallback instead of real data."""
    code: str                       # e.g. "equal_split_fallback", "no_recipe"
    stage: str                      # materials | indirect | employee | report
    message: str
    product_id: Optional[int] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "product_id": self.product_id,
        }


@dataclass(frozen=True)
class CostingSnapshot:
    company_id: int
    production_month: str           # "YYYY-MM"
    distribution_method: str        # "sales" | "production"
    products: Tuple[ProductRow, ...] = ()
    recipes_by_product: Dict[int, RecipeRow] = field(default_factory=dict)
    recipe_items: Dict[int, Tuple[RecipeItemRow, ...]] = field(default_factory=dict)
    supply_prices: Dict[int, float] = field(default_factory=dict)
    indirect_pool: Tuple[PoolEntry, ...] = ()
    indirect_rules: Tuple[DistributionRule, ...] = ()
    employee_pool: Tuple[PoolEntry, ...] = ()
    employee_rules: Tuple[DistributionRule, ...] = ()
    volumes: Dict[int, float] = field(default_factory=dict)
    average_sale_prices: Dict[int, float] = field(default_factory=dict)
    total_recipes: int = 0

    @property
    def data_source(self) -> str:
        return "production" if self.distribution_method == "production" else "sales"
