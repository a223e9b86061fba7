"""
Response contract for the pricing calculator.

Every product row in /api/v1/pricing/calculator MUST serialize
ProductCostReport so the costing screens render without branching on
payload shape. Models are frozen: a report is built once from the engine
outputs and never patched afterwards.
"""
from typing import List, Optional
from pydantic import BaseModel, Field


class CostBreakdown(BaseModel):
    materials: float = 0.0
    indirect_costs: float = 0.0
    employee_costs: float = 0.0
    total: float = 0.0

    model_config = {"frozen": True}


class RecipeDetail(BaseModel):
    supply_id: int
    supply_name: str = ""
    quantity: float
    unit_measure: str = ""
    unit_price: float
    total_cost: float

    model_config = {"frozen": True}


class IndirectCostBreakdownItem(BaseModel):
    cost_name: str
    base_amount: float
    percentage: float
    assigned_amount: float

    model_config = {"frozen": True}


class EmployeeCostBreakdownItem(BaseModel):
    employee_category_name: str
    total_salary: float
    percentage: float
    assigned_amount: float

    model_config = {"frozen": True}


class ProductionInfo(BaseModel):
    source: str = "planned"         # sales_actual | production_actual | equal_split | planned
    actual_production: float = 0.0
    planned_production: float = 0.0
    production_month: Optional[str] = None
    batches_needed: float = 0.0
    materials_cost_per_batch: float = 0.0
    category_total_production: float = 0.0
    distribution_ratio: float = 0.0
    distribution_method: str = "sales"

    model_config = {"frozen": True}


class DistributionInfo(BaseModel):
    method: str = "sales"
    data_source: str = "sales"
    product_quantity: float = 0.0
    category_total_quantity: float = 0.0
    distribution_ratio: float = 0.0
    percentage_of_category: float = 0.0
    has_real_data: bool = False
    category_total_cost: float = 0.0
    product_total_cost: float = 0.0

    model_config = {"frozen": True}


class WarningItem(BaseModel):
    code: str
    stage: str
    message: str

    model_config = {"frozen": True}


class ProductCostReport(BaseModel):
    """One product's full cost picture for the requested month."""
    id: int
    product_name: str
    product_description: str = ""
    sku: str = ""
    category_name: str
    category_id: Optional[int] = None
    current_price: float = 0.0
    current_cost: float = 0.0
    stock_quantity: float = 0.0
    calculated_cost: float = 0.0
    calculated_price: float = 0.0      # calculated_cost × 1.3
    average_sale_price: float = 0.0
    recipe_id: Optional[int] = None
    recipe_name: Optional[str] = None
    output_quantity: float = 1.0
    output_unit_label: str = "units"
    intermediate_quantity: float = 1.0
    intermediate_unit_label: str = "sheets"
    units_per_item: float = 1.0
    base_type: str = "standard"
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    cost_breakdown_per_unit: CostBreakdown = Field(default_factory=CostBreakdown)
    recipe_details: List[RecipeDetail] = []
    indirect_costs_breakdown: List[IndirectCostBreakdownItem] = []
    employee_costs_breakdown: List[EmployeeCostBreakdownItem] = []
    total_products_in_category: int = 1
    total_production_in_category: float = 0.0
    production_info: ProductionInfo = Field(default_factory=ProductionInfo)
    distribution_info: DistributionInfo = Field(default_factory=DistributionInfo)
    warnings: List[WarningItem] = []

    model_config = {"frozen": True}


class DebugInfo(BaseModel):
    total_products: int = 0
    products_with_recipe: int = 0
    products_without_recipe: int = 0
    products_with_zero_cost: int = 0
    products_with_warnings: int = 0
    total_recipes: int = 0
    total_supplies: int = 0
    production_month: str = ""
    distribution_method: str = "sales"
    version: str = "batched-allocation"

    model_config = {"frozen": True}


class PricingCalculatorResponse(BaseModel):
    product_prices: List[ProductCostReport] = Field(default_factory=list, alias="productPrices")
    debug_info: DebugInfo = Field(default_factory=DebugInfo)

    model_config = {"frozen": True, "populate_by_name": True}
