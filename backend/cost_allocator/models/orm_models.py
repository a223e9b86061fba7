"""ORM Models for the cost allocator — SQLAlchemy 2.0

Read-only mapping of the ERP tables the pricing calculator consumes.
The ERP owns these rows; this service never writes them.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from cost_allocator.db import Base


# ── COMPANIES (tenants) ──────────────────────────────────────────────────────
class Company(Base):
    __tablename__ = "companies"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── CATALOG ──────────────────────────────────────────────────────────────────
class ProductCategory(Base):
    __tablename__ = "product_categories"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    products: Mapped[list["Product"]] = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("product_categories.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), default=0)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), default=0)
    stock_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    category: Mapped[Optional["ProductCategory"]] = relationship("ProductCategory", back_populates="products")


# ── SUPPLIES & RECIPES (BOM) ─────────────────────────────────────────────────
class Supply(Base):
    __tablename__ = "supplies"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_measure: Mapped[Optional[str]] = mapped_column(String(50))


class SupplyMonthlyPrice(Base):
    __tablename__ = "supply_monthly_prices"
    __table_args__ = (Index("ix_supply_prices_company_supply_month", "company_id", "supply_id", "month_year"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"))
    supply_id: Mapped[int] = mapped_column(Integer, ForeignKey("supplies.id"))
    # First day of the month the price applies to
    month_year: Mapped[date] = mapped_column(Date, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)


class Recipe(Base):
    __tablename__ = "recipes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    product_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("products.id"))
    subcategory_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_type: Mapped[Optional[str]] = mapped_column(String(50))
    output_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), default=1)
    output_unit_label: Mapped[Optional[str]] = mapped_column(String(50))
    intermediate_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4))
    intermediate_unit_label: Mapped[Optional[str]] = mapped_column(String(50))
    units_per_item: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    items: Mapped[list["RecipeItem"]] = relationship("RecipeItem", back_populates="recipe")


class RecipeItem(Base):
    __tablename__ = "recipe_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"))
    recipe_id: Mapped[int] = mapped_column(Integer, ForeignKey("recipes.id"), index=True)
    supply_id: Mapped[int] = mapped_column(Integer, ForeignKey("supplies.id"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    unit_measure: Mapped[Optional[str]] = mapped_column(String(50))
    is_bank_ingredient: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)
    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="items")


# ── INDIRECT COSTS ───────────────────────────────────────────────────────────
class IndirectCostBase(Base):
    __tablename__ = "indirect_cost_base"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class IndirectCostMonthlyRecord(Base):
    __tablename__ = "indirect_cost_monthly_records"
    __table_args__ = (Index("ix_indirect_records_company_month", "company_id", "fecha_imputacion"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"))
    cost_base_id: Mapped[int] = mapped_column(Integer, ForeignKey("indirect_cost_base.id"))
    # "YYYY-MM"
    imputation_month: Mapped[str] = mapped_column("fecha_imputacion", String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)


class CostDistributionConfig(Base):
    __tablename__ = "cost_distribution_config"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    product_category_id: Mapped[int] = mapped_column(Integer, ForeignKey("product_categories.id"))
    cost_name: Mapped[str] = mapped_column(String(255), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# ── EMPLOYEE COSTS ───────────────────────────────────────────────────────────
class EmployeeCategory(Base):
    __tablename__ = "employee_categories"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Employee(Base):
    __tablename__ = "employees"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("employee_categories.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class EmployeeSalaryHistory(Base):
    __tablename__ = "employee_salary_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("employees.id"), index=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    payroll_taxes: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)


class EmployeeCostDistribution(Base):
    __tablename__ = "employee_cost_distribution"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"), index=True)
    employee_category_id: Mapped[int] = mapped_column(Integer, ForeignKey("employee_categories.id"))
    product_category_id: Mapped[int] = mapped_column(Integer, ForeignKey("product_categories.id"))
    percentage: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# ── VOLUME SIGNALS ───────────────────────────────────────────────────────────
class MonthlySale(Base):
    __tablename__ = "monthly_sales"
    __table_args__ = (Index("ix_monthly_sales_company_product", "company_id", "product_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"))
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"))
    quantity_sold: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4))
    # Month resolution order: imputation month, then month_year, then created_at
    imputation_month: Mapped[Optional[str]] = mapped_column("fecha_imputacion", String(7))
    month_year: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), server_default=func.now())


class MonthlyProduction(Base):
    __tablename__ = "monthly_production"
    __table_args__ = (Index("ix_monthly_production_company_month", "company_id", "production_month"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("companies.id"))
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"))
    # "YYYY-MM"
    production_month: Mapped[str] = mapped_column(String(7), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)
