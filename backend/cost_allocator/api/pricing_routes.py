"""
Pricing calculator routes.

Computes per-product unit costs (materials + allocated indirect + allocated
payroll) and suggested prices for one company and month. Read-only: the
endpoint never writes to the ERP tables it reads.
"""
import logging
import time
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from cost_allocator.db import get_db
from cost_allocator.services import settings
from cost_allocator.services.errors import CostAllocatorError, ParameterValidationError
from cost_allocator.services.logging_config import run_logger
from cost_allocator.services.perf_monitor import tracker as perf_tracker
from cost_allocator.services.pricing_engine import PricingEngine
from cost_allocator.services.snapshot_loader import SqlSnapshotLoader, parse_month

router = APIRouter(prefix="/api/v1/pricing", tags=["Pricing Calculator"])
# Path used by the existing costing screens
legacy_router = APIRouter(tags=["Pricing Calculator"])
logger = logging.getLogger("cost-allocator-api.pricing")


def get_snapshot_loader(db: AsyncSession = Depends(get_db)) -> SqlSnapshotLoader:
    return SqlSnapshotLoader(db)


def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    if status_code >= 500 and settings.is_production():
        details = None
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


async def cost_allocator_error_handler(request: Request, exc: CostAllocatorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.message}: {exc.details}")
        details = f"{exc.message}: {exc.details}" if exc.details else exc.message
        return error_response(exc.status_code, "Internal server error", details)
    return error_response(exc.status_code, exc.message, exc.details)


def validate_params(
    company_id: Optional[str],
    production_month: Optional[str],
    distribution_method: Optional[str],
) -> tuple[int, str, str]:
    """Check query parameters before any lookup runs. Raises ParameterValidationError."""
    if company_id is None or not company_id.strip():
        raise ParameterValidationError("companyId is required")
    try:
        company = int(company_id)
    except ValueError:
        raise ParameterValidationError("companyId must be an integer", details=company_id)

    month = production_month or settings.DEFAULT_PRODUCTION_MONTH
    try:
        parse_month(month)
    except ValueError as e:
        raise ParameterValidationError("productionMonth must be YYYY-MM", details=str(e))

    method = (distribution_method or settings.DEFAULT_DISTRIBUTION_METHOD).lower()
    if method not in settings.DISTRIBUTION_METHODS:
        raise ParameterValidationError(
            "distributionMethod must be 'sales' or 'production'", details=distribution_method
        )
    return company, month, method


@router.get("/calculator")
async def pricing_calculator(
    request: Request,
    company_id: Optional[str] = Query(None, alias="companyId"),
    production_month: Optional[str] = Query(None, alias="productionMonth"),
    distribution_method: Optional[str] = Query(None, alias="distributionMethod"),
    loader: SqlSnapshotLoader = Depends(get_snapshot_loader),
):
    """
    Per-product cost report for one company and month.

    Query params:
        companyId           required integer
        productionMonth     YYYY-MM (default from DEFAULT_PRODUCTION_MONTH)
        distributionMethod  "sales" | "production" (default "sales")

    Returns {"productPrices": [...], "debug_info": {...}}.
    """
    company, month, method = validate_params(company_id, production_month, distribution_method)

    run_log = run_logger(logger, company, month, method)
    request_id = getattr(request.state, "request_id", None)
    start = time.perf_counter()
    try:
        snapshot = await loader.load(company, month, method)
        engine = PricingEngine(logger=run_log, tracker=perf_tracker)
        run = engine.build_report(snapshot)
    except CostAllocatorError:
        perf_tracker.record_run_failed()
        raise
    except Exception as e:
        perf_tracker.record_run_failed()
        run_log.exception("Pricing calculator failed", extra={"request_id": request_id})
        return error_response(500, "Internal server error", str(e))

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    perf_tracker.record_run_complete(duration_ms)
    run_log.info(
        f"Pricing calculator served {run.debug_info.total_products} products",
        extra={"request_id": request_id, "duration_ms": duration_ms},
    )
    return JSONResponse(content=run.to_response().model_dump(mode="json", by_alias=True))


legacy_router.add_api_route("/api/calculadora-precios-simple", pricing_calculator, methods=["GET"])
