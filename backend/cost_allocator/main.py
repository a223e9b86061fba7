"""
Cost Allocator API
FastAPI backend over the ERP's PostgreSQL schema (async SQLAlchemy).
Serves the pricing calculator: materials costing plus indirect and payroll
cost allocation per product.
"""
import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from cost_allocator.services import settings
from cost_allocator.services.errors import CostAllocatorError
from cost_allocator.services.logging_config import setup_logging
from cost_allocator.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from cost_allocator.services.perf_monitor import tracker as perf_tracker
from cost_allocator.api.pricing_routes import (
    cost_allocator_error_handler,
    legacy_router as legacy_pricing_router,
    router as pricing_router,
)

setup_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = logging.getLogger("cost-allocator-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()

if not settings.DATABASE_CONFIGURED:
    logger.warning("MISSING env var: DATABASE_URL — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from cost_allocator.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning: {e}")
    yield
    from cost_allocator.db import engine
    await engine.dispose()


app = FastAPI(
    title="Cost Allocator API",
    version=settings.APP_VERSION,
    description="Product costing and shared-cost allocation for the ERP pricing calculator",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

app.add_exception_handler(CostAllocatorError, cost_allocator_error_handler)

app.include_router(pricing_router)
app.include_router(legacy_pricing_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": settings.APP_VERSION,
        "db_configured": settings.DATABASE_CONFIGURED,
    }


@app.get("/metrics")
async def metrics():
    """
    Pricing pipeline metrics from the in-process PerformanceTracker:
    run counts, average duration, per-stage timings and fallback counts.
    """
    snapshot = perf_tracker.get_metrics()
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **snapshot,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("cost_allocator.main:app", host="0.0.0.0", port=8000, reload=True)
