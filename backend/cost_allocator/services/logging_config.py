"""Structured logging configuration for the cost allocator."""
import logging
import json
import sys
from datetime import datetime, timezone

# Context fields copied from LogRecord extras into the JSON line when present
CONTEXT_FIELDS = (
    "company_id",
    "production_month",
    "distribution_method",
    "category_id",
    "product_id",
    "stage",
    "request_id",
    "duration_ms",
    "http_method",
    "http_path",
    "http_status",
)


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        return json.dumps(log_entry, default=str)


class RunContextAdapter(logging.LoggerAdapter):
    """
    Binds a pricing run's (company, month, method) to every record.

    Call-site extras are merged over the bound context instead of replacing
    it, so engines can add stage/category fields freely.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def run_logger(
    logger: logging.Logger,
    company_id: int,
    production_month: str,
    distribution_method: str,
) -> RunContextAdapter:
    return RunContextAdapter(
        logger,
        {
            "company_id": company_id,
            "production_month": production_month,
            "distribution_method": distribution_method,
        },
    )


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Configure application logging."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        ))

    root.handlers = [handler]

    # Suppress noisy loggers
    for name in ["uvicorn.access", "sqlalchemy.engine", "httpx"]:
        logging.getLogger(name).setLevel(logging.WARNING)
