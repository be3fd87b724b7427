"""
Health endpoints.

Lightweight liveness/readiness probes that expose no secrets.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from dailyloop.core.database import get_engine
from dailyloop.core.errors import ConfigurationError

logger = logging.getLogger("dailyloop")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["profiles", "habits", "daily_logs"]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")

        inspector = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
        if missing:
            detail = f"missing tables: {', '.join(missing)}"
            logger.warning(f"[readyz] {detail}")
            return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

        return {"status": "ok"}
    except ConfigurationError as e:
        logger.error(f"[readyz] {e.message}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database not configured"})
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
