# crm_enrichment/routes/health.py
"""
Health check endpoints with database pool and provider configuration.
"""

import time

from fastapi import APIRouter

from crm_enrichment.config import settings
from crm_enrichment.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "crm-enrichment"}


@router.get("/readyz")
async def readyz():
    """Readiness check: database pool plus required configuration."""
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            checks["database"].update(db_health["pool_stats"])
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Configuration
    config_issues = []
    if not settings.APOLLO_API_KEY:
        config_issues.append("APOLLO_API_KEY not set")
    if not settings.OPENAI_API_KEY:
        # Reindexing is optional; report without failing readiness
        checks["search_index"] = {"ok": False, "issues": ["OPENAI_API_KEY not set"]}

    config_ok = not config_issues
    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
