"""
Performance Analytics API
─────────────────────────
Endpoints (all scoped by the X-Tenant-ID header):
  GET  /api/analytics/api-usage              Usage analytics for a window
  GET  /api/analytics/performance            Latency percentiles for a window
  GET  /api/analytics/metrics/{metric_name}  Custom metric time series
  POST /api/analytics/metrics                Record a custom metric sample
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from perfmon.core.config import settings
from perfmon.core.database import get_db
from perfmon.core.tenancy import get_tenant_id
from perfmon.models.usage_log import utcnow
from perfmon.schemas.performance import (
    CustomMetricCreate,
    CustomMetricPoint,
    PerformanceSummary,
    UsageAnalytics,
)
from perfmon.services.performance import (
    get_custom_metrics,
    get_performance_metrics,
    get_usage_analytics,
    record_metric,
)

logger = logging.getLogger("perfmon.api.analytics")
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _window(start_date: Optional[datetime], end_date: Optional[datetime]) -> Tuple[datetime, datetime]:
    end = end_date or utcnow()
    start = start_date or end - timedelta(days=settings.analytics_default_days)
    return start, end


# ── Usage ─────────────────────────────────────────────────────────

@router.get("/api-usage", response_model=UsageAnalytics)
def api_usage(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    company_id: Optional[str] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Request volume, error rate, top endpoints, status codes and hourly load."""
    start, end = _window(start_date, end_date)
    try:
        return get_usage_analytics(db, tenant_id, start, end, company_id)
    except Exception as e:
        logger.error("API usage analytics error for tenant %s: %s", tenant_id, e)
        raise HTTPException(status_code=500, detail=str(e))


# ── Percentiles ───────────────────────────────────────────────────

@router.get("/performance", response_model=PerformanceSummary)
def performance(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    company_id: Optional[str] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """p50 / p95 / p99 latency, min / max and error count."""
    start, end = _window(start_date, end_date)
    try:
        return get_performance_metrics(db, tenant_id, start, end, company_id)
    except Exception as e:
        logger.error("Performance metrics error for tenant %s: %s", tenant_id, e)
        raise HTTPException(status_code=500, detail=str(e))


# ── Custom metrics ────────────────────────────────────────────────

@router.get("/metrics/{metric_name}", response_model=List[CustomMetricPoint])
def custom_metrics(
    metric_name: str,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Raw samples for one custom metric, oldest first."""
    start, end = _window(start_date, end_date)
    try:
        return get_custom_metrics(db, tenant_id, metric_name, start, end)
    except Exception as e:
        logger.error("Custom metrics error for %s/%s: %s", tenant_id, metric_name, e)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/metrics", status_code=201)
def create_custom_metric(
    body: CustomMetricCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Record a custom metric sample (best effort)."""
    record_metric(db, tenant_id, body.name, body.value, body.unit, body.tags)
    return {"success": True}
