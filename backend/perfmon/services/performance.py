"""
Request performance monitoring service.

Provides:
  1. Best-effort ingestion of per-request usage logs and custom metrics
  2. Usage analytics (error rate, top endpoints, status codes, hourly load)
  3. Nearest-rank latency percentiles (p50 / p95 / p99)
  4. Custom metric time series
  5. Age-based retention cleanup across both tables

All timestamps are naive UTC; hour-of-day buckets are UTC hours.
"""

from __future__ import annotations

import json
import logging
import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func as sqlfunc, desc
from sqlalchemy.orm import Session

from perfmon.models.usage_log import APIUsageLog, PerformanceMetric, utcnow
from perfmon.schemas.performance import (
    CleanupResult,
    CustomMetricPoint,
    EndpointUsage,
    HourlyUsage,
    PerformanceSummary,
    UsageAnalytics,
)

logger = logging.getLogger("perfmon.performance")
usage_logger = logging.getLogger("perfmon.usage")

TOP_ENDPOINTS_LIMIT = 10
ERROR_STATUS_THRESHOLD = 400


@dataclass
class RequestMetrics:
    """Measurements captured around one request/response cycle."""
    response_time_ms: float
    status_code: int
    endpoint: str
    method: str
    request_size: Optional[int] = None
    response_size: Optional[int] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════
#  HELPERS
# ═══════════════════════════════════════════════════════════════════

def _to_utc_naive(ts: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _usage_filters(
    tenant_id: str,
    start: datetime,
    end: datetime,
    company_id: Optional[str] = None,
) -> list:
    filters = [
        APIUsageLog.tenant_id == tenant_id,
        APIUsageLog.timestamp >= _to_utc_naive(start),
        APIUsageLog.timestamp <= _to_utc_naive(end),
    ]
    if company_id:
        filters.append(APIUsageLog.company_id == company_id)
    return filters


def _count_errors(db: Session, filters: list) -> int:
    return db.query(sqlfunc.count(APIUsageLog.id)).filter(
        *filters,
        APIUsageLog.status_code >= ERROR_STATUS_THRESHOLD,
    ).scalar() or 0


def nearest_rank(sorted_values: Sequence[float], q: float) -> float:
    """
    Nearest-rank percentile: element at index floor(n * q), clamped to
    [0, n - 1]. No interpolation between adjacent ranks.

    Returns 0 for an empty sequence.
    """
    n = len(sorted_values)
    if n == 0:
        return 0
    idx = min(max(math.floor(n * q), 0), n - 1)
    return sorted_values[idx]


def _hour_of_day(ts: datetime) -> int:
    return _to_utc_naive(ts).hour


# ═══════════════════════════════════════════════════════════════════
#  1. INGESTION
# ═══════════════════════════════════════════════════════════════════

def log_usage(
    db: Session,
    tenant_id: str,
    metrics: RequestMetrics,
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
    api_key_id: Optional[str] = None,
) -> None:
    """
    Append one usage log row. Never raises: storage errors are logged
    and swallowed so monitoring cannot break the request it measures.
    """
    try:
        db.add(APIUsageLog(
            tenant_id=tenant_id,
            company_id=company_id,
            user_id=user_id,
            api_key_id=api_key_id,
            endpoint=metrics.endpoint[:300],
            method=metrics.method,
            status_code=metrics.status_code,
            response_time_ms=metrics.response_time_ms,
            request_size=metrics.request_size,
            response_size=metrics.response_size,
            user_agent=metrics.user_agent[:500] if metrics.user_agent else None,
            ip_address=metrics.ip_address,
        ))
        db.commit()
    except Exception as exc:
        db.rollback()
        usage_logger.warning("Failed to log API usage for tenant %s: %s", tenant_id, exc)


def record_metric(
    db: Session,
    tenant_id: str,
    name: str,
    value: float,
    unit: str,
    tags: Optional[Dict[str, Any]] = None,
) -> None:
    """Append one custom metric sample. Same best-effort contract as log_usage."""
    try:
        db.add(PerformanceMetric(
            tenant_id=tenant_id,
            metric_name=name,
            metric_value=value,
            metric_unit=unit,
            tags=json.dumps(tags) if tags is not None else None,
        ))
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("Failed to record metric %s for tenant %s: %s", name, tenant_id, exc)


# ═══════════════════════════════════════════════════════════════════
#  2. USAGE ANALYTICS
# ═══════════════════════════════════════════════════════════════════

def get_usage_analytics(
    db: Session,
    tenant_id: str,
    start: datetime,
    end: datetime,
    company_id: Optional[str] = None,
) -> UsageAnalytics:
    """
    Aggregate usage over the inclusive window [start, end].

    Top endpoints are ordered by request count descending; ties are broken
    by endpoint then method, ascending. The hourly distribution is folded
    in memory over every matching row, so very large windows cost memory
    proportional to the row count.
    """
    filters = _usage_filters(tenant_id, start, end, company_id)

    total = db.query(sqlfunc.count(APIUsageLog.id)).filter(*filters).scalar() or 0
    avg_ms = db.query(sqlfunc.avg(APIUsageLog.response_time_ms)).filter(*filters).scalar()
    error_count = _count_errors(db, filters)

    # Top endpoints
    top_rows = (
        db.query(
            APIUsageLog.endpoint,
            APIUsageLog.method,
            sqlfunc.count(APIUsageLog.id).label("cnt"),
            sqlfunc.avg(APIUsageLog.response_time_ms).label("avg_ms"),
        )
        .filter(*filters)
        .group_by(APIUsageLog.endpoint, APIUsageLog.method)
        .order_by(desc("cnt"), APIUsageLog.endpoint, APIUsageLog.method)
        .limit(TOP_ENDPOINTS_LIMIT)
        .all()
    )
    top_endpoints = [
        EndpointUsage(
            endpoint=ep, method=method,
            count=cnt, average_response_time=float(ep_avg or 0),
        )
        for ep, method, cnt, ep_avg in top_rows
    ]

    # Status codes present in the window
    status_rows = (
        db.query(APIUsageLog.status_code, sqlfunc.count(APIUsageLog.id))
        .filter(*filters)
        .group_by(APIUsageLog.status_code)
        .all()
    )
    status_code_distribution = {code: cnt for code, cnt in status_rows}

    # Hour-of-day needs the raw timestamps
    rows = (
        db.query(APIUsageLog.timestamp, APIUsageLog.response_time_ms)
        .filter(*filters)
        .all()
    )
    buckets: Dict[int, List[float]] = defaultdict(lambda: [0, 0.0])
    for ts, response_time in rows:
        bucket = buckets[_hour_of_day(ts)]
        bucket[0] += 1
        bucket[1] += response_time
    hourly = [
        HourlyUsage(hour=hour, count=cnt, average_response_time=total_ms / cnt)
        for hour, (cnt, total_ms) in sorted(buckets.items())
    ]

    return UsageAnalytics(
        total_requests=total,
        average_response_time=float(avg_ms or 0),
        error_rate=(error_count * 100 / total) if total > 0 else 0,
        top_endpoints=top_endpoints,
        status_code_distribution=status_code_distribution,
        hourly_distribution=hourly,
    )


# ═══════════════════════════════════════════════════════════════════
#  3. LATENCY PERCENTILES
# ═══════════════════════════════════════════════════════════════════

def get_performance_metrics(
    db: Session,
    tenant_id: str,
    start: datetime,
    end: datetime,
    company_id: Optional[str] = None,
) -> PerformanceSummary:
    """p50/p95/p99, min/max latency and error count over [start, end]."""
    filters = _usage_filters(tenant_id, start, end, company_id)

    rows = (
        db.query(APIUsageLog.response_time_ms)
        .filter(*filters)
        .order_by(APIUsageLog.response_time_ms.asc())
        .all()
    )
    total = db.query(sqlfunc.count(APIUsageLog.id)).filter(*filters).scalar() or 0
    total_errors = _count_errors(db, filters)

    sorted_times = sorted(r[0] for r in rows)
    if not sorted_times:
        return PerformanceSummary(total_errors=total_errors, total_requests=total)

    return PerformanceSummary(
        p50=nearest_rank(sorted_times, 0.50),
        p95=nearest_rank(sorted_times, 0.95),
        p99=nearest_rank(sorted_times, 0.99),
        max_response_time=sorted_times[-1],
        min_response_time=sorted_times[0],
        total_errors=total_errors,
        total_requests=total,
    )


# ═══════════════════════════════════════════════════════════════════
#  4. CUSTOM METRICS
# ═══════════════════════════════════════════════════════════════════

def get_custom_metrics(
    db: Session,
    tenant_id: str,
    name: str,
    start: datetime,
    end: datetime,
) -> List[CustomMetricPoint]:
    """Raw time series for one metric, oldest first."""
    metrics = (
        db.query(PerformanceMetric)
        .filter(
            PerformanceMetric.tenant_id == tenant_id,
            PerformanceMetric.metric_name == name,
            PerformanceMetric.timestamp >= _to_utc_naive(start),
            PerformanceMetric.timestamp <= _to_utc_naive(end),
        )
        .order_by(PerformanceMetric.timestamp.asc(), PerformanceMetric.id.asc())
        .all()
    )
    return [
        CustomMetricPoint(
            timestamp=m.timestamp,
            value=float(m.metric_value),
            unit=m.metric_unit,
            tags=json.loads(m.tags) if m.tags is not None else None,
        )
        for m in metrics
    ]


# ═══════════════════════════════════════════════════════════════════
#  5. RETENTION
# ═══════════════════════════════════════════════════════════════════

def _delete_before(session_factory: Callable[[], Session], model, cutoff: datetime) -> int:
    db = session_factory()
    try:
        deleted = (
            db.query(model)
            .filter(model.timestamp < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def cleanup_old_records(
    retention_days: int = 30,
    session_factory: Optional[Callable[[], Session]] = None,
) -> CleanupResult:
    """
    Delete usage logs and custom metrics older than retention_days.

    Both tables are purged concurrently, each in its own session; the call
    returns once both deletions have committed. Errors propagate.
    """
    if session_factory is None:
        from perfmon.core.database import SessionLocal
        session_factory = SessionLocal

    cutoff = utcnow() - timedelta(days=retention_days)

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="retention") as pool:
        logs_future = pool.submit(_delete_before, session_factory, APIUsageLog, cutoff)
        metrics_future = pool.submit(_delete_before, session_factory, PerformanceMetric, cutoff)
        logs_deleted = logs_future.result()
        metrics_deleted = metrics_future.result()

    logger.info(
        "Retention cleanup (cutoff %s): %d usage logs, %d metrics deleted",
        cutoff.isoformat(), logs_deleted, metrics_deleted,
    )
    return CleanupResult(
        cutoff=cutoff,
        usage_logs_deleted=logs_deleted,
        metrics_deleted=metrics_deleted,
    )
