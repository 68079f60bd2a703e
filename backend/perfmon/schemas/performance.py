"""Pydantic schemas for request-performance analytics."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ── Usage analytics ──────────────────────────────────────────────────────

class EndpointUsage(BaseModel):
    endpoint: str
    method: str
    count: int
    average_response_time: float


class HourlyUsage(BaseModel):
    hour: int = Field(..., ge=0, le=23)  # UTC
    count: int
    average_response_time: float


class UsageAnalytics(BaseModel):
    total_requests: int = 0
    average_response_time: float = 0
    error_rate: float = 0  # percentage of 4xx/5xx
    top_endpoints: list[EndpointUsage] = []
    status_code_distribution: dict[int, int] = {}
    hourly_distribution: list[HourlyUsage] = []


# ── Latency percentiles ──────────────────────────────────────────────────

class PerformanceSummary(BaseModel):
    p50: float = 0
    p95: float = 0
    p99: float = 0
    max_response_time: float = 0
    min_response_time: float = 0
    total_errors: int = 0
    total_requests: int = 0


# ── Custom metrics ───────────────────────────────────────────────────────

class CustomMetricCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    value: float
    unit: str = Field(..., min_length=1, max_length=30)
    tags: Optional[dict[str, Any]] = None


class CustomMetricPoint(BaseModel):
    timestamp: datetime
    value: float
    unit: str
    tags: Optional[dict[str, Any]] = None


# ── Retention ────────────────────────────────────────────────────────────

class CleanupResult(BaseModel):
    cutoff: datetime
    usage_logs_deleted: int
    metrics_deleted: int
