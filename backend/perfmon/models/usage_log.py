"""API usage log & custom metric models: append-only request telemetry."""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Index
from perfmon.core.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored instants are UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class APIUsageLog(Base):
    """One row per completed API request, scoped to a tenant."""
    __tablename__ = "api_usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    company_id = Column(String(64), nullable=True, index=True)
    user_id = Column(String(64), nullable=True)
    api_key_id = Column(String(64), nullable=True)
    endpoint = Column(String(300), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time_ms = Column(Float, nullable=False)
    request_size = Column(Integer, nullable=True)            # bytes
    response_size = Column(Integer, nullable=True)           # bytes
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_api_usage_logs_tenant_timestamp", "tenant_id", "timestamp"),
    )

    def __repr__(self):
        return f"<APIUsageLog({self.method} {self.endpoint} -> {self.status_code}, tenant={self.tenant_id})>"


class PerformanceMetric(Base):
    """Custom, caller-defined metric sample (e.g. queue depth, job duration)."""
    __tablename__ = "performance_metrics"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    metric_name = Column(String(100), nullable=False)
    metric_value = Column(Float, nullable=False)
    metric_unit = Column(String(30), nullable=False)
    tags = Column(Text, nullable=True)                       # JSON-encoded mapping
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_performance_metrics_tenant_name_timestamp", "tenant_id", "metric_name", "timestamp"),
    )

    def __repr__(self):
        return f"<PerformanceMetric({self.metric_name}={self.metric_value}{self.metric_unit}, tenant={self.tenant_id})>"
