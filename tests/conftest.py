# tests/conftest.py
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from perfmon.core import database
from perfmon.core.config import settings
from perfmon.core.database import Base, get_db
from perfmon.models.usage_log import APIUsageLog, PerformanceMetric, utcnow


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads share the same database."""
    eng = create_engine(
        f"sqlite:///{tmp_path / 'perfmon_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    # Middleware, scheduler and cleanup open their own sessions
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory, monkeypatch):
    from perfmon.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "scheduler_enabled", False)
    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def window():
    """(start, end) covering yesterday 00:00 UTC up to now."""
    end = utcnow() + timedelta(minutes=1)
    start = (end - timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, end


def add_log(db, tenant_id="acme", response_time_ms=100.0, status_code=200,
            endpoint="/api/invoices", method="GET", timestamp=None, company_id=None):
    """Insert a usage row directly, optionally back-dated."""
    row = APIUsageLog(
        tenant_id=tenant_id,
        company_id=company_id,
        endpoint=endpoint,
        method=method,
        status_code=status_code,
        response_time_ms=response_time_ms,
    )
    if timestamp is not None:
        row.timestamp = timestamp
    db.add(row)
    db.commit()
    return row


def add_metric(db, tenant_id="acme", name="queue_depth", value=1.0, unit="count", timestamp=None):
    row = PerformanceMetric(tenant_id=tenant_id, metric_name=name, metric_value=value, metric_unit=unit)
    if timestamp is not None:
        row.timestamp = timestamp
    db.add(row)
    db.commit()
    return row
