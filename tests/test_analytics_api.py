"""
tests/test_analytics_api.py
HTTP surface for usage analytics, percentiles, custom metrics and cleanup.
"""

from datetime import timedelta

from conftest import add_log, add_metric
from perfmon.models.usage_log import APIUsageLog, utcnow

TENANT = {"X-Tenant-ID": "acme"}


def _iso_window(window):
    start, end = window
    return {"start_date": start.isoformat(), "end_date": end.isoformat()}


def test_root_and_health(client):
    assert client.get("/").json()["name"] == "Perfmon API"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["scheduler"]["running"] is False


def test_api_usage(client, db, window):
    for ms in (100, 200, 300):
        add_log(db, response_time_ms=ms, status_code=200)
    add_log(db, response_time_ms=400, status_code=404, endpoint="/api/missing")

    r = client.get("/api/analytics/api-usage", params=_iso_window(window), headers=TENANT)

    assert r.status_code == 200
    data = r.json()
    assert data["total_requests"] == 4
    assert data["average_response_time"] == 250
    assert data["error_rate"] == 25
    assert data["status_code_distribution"] == {"200": 3, "404": 1}
    assert data["top_endpoints"][0] == {
        "endpoint": "/api/invoices", "method": "GET", "count": 3, "average_response_time": 200,
    }


def test_api_usage_company_filter(client, db, window):
    add_log(db, company_id="north")
    add_log(db, company_id="south")
    params = {**_iso_window(window), "company_id": "north"}
    r = client.get("/api/analytics/api-usage", params=params, headers=TENANT)
    assert r.json()["total_requests"] == 1


def test_api_usage_defaults_to_recent_window(client, db):
    add_log(db)
    add_log(db, timestamp=utcnow() - timedelta(days=20))
    r = client.get("/api/analytics/api-usage", headers=TENANT)
    assert r.json()["total_requests"] == 1


def test_api_usage_requires_tenant(client):
    r = client.get("/api/analytics/api-usage")
    assert r.status_code == 400


def test_api_usage_rejects_bad_dates(client):
    r = client.get("/api/analytics/api-usage", params={"start_date": "yesterday"}, headers=TENANT)
    assert r.status_code == 422


def test_performance(client, db, window):
    for ms in (100, 200, 300, 400, 500):
        add_log(db, response_time_ms=ms)

    r = client.get("/api/analytics/performance", params=_iso_window(window), headers=TENANT)

    assert r.status_code == 200
    assert r.json() == {
        "p50": 300, "p95": 500, "p99": 500,
        "max_response_time": 500, "min_response_time": 100,
        "total_errors": 0, "total_requests": 5,
    }


def test_record_and_read_custom_metric(client):
    r = client.post(
        "/api/analytics/metrics",
        json={"name": "queue_depth", "value": 17, "unit": "count", "tags": {"region": "us"}},
        headers=TENANT,
    )
    assert r.status_code == 201

    r = client.get("/api/analytics/metrics/queue_depth", headers=TENANT)
    assert r.status_code == 200
    points = r.json()
    assert len(points) == 1
    assert points[0]["value"] == 17
    assert points[0]["unit"] == "count"
    assert points[0]["tags"] == {"region": "us"}


def test_custom_metrics_are_tenant_scoped(client, db):
    add_metric(db, tenant_id="globex")
    r = client.get("/api/analytics/metrics/queue_depth", headers=TENANT)
    assert r.json() == []


def test_cleanup_not_exposed_over_http(client, db):
    add_log(db, tenant_id="globex", timestamp=utcnow() - timedelta(days=2))
    add_log(db, tenant_id="initech", timestamp=utcnow() - timedelta(days=2))

    r = client.post("/api/analytics/cleanup", params={"retention_days": 1})

    assert r.status_code == 404
    db.expire_all()
    assert db.query(APIUsageLog).count() == 2


def test_aware_window_is_converted_to_utc(client, db):
    ts = utcnow().replace(microsecond=0) - timedelta(hours=3)
    add_log(db, timestamp=ts)
    # ts expressed as UTC+02:00 wall-clock time
    local = (ts + timedelta(hours=2)).isoformat() + "+02:00"

    r = client.get(
        "/api/analytics/api-usage",
        params={"start_date": local, "end_date": local},
        headers=TENANT,
    )
    assert r.json()["total_requests"] == 1

    # Same wall-clock time read as UTC misses the row
    r = client.get(
        "/api/analytics/api-usage",
        params={"start_date": local[:-6], "end_date": local[:-6]},
        headers=TENANT,
    )
    assert r.json()["total_requests"] == 0
