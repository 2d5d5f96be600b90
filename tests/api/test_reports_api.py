"""
Tests for the read-only reports API (/reports, /decisions).
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from warmspine.api import create_app
from warmspine.core.config.settings import WarmSettings
from warmspine.core.models import (
    CacheTelemetry,
    Category,
    CategoryStats,
    CutoverDecision,
    JobStatus,
    WarmingReport,
    utcnow,
)


def report(job_id: str, minutes_ago: int = 0) -> WarmingReport:
    completed = utcnow() - timedelta(minutes=minutes_ago)
    return WarmingReport(
        job_id=job_id,
        status=JobStatus.COMPLETED,
        started_at=completed - timedelta(seconds=2),
        completed_at=completed,
        batch_size=50,
        max_retries=3,
        categories=(CategoryStats(category=Category.CATALOG, attempted=5, succeeded=5),),
        telemetry=CacheTelemetry(total_keys=5, memory_used_bytes=512, fragmentation_ratio=1.0),
    )


@pytest.fixture
def client(repository):
    app = create_app(settings=WarmSettings(), repository=repository)
    with TestClient(app) as c:
        yield c


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "environment_id": "local"}

    def test_health_reports_configured_environment(self, repository):
        app = create_app(settings=WarmSettings(environment_id="green"), repository=repository)
        with TestClient(app) as c:
            assert c.get("/health").json()["environment_id"] == "green"


class TestReports:
    def test_list_paged(self, client, repository):
        for i in range(3):
            repository.save_report(report(f"job-{i}", minutes_ago=i))
        resp = client.get("/reports", params={"limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert [r["job_id"] for r in body["data"]] == ["job-0", "job-1"]
        assert body["page"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}
        assert body["data"][0]["outcome"] == "success"

    def test_list_empty(self, client):
        body = client.get("/reports").json()
        assert body["data"] == []
        assert body["page"]["has_more"] is False

    def test_latest(self, client, repository):
        repository.save_report(report("old", minutes_ago=5))
        repository.save_report(report("new"))
        body = client.get("/reports/latest").json()
        assert body["data"]["job_id"] == "new"
        assert body["data"]["categories"][0]["category"] == "catalog"

    def test_get(self, client, repository):
        repository.save_report(report("job-7"))
        assert client.get("/reports/job-7").json()["data"]["telemetry"]["total_keys"] == 5

    def test_not_found_is_problem_detail(self, client):
        resp = client.get("/reports/missing")
        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["status"] == 404
        assert body["title"] == "Warming report not found"
        assert body["instance"] == "/reports/missing"

    def test_limit_validation(self, client):
        assert client.get("/reports", params={"limit": 0}).status_code == 422


class TestDecisions:
    def test_get_and_latest(self, client, repository):
        repository.save_decision(
            CutoverDecision(job_id="a", passed=False, reasons=("x",), decided_at=utcnow() - timedelta(minutes=1))
        )
        repository.save_decision(CutoverDecision(job_id="b", passed=True))
        assert client.get("/decisions/a").json()["data"]["reasons"] == ["x"]
        assert client.get("/decisions/latest").json()["data"]["job_id"] == "b"

    def test_missing(self, client):
        resp = client.get("/decisions/latest")
        assert resp.status_code == 404
        assert resp.json()["title"] == "Cutover decision not found"
