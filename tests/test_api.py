from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest
from fastapi.testclient import TestClient

from vhi_usage.application import (
    BillingError,
    ScopeError,
    configure_billing_service,
    configure_usage_service,
    reset_services,
)
from vhi_usage.core.schema import CPUBillingInfo, CPUBillingResponse, CPUUsageStats
from vhi_usage.core.settings import Settings
from vhi_usage.domain import AggregationError, ClusterSnapshot

AUTH = {"Authorization": "Bearer s3cret"}


class StubUsageService:
    def __init__(self, result):
        self.result = result

    def total_usage(self):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class StubBillingService:
    def __init__(self):
        self.calls = []

    def cpu_billing(self, instance_id, start, end):
        self.calls.append(("cpu", instance_id, start, end))
        if instance_id == "missing":
            raise BillingError("CPU metric not found for instance", status_code=404)
        return CPUBillingResponse(
            instance_id=instance_id,
            instance_name="web",
            start_date=start or "s",
            end_date=end or "e",
            vcpus=2,
            usage=CPUUsageStats(),
            billing=CPUBillingInfo(),
        )

    def billing_report(self, instance_id, start, end, *, cpu_price_per_hour=None, memory_price_per_gb_hour=None):
        self.calls.append(("report", instance_id, cpu_price_per_hour, memory_price_per_gb_hour))
        raise BillingError("instance not found", status_code=404)


def _snapshot(errors=()):
    return ClusterSnapshot(
        timestamp=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        total_vms=2,
        cpu_cores_used=3.5,
        ram_used_gb=2.0,
        errors=tuple(errors),
    )


@pytest.fixture(autouse=True)
def reset_state():
    reset_services()
    yield
    reset_services()


def _app_client(token: str = "s3cret") -> TestClient:
    from vhi_usage.app import create_app

    app = create_app(Settings(api_bearer_token=token, cache_ttl_seconds=0))
    return TestClient(app)


@pytest.fixture()
def client():
    with _app_client() as test_client:
        yield test_client


def test_health_needs_no_token(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "time" in response.json()


def test_total_usage_complete(client):
    configure_usage_service(StubUsageService(_snapshot()))

    response = client.get("/api/v1/usage/total", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body == {
        "timestamp": "2026-01-01T12:00:00+00:00",
        "total_vms": 2,
        "cpu_cores_used": 3.5,
        "ram_used_gb": 2.0,
    }


def test_total_usage_partial_is_206(client):
    errors = [
        AggregationError(domain_name="beta", message="no projects found for domain"),
        AggregationError(domain_name="alpha", instance_id="vm-1", project_id="p1", message="failed to get vcpus measures: x"),
    ]
    configure_usage_service(StubUsageService(_snapshot(errors)))

    response = client.get("/api/v1/usage/total", headers=AUTH)

    assert response.status_code == 206
    assert response.json()["errors"] == [
        {"domain_name": "beta", "error": "no projects found for domain"},
        {"domain_name": "alpha", "instance_id": "vm-1", "project_id": "p1", "error": "failed to get vcpus measures: x"},
    ]


def test_total_usage_scope_failure(client):
    configure_usage_service(StubUsageService(ScopeError("failed to get admin token: denied", status_code=401)))

    response = client.get("/api/v1/usage/total", headers=AUTH)

    assert response.status_code == 401
    assert response.json()["detail"] == "failed to get admin token: denied"


def test_missing_bearer_token(client):
    response = client.get("/api/v1/usage/total")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == 'Bearer realm="VHI Billing API"'


def test_wrong_bearer_token(client):
    response = client.get("/api/v1/usage/total", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_malformed_authorization_header(client):
    response = client.get("/api/v1/usage/total", headers={"Authorization": "Basic s3cret"})

    assert response.status_code == 401


def test_unconfigured_token_is_server_error():
    with _app_client(token="") as test_client:
        response = test_client.get("/api/v1/usage/total", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["detail"] == "server misconfiguration"


def test_cpu_billing_route(client):
    billing = StubBillingService()
    configure_billing_service(billing)

    response = client.get(
        "/api/v1/billing/cpu/vm-1",
        params={"start_date": "2026-01-01T00:00:00", "end_date": "2026-01-31T23:59:59"},
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json()["vcpus"] == 2
    assert billing.calls == [("cpu", "vm-1", "2026-01-01T00:00:00", "2026-01-31T23:59:59")]


def test_billing_errors_map_to_status(client):
    billing = StubBillingService()
    configure_billing_service(billing)

    assert client.get("/api/v1/billing/cpu/missing", headers=AUTH).status_code == 404
    response = client.get(
        "/api/v1/billing/report/vm-9",
        params={"cpu_price_per_hour": "0.2", "memory_price_per_gb": "0.03"},
        headers=AUTH,
    )
    assert response.status_code == 404
    assert billing.calls[-1] == ("report", "vm-9", 0.2, 0.03)


def test_unconfigured_cluster_service_is_server_error(client):
    from vhi_usage.application import configure_cluster_service

    configure_cluster_service(None)

    response = client.get("/api/v1/usage/cluster", headers=AUTH)

    assert response.status_code == 500


def test_static_gnocchi_token_is_used_for_billing():
    from vhi_usage.app import create_app
    from vhi_usage.application import get_billing_service

    create_app(Settings(api_bearer_token="s3cret", gnocchi_url="https://vhi.example:8041/v1", gnocchi_token="static"))

    assert get_billing_service()._token_provider() == "static"


def test_date_only_billing_period_is_bad_request(client):
    from vhi_usage.application import BillingService

    class UnusedMeasures:
        def get_instance(self, instance_id):
            raise AssertionError("period must be validated before any lookup")

        def get_measures(self, metric_id, start=None, stop=None, granularity=300):
            raise AssertionError("period must be validated before any lookup")

    configure_billing_service(
        BillingService(metrics_factory=lambda token: UnusedMeasures(), token_provider=lambda: "tok")
    )

    for path in ("/api/v1/billing/cpu/vm-1", "/api/v1/billing/resources/vm-1", "/api/v1/billing/report/vm-1"):
        response = client.get(
            path,
            params={"start_date": "2026-01-01", "end_date": "2026-01-31"},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "invalid date '2026-01-01', expected YYYY-MM-DDTHH:MM:SS"
