from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from vhi_usage.application import ScopeResolver
from vhi_usage.domain import Deadline
from vhi_usage.infrastructure import (
    AdminCredentials,
    GnocchiClient,
    KeystoneClient,
    NovaClient,
    UpstreamError,
    UpstreamNotFound,
    UpstreamStatusError,
    UpstreamTimeout,
    UpstreamUnauthorized,
)

CREDENTIALS = AdminCredentials(
    username="admin",
    password="secret",
    user_domain_name="Default",
    project_name="admin",
    project_domain_id="default",
)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


# ----------------------------------------------------------------------
# keystone
# ----------------------------------------------------------------------
def test_admin_token_comes_from_subject_token_header():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(
            201,
            headers={"X-Subject-Token": "tok-123"},
            json={"token": {"project": {"id": "proj-admin", "name": "admin"}}},
        )

    client = KeystoneClient("https://vhi.example:5000/v3", CREDENTIALS, http_client=_client(handler))

    assert client.get_admin_token() == "tok-123"
    assert client.admin_project_id == "proj-admin"
    assert captured["url"] == "https://vhi.example:5000/v3/auth/tokens"
    auth = captured["body"]["auth"]
    assert auth["identity"]["password"]["user"]["name"] == "admin"
    assert auth["scope"]["project"]["domain"]["id"] == "default"


def test_admin_token_requires_complete_credentials():
    client = KeystoneClient(
        "https://vhi.example:5000/v3",
        AdminCredentials(username="admin"),
        http_client=_client(lambda request: httpx.Response(201)),
    )

    with pytest.raises(ValueError, match="ADMIN_PASSWORD"):
        client.get_admin_token()


def test_admin_token_rejected_credentials():
    client = KeystoneClient(
        "https://vhi.example:5000/v3",
        CREDENTIALS,
        http_client=_client(lambda request: httpx.Response(401, text="bad creds")),
    )

    with pytest.raises(UpstreamUnauthorized) as excinfo:
        client.get_admin_token()
    assert excinfo.value.status_code == 401


def test_admin_token_missing_header():
    client = KeystoneClient(
        "https://vhi.example:5000/v3",
        CREDENTIALS,
        http_client=_client(lambda request: httpx.Response(201, json={})),
    )

    with pytest.raises(UpstreamError, match="X-Subject-Token"):
        client.get_admin_token()


def test_list_projects_for_domain():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Auth-Token"] == "tok"
        if request.url.path.endswith("/domains"):
            assert request.url.params["name"] == "customer-a"
            return httpx.Response(200, json={"domains": [{"id": "dom-1", "name": "customer-a"}]})
        assert request.url.params["domain_id"] == "dom-1"
        return httpx.Response(200, json={"projects": [{"id": "p1", "name": "web"}, {"id": "p2", "name": "db"}]})

    client = KeystoneClient("https://vhi.example:5000/v3", CREDENTIALS, http_client=_client(handler))

    projects = client.list_projects_for_domain("tok", "customer-a")

    assert [project.project_id for project in projects] == ["p1", "p2"]
    assert all(project.domain_id == "dom-1" for project in projects)


def test_unknown_domain_is_not_found():
    client = KeystoneClient(
        "https://vhi.example:5000/v3",
        CREDENTIALS,
        http_client=_client(lambda request: httpx.Response(200, json={"domains": []})),
    )

    with pytest.raises(UpstreamNotFound, match="no domain found with name 'ghost'"):
        client.list_projects_for_domain("tok", "ghost")


@pytest.mark.parametrize(
    "domains_body, projects_body",
    [
        ([], {"projects": []}),
        ({"domains": ["dom-1"]}, {"projects": []}),
        ({"domains": [{"id": "dom-1"}]}, ["p1"]),
        ({"domains": [{"id": "dom-1"}]}, {"projects": {"id": "p1"}}),
    ],
)
def test_malformed_identity_payload_is_upstream_error(domains_body, projects_body):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/domains"):
            return httpx.Response(200, json=domains_body)
        return httpx.Response(200, json=projects_body)

    client = KeystoneClient("https://vhi.example:5000/v3", CREDENTIALS, http_client=_client(handler))

    with pytest.raises(UpstreamError, match="keystone"):
        client.list_projects_for_domain("tok", "customer-a")


def test_malformed_domain_does_not_abort_resolution():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/domains"):
            if request.url.params["name"] == "broken":
                return httpx.Response(200, json=[])
            return httpx.Response(200, json={"domains": [{"id": "dom-ok"}]})
        return httpx.Response(200, json={"projects": [{"id": "p1"}]})

    client = KeystoneClient("https://vhi.example:5000/v3", CREDENTIALS, http_client=_client(handler))

    membership, errors = ScopeResolver(client).resolve(["broken", "healthy"], "tok", Deadline(60))

    assert dict(membership) == {"p1": "healthy"}
    assert [error.domain_name for error in errors] == ["broken"]
    assert errors[0].message == "failed to list projects for domain: keystone domain listing is not an object"


def test_admin_token_tolerates_non_object_body():
    client = KeystoneClient(
        "https://vhi.example:5000/v3",
        CREDENTIALS,
        http_client=_client(lambda request: httpx.Response(201, headers={"X-Subject-Token": "tok"}, json=[])),
    )

    assert client.get_admin_token() == "tok"
    assert client.admin_project_id is None


def test_base_url_must_be_absolute():
    with pytest.raises(ValueError):
        KeystoneClient("vhi.example/v3", CREDENTIALS)


# ----------------------------------------------------------------------
# gnocchi
# ----------------------------------------------------------------------
def test_list_instances_parses_metrics():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/resource/instance"
        assert request.headers["X-Auth-Token"] == "tok"
        return httpx.Response(
            200,
            json=[
                {
                    "id": "vm-1",
                    "project_id": "p1",
                    "display_name": "web-1",
                    "flavor_name": "medium",
                    "metrics": {"vcpus": "m-cpu", "memory": "m-mem", "cpu": "m-cpu-ns"},
                },
                {"project_id": "p1"},
            ],
        )

    client = GnocchiClient("https://vhi.example:8041/v1", http_client=_client(handler)).with_token("tok")

    instances = client.list_instances()

    assert len(instances) == 1
    vm = instances[0]
    assert (vm.instance_id, vm.project_id, vm.display_name, vm.flavor_name) == ("vm-1", "p1", "web-1", "medium")
    assert vm.metrics["vcpus"] == "m-cpu"


def test_latest_sample_is_last_measure():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/metric/m-cpu/measures"
        assert request.url.params["aggregation"] == "mean"
        return httpx.Response(
            200,
            json=[
                ["2026-01-01T00:00:00+00:00", 300.0, 2.0],
                ["2026-01-01T00:05:00+00:00", 300.0, 4.0],
                ["garbage"],
            ],
        )

    client = GnocchiClient("https://vhi.example:8041/v1", token="tok", http_client=_client(handler))

    sample = client.get_latest_sample("m-cpu")

    assert sample.value == 4.0
    assert sample.timestamp == datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc)
    assert sample.granularity == 300.0


def test_latest_sample_of_empty_series_is_not_found():
    client = GnocchiClient(
        "https://vhi.example:8041/v1",
        token="tok",
        http_client=_client(lambda request: httpx.Response(200, json=[])),
    )

    with pytest.raises(UpstreamNotFound, match="metric m-empty has no data points"):
        client.get_latest_sample("m-empty")


def test_measures_status_error_carries_body():
    client = GnocchiClient(
        "https://vhi.example:8041/v1",
        token="tok",
        http_client=_client(lambda request: httpx.Response(500, text="x" * 2000)),
    )

    with pytest.raises(UpstreamStatusError) as excinfo:
        client.get_measures("m-cpu")
    assert excinfo.value.status_code == 500
    assert len(excinfo.value.body) == 500


def test_timeout_maps_to_upstream_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = GnocchiClient("https://vhi.example:8041/v1", token="tok", http_client=_client(handler))

    with pytest.raises(UpstreamTimeout):
        client.get_latest_sample("m-cpu")


def test_provisioned_storage_reads_aggregated_measures():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content.decode("utf-8"))
        captured["start"] = request.url.params["start"]
        return httpx.Response(
            200,
            json={"measures": {"aggregated": [["2026-01-01T11:00:00", 300, 1024.0], ["2026-01-01T11:05:00", 300, 2048.0]]}},
        )

    client = GnocchiClient("https://vhi.example:8041/v1", token="tok", http_client=_client(handler))

    storage = client.get_provisioned_storage(now=datetime(2026, 1, 1, 12, tzinfo=timezone.utc))

    assert storage.total_gib == 2048.0
    assert storage.total_tib == 2.0
    assert captured["start"] == "2026-01-01T11:00:00"
    assert captured["body"]["resource_type"] == "volume"


# ----------------------------------------------------------------------
# nova
# ----------------------------------------------------------------------
def test_list_all_servers_follows_markers():
    pages = {
        None: [{"id": "s1", "status": "ACTIVE", "flavor": {"vcpus": 2, "ram": 2048}}, {"id": "s2", "status": "SHUTOFF"}],
        "s2": [{"id": "s3", "status": "ACTIVE", "flavor": {"vcpus": 4, "ram": 4096}}],
    }
    seen_markers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["OpenStack-API-Version"] == "compute 2.47"
        assert request.url.params["all_tenants"] == "true"
        marker = request.url.params.get("marker")
        seen_markers.append(marker)
        return httpx.Response(200, json={"servers": pages[marker]})

    client = NovaClient("https://vhi.example:8774", http_client=_client(handler)).with_token("tok")

    servers = client.list_all_servers(page_size=2)

    assert [server.server_id for server in servers] == ["s1", "s2", "s3"]
    assert servers[0].vcpus == 2 and servers[0].ram_mb == 2048
    assert servers[1].vcpus == 0
    assert seen_markers == [None, "s2"]


def test_get_hypervisors():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2.1/os-hypervisors/detail"
        return httpx.Response(
            200,
            json={
                "hypervisors": [
                    {"id": 1, "hypervisor_hostname": "node1", "status": "enabled", "state": "up", "vcpus": 32},
                    {"id": 2, "hypervisor_hostname": "node2", "status": "disabled", "state": "up", "vcpus": "bad"},
                ]
            },
        )

    client = NovaClient("https://vhi.example:8774", token="tok", http_client=_client(handler))

    hypervisors = client.get_hypervisors()

    assert [h.hostname for h in hypervisors] == ["node1", "node2"]
    assert hypervisors[0].vcpus == 32 and not hypervisors[0].fenced
    assert hypervisors[1].vcpus == 0 and hypervisors[1].fenced
