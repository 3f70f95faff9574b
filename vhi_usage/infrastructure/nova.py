"""Nova (compute) client for hypervisor capacity and the server inventory."""
from __future__ import annotations

from typing import Any

from vhi_usage.domain import ComputeServer, Hypervisor

from .http import UpstreamClient

SERVER_PAGE_SIZE = 200
# 2.47 embeds the flavor (vcpus, ram, disk) in every server record
COMPUTE_MICROVERSION = "compute 2.47"


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class NovaClient(UpstreamClient):
    """Client for the compute endpoints; ``base_url`` is the service root without ``/v2.1``."""

    service_name = "nova"

    def with_token(self, token: str) -> "NovaClient":
        return NovaClient(self._base_url, token=token, timeout=self._timeout, http_client=self._client)

    def get_hypervisors(self) -> list[Hypervisor]:
        payload = self._decode(self._request("GET", "v2.1/os-hypervisors/detail"))
        hypervisors: list[Hypervisor] = []
        for item in payload.get("hypervisors") or []:
            hypervisors.append(
                Hypervisor(
                    hypervisor_id=str(item.get("id")),
                    hostname=str(item.get("hypervisor_hostname") or ""),
                    status=str(item.get("status") or ""),
                    state=str(item.get("state") or ""),
                    vcpus=_as_int(item.get("vcpus")),
                    vcpus_used=_as_int(item.get("vcpus_used")),
                    memory_mb=_as_int(item.get("memory_mb")),
                    memory_mb_used=_as_int(item.get("memory_mb_used")),
                    free_ram_mb=_as_int(item.get("free_ram_mb")),
                )
            )
        return hypervisors

    def list_all_servers(self, *, page_size: int = SERVER_PAGE_SIZE) -> list[ComputeServer]:
        """List every server across tenants, following marker pagination."""

        servers: list[ComputeServer] = []
        marker: str | None = None
        while True:
            params: dict[str, Any] = {"all_tenants": "true", "limit": page_size}
            if marker:
                params["marker"] = marker
            payload = self._decode(
                self._request(
                    "GET",
                    "v2.1/servers/detail",
                    params=params,
                    headers={"OpenStack-API-Version": COMPUTE_MICROVERSION},
                )
            )
            page = payload.get("servers") or []
            if not page:
                break

            for item in page:
                flavor = item.get("flavor") or {}
                servers.append(
                    ComputeServer(
                        server_id=str(item.get("id")),
                        name=str(item.get("name") or ""),
                        status=str(item.get("status") or ""),
                        tenant_id=str(item.get("tenant_id") or ""),
                        vcpus=_as_int(flavor.get("vcpus")),
                        ram_mb=_as_int(flavor.get("ram")),
                    )
                )

            if len(page) < page_size:
                break
            marker = str(page[-1].get("id"))
        return servers


__all__ = ["NovaClient"]
