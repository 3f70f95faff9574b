"""Cluster-wide capacity derived from Nova hypervisors and servers."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Protocol

from vhi_usage.core.schema import ClusterUsage
from vhi_usage.domain import ComputeServer, Hypervisor
from vhi_usage.infrastructure import ProvisionedStorage, UpstreamError

from .errors import ScopeError, UsageRequestError

logger = logging.getLogger(__name__)

SHELVED_STATUSES = {"SHELVED", "SHELVED_OFFLOADED"}


class ComputeBackend(Protocol):
    def get_hypervisors(self) -> list[Hypervisor]: ...

    def list_all_servers(self) -> list[ComputeServer]: ...


class StorageBackend(Protocol):
    def get_provisioned_storage(self) -> ProvisionedStorage: ...


def _ceil_hundredths(value: float) -> float:
    return math.ceil(value * 100) / 100


class ClusterService:
    """Computes capacity totals for the whole cluster.

    vCPU capacity is the physical count times ``overcommit_ratio``; RAM is
    not overcommitted. Hypervisors that are down or disabled count as
    fenced. Free vCPUs follow the free RAM ratio of the healthy nodes, and
    whatever is neither free nor reserved by running servers is attributed
    to the system.
    """

    def __init__(
        self,
        *,
        token_provider: Callable[[], str],
        compute_factory: Callable[[str], ComputeBackend] | None,
        storage_factory: Callable[[str], StorageBackend] | None = None,
        overcommit_ratio: float = 8.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._token_provider = token_provider
        self._compute_factory = compute_factory
        self._storage_factory = storage_factory
        self._overcommit_ratio = overcommit_ratio
        self._clock = clock

    def _token(self) -> str:
        try:
            return self._token_provider()
        except (UpstreamError, ValueError) as exc:
            logger.warning("Failed to obtain admin token: %s", exc)
            raise ScopeError(f"failed to authenticate admin: {exc}", status_code=401) from exc

    def _storage(self, token: str) -> tuple[float, str | None]:
        if self._storage_factory is None:
            return 0.0, None
        try:
            storage = self._storage_factory(token).get_provisioned_storage()
        except UpstreamError as exc:
            logger.warning("Provisioned storage lookup failed: %s", exc)
            return 0.0, str(exc)
        return storage.total_tib, None

    def cluster_usage(self) -> ClusterUsage:
        if self._compute_factory is None:
            raise UsageRequestError("compute service is not configured; set NOVA_URL")
        token = self._token()
        compute = self._compute_factory(token)

        try:
            hypervisors = compute.get_hypervisors()
        except UpstreamError as exc:
            logger.warning("Failed to get hypervisors: %s", exc)
            raise UsageRequestError(f"failed to get hypervisors: {exc}") from exc

        physical_vcpus = fenced_vcpus_physical = active_vcpus_physical = 0
        physical_ram_mb = fenced_ram_mb = active_ram_mb = 0
        active_free_ram_mb = active_ram_used_mb = 0
        for hypervisor in hypervisors:
            physical_vcpus += hypervisor.vcpus
            physical_ram_mb += hypervisor.memory_mb
            if hypervisor.fenced:
                fenced_vcpus_physical += hypervisor.vcpus
                fenced_ram_mb += hypervisor.memory_mb
            else:
                active_vcpus_physical += hypervisor.vcpus
                active_ram_mb += hypervisor.memory_mb
                active_free_ram_mb += hypervisor.free_ram_mb
                active_ram_used_mb += hypervisor.memory_mb_used

        ratio = self._overcommit_ratio
        active_total_vcpus = int(active_vcpus_physical * ratio)
        active_total_ram_gib = active_ram_mb / 1024.0

        provisioned_tib, storage_error = self._storage(token)

        try:
            servers = compute.list_all_servers()
        except UpstreamError as exc:
            logger.warning("Failed to list servers from Nova: %s", exc)
            raise UsageRequestError(f"failed to list servers from Nova: {exc}") from exc

        active = shutoff = shelved = other = 0
        reserved_vcpus = reserved_ram_mb = 0
        for server in servers:
            if server.status == "ACTIVE":
                active += 1
                reserved_vcpus += server.vcpus
                reserved_ram_mb += server.ram_mb
            elif server.status == "SHUTOFF":
                shutoff += 1
            elif server.status in SHELVED_STATUSES:
                shelved += 1
            else:
                other += 1

        reserved_ram_gib = reserved_ram_mb / 1024.0
        free_ram_gib = active_free_ram_mb / 1024.0
        system_ram_gib = max(active_ram_used_mb / 1024.0 - reserved_ram_gib, 0.0)
        free_ratio = free_ram_gib / active_total_ram_gib if active_total_ram_gib > 0 else 0.0
        free_vcpus = int(free_ratio * active_total_vcpus)
        system_vcpus = max(active_total_vcpus - free_vcpus - reserved_vcpus, 0)

        usage = ClusterUsage(
            timestamp=self._clock().isoformat(timespec="seconds"),
            total_vms=len(servers),
            active_vms=active,
            shutoff_vms=shutoff,
            shelved_vms=shelved,
            other_vms=other,
            total_vcpus=int(physical_vcpus * ratio),
            total_ram_tib=_ceil_hundredths(physical_ram_mb / 1024.0 / 1024.0),
            fenced_vcpus=int(fenced_vcpus_physical * ratio),
            fenced_ram_gib=float(math.ceil(fenced_ram_mb / 1024.0)),
            reserved_vcpus=reserved_vcpus,
            reserved_ram_gib=float(math.ceil(reserved_ram_gib)),
            system_vcpus=system_vcpus,
            system_ram_gib=float(math.ceil(system_ram_gib)),
            free_vcpus=free_vcpus,
            free_ram_gib=float(math.ceil(free_ram_gib)),
            provisioned_storage_tib=provisioned_tib,
            storage_error=storage_error,
        )
        logger.info(
            "Cluster capacity: total=%d vCPUs, reserved=%d, system=%d, free=%d, fenced=%d",
            usage.total_vcpus,
            usage.reserved_vcpus,
            usage.system_vcpus,
            usage.free_vcpus,
            usage.fenced_vcpus,
        )
        return usage


__all__ = ["ClusterService", "ComputeBackend", "StorageBackend"]
