from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol

from vhi_usage.domain import ProjectMembership, VMResource
from vhi_usage.infrastructure import UpstreamError

from .errors import InventoryError

logger = logging.getLogger(__name__)


class InstanceInventory(Protocol):
    def list_instances(self) -> list[VMResource]: ...


def list_scoped_vms(inventory: InstanceInventory, membership: ProjectMembership) -> list[VMResource]:
    """Fetch the full inventory once and keep the VMs owned by an in-scope project."""

    try:
        instances = inventory.list_instances()
    except UpstreamError as exc:
        raise InventoryError(f"failed to get instances from Gnocchi: {exc}") from exc

    logger.info("Found %d total instances in Gnocchi", len(instances))
    scoped = [
        replace(vm, domain_name=membership[vm.project_id])
        for vm in instances
        if vm.project_id in membership
    ]
    logger.info("Filtered to %d instances in target domains", len(scoped))
    return scoped


__all__ = ["InstanceInventory", "list_scoped_vms"]
