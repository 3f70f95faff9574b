"""Compute-service entities used for cluster capacity reporting."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Hypervisor:
    hypervisor_id: str
    hostname: str = ""
    status: str = "enabled"
    state: str = "up"
    vcpus: int = 0
    vcpus_used: int = 0
    memory_mb: int = 0
    memory_mb_used: int = 0
    free_ram_mb: int = 0

    @property
    def fenced(self) -> bool:
        """Nodes that are down or disabled do not contribute usable capacity."""

        return self.state == "down" or self.status == "disabled"


@dataclass(slots=True, frozen=True)
class ComputeServer:
    server_id: str
    name: str = ""
    status: str = ""
    tenant_id: str = ""
    vcpus: int = 0
    ram_mb: int = 0
