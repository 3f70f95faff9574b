from __future__ import annotations

from pydantic import BaseModel, Field

from vhi_usage.domain import ClusterSnapshot


class UsageErrorModel(BaseModel):
    domain_name: str | None = None
    instance_id: str | None = None
    project_id: str | None = None
    error: str


class TotalUsage(BaseModel):
    timestamp: str
    total_vms: int
    cpu_cores_used: float
    ram_used_gb: float
    errors: list[UsageErrorModel] | None = None

    @classmethod
    def from_snapshot(cls, snapshot: ClusterSnapshot) -> "TotalUsage":
        errors = [UsageErrorModel(**error.as_payload()) for error in snapshot.errors]
        return cls(
            timestamp=snapshot.timestamp.isoformat(timespec="seconds"),
            total_vms=snapshot.total_vms,
            cpu_cores_used=snapshot.cpu_cores_used,
            ram_used_gb=snapshot.ram_used_gb,
            errors=errors or None,
        )


class HourlyUsage(BaseModel):
    timestamp: str
    cpu_percent: float
    cpu_seconds: float


class DailyUsage(BaseModel):
    date: str
    average_cpu_percent: float = 0.0
    max_cpu_percent: float = 0.0
    min_cpu_percent: float = 0.0
    total_cpu_hours: float = 0.0


class CPUUsageStats(BaseModel):
    total_data_points: int = 0
    average_percent: float = 0.0
    max_percent: float = 0.0
    min_percent: float = 0.0
    median_percent: float = 0.0
    percentile_95: float = 0.0
    usage_by_hour: list[HourlyUsage] = Field(default_factory=list)
    usage_by_day: list[DailyUsage] = Field(default_factory=list)


class CPUBillingInfo(BaseModel):
    total_cpu_hours: float = 0.0
    total_cpu_core_hours: float = 0.0
    average_cpu_percent: float = 0.0
    billing_period_days: int = 0
    billing_period_hours: float = 0.0


class DailyMemUsage(BaseModel):
    date: str
    average_used_mb: float = 0.0
    average_percent: float = 0.0


class MemoryUsageStats(BaseModel):
    average_used_mb: float = 0.0
    average_used_gb: float = 0.0
    max_used_mb: float = 0.0
    min_used_mb: float = 0.0
    average_percent: float = 0.0
    total_memory_mb: float = 0.0
    usage_by_day: list[DailyMemUsage] = Field(default_factory=list)


class CPUBillingResponse(BaseModel):
    instance_id: str
    instance_name: str
    start_date: str
    end_date: str
    vcpus: int
    usage: CPUUsageStats
    billing: CPUBillingInfo


class ResourceUsage(BaseModel):
    instance_id: str
    instance_name: str
    flavor_name: str | None = None
    start_date: str
    end_date: str
    vcpus: int = 0
    cpu: CPUUsageStats = Field(default_factory=CPUUsageStats)
    memory: MemoryUsageStats = Field(default_factory=MemoryUsageStats)


class BillingReport(BaseModel):
    instance_id: str
    instance_name: str
    flavor_name: str | None = None
    start_date: str
    end_date: str
    generated_at: str
    currency: str = "USD"
    vcpus: int = 0
    cpu_usage: CPUUsageStats = Field(default_factory=CPUUsageStats)
    memory_usage: MemoryUsageStats = Field(default_factory=MemoryUsageStats)
    cpu_price_per_hour: float
    memory_price_per_gb_hour: float
    cpu_cost: float = 0.0
    memory_cost: float = 0.0
    total_cost: float = 0.0


class ClusterUsage(BaseModel):
    timestamp: str

    total_vms: int = 0
    active_vms: int = 0
    shutoff_vms: int = 0
    shelved_vms: int = 0
    other_vms: int = 0

    total_vcpus: int = 0
    total_ram_tib: float = 0.0
    fenced_vcpus: int = 0
    fenced_ram_gib: float = 0.0
    reserved_vcpus: int = 0
    reserved_ram_gib: float = 0.0
    system_vcpus: int = 0
    system_ram_gib: float = 0.0
    free_vcpus: int = 0
    free_ram_gib: float = 0.0

    provisioned_storage_tib: float = 0.0
    storage_error: str | None = None
