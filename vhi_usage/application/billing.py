"""Per-instance CPU and memory usage statistics and billing reports."""
from __future__ import annotations

import logging
from typing import Callable, Protocol

from vhi_usage.core.billing import (
    build_billing_report,
    calculate_cpu_billing,
    calculate_cpu_usage,
    calculate_memory_usage,
    parse_period_bound,
    previous_month_period,
)
from vhi_usage.core.pricing import DEFAULT_PRICING, Pricing
from vhi_usage.core.schema import BillingReport, CPUBillingResponse, CPUUsageStats, MemoryUsageStats, ResourceUsage
from vhi_usage.domain import MeasurementSample, VMResource
from vhi_usage.infrastructure import UpstreamError, UpstreamNotFound

from .errors import BillingError, ScopeError

logger = logging.getLogger(__name__)

CPU_GRANULARITY = 300
DETAIL_GRANULARITY = 3600
DEFAULT_VCPUS = 2


class MeasuresBackend(Protocol):
    def get_instance(self, instance_id: str) -> VMResource: ...

    def get_measures(
        self,
        metric_id: str,
        start: str | None = None,
        stop: str | None = None,
        granularity: int = CPU_GRANULARITY,
    ) -> list[MeasurementSample]: ...


class BillingService:
    def __init__(
        self,
        *,
        metrics_factory: Callable[[str], MeasuresBackend] | None,
        token_provider: Callable[[], str],
        pricing: Pricing = DEFAULT_PRICING,
    ) -> None:
        self._metrics_factory = metrics_factory
        self._token_provider = token_provider
        self.pricing = pricing

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _client(self) -> MeasuresBackend:
        if self._metrics_factory is None:
            raise BillingError("metrics service is not configured; set GNOCCHI_URL")
        try:
            token = self._token_provider()
        except (UpstreamError, ValueError) as exc:
            raise ScopeError(f"failed to get admin token: {exc}", status_code=401) from exc
        return self._metrics_factory(token)

    @staticmethod
    def _period(start: str | None, end: str | None) -> tuple[str, str]:
        if not (start and end):
            return previous_month_period()
        for bound in (start, end):
            try:
                parse_period_bound(bound)
            except ValueError as exc:
                raise BillingError(
                    f"invalid date {bound!r}, expected YYYY-MM-DDTHH:MM:SS", status_code=400
                ) from exc
        return start, end

    @staticmethod
    def _instance(client: MeasuresBackend, instance_id: str) -> VMResource:
        try:
            return client.get_instance(instance_id)
        except UpstreamNotFound as exc:
            raise BillingError(f"instance not found: {exc}", status_code=404) from exc
        except UpstreamError as exc:
            raise BillingError(f"Failed to get instance: {exc}") from exc

    @staticmethod
    def _optional_measures(
        client: MeasuresBackend,
        instance: VMResource,
        metric_name: str,
        start: str,
        end: str,
        granularity: int,
    ) -> list[MeasurementSample]:
        metric_id = instance.metrics.get(metric_name)
        if not metric_id:
            return []
        try:
            return client.get_measures(metric_id, start, end, granularity)
        except UpstreamError as exc:
            logger.warning("Failed to get %s measures for instance %s: %s", metric_name, instance.instance_id, exc)
            return []

    def _vcpus(self, client: MeasuresBackend, instance: VMResource, start: str, end: str, granularity: int) -> int:
        samples = self._optional_measures(client, instance, "vcpus", start, end, granularity)
        if samples:
            return int(samples[0].value)
        return DEFAULT_VCPUS

    def _cpu(
        self, client: MeasuresBackend, instance: VMResource, start: str, end: str, vcpu_granularity: int
    ) -> tuple[int, CPUUsageStats] | None:
        if not instance.metrics.get("cpu"):
            return None
        samples = self._optional_measures(client, instance, "cpu", start, end, CPU_GRANULARITY)
        vcpus = self._vcpus(client, instance, start, end, vcpu_granularity)
        return vcpus, calculate_cpu_usage(samples, vcpus)

    def _memory(
        self, client: MeasuresBackend, instance: VMResource, start: str, end: str, granularity: int
    ) -> MemoryUsageStats | None:
        if not instance.metrics.get("memory.usage"):
            return None
        used = self._optional_measures(client, instance, "memory.usage", start, end, granularity)
        total = self._optional_measures(client, instance, "memory", start, end, granularity)
        return calculate_memory_usage(used, total)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def cpu_billing(self, instance_id: str, start: str | None = None, end: str | None = None) -> CPUBillingResponse:
        start, end = self._period(start, end)
        client = self._client()
        instance = self._instance(client, instance_id)

        metric_id = instance.metrics.get("cpu")
        if not metric_id:
            raise BillingError("CPU metric not found for instance", status_code=404)
        try:
            samples = client.get_measures(metric_id, start, end, CPU_GRANULARITY)
        except UpstreamError as exc:
            raise BillingError(f"Failed to get CPU measures: {exc}") from exc

        vcpus = self._vcpus(client, instance, start, end, DETAIL_GRANULARITY)
        usage = calculate_cpu_usage(samples, vcpus)
        return CPUBillingResponse(
            instance_id=instance.instance_id,
            instance_name=instance.display_name,
            start_date=start,
            end_date=end,
            vcpus=vcpus,
            usage=usage,
            billing=calculate_cpu_billing(usage, start, end),
        )

    def resource_usage(self, instance_id: str, start: str | None = None, end: str | None = None) -> ResourceUsage:
        start, end = self._period(start, end)
        client = self._client()
        instance = self._instance(client, instance_id)

        result = ResourceUsage(
            instance_id=instance.instance_id,
            instance_name=instance.display_name,
            flavor_name=instance.flavor_name,
            start_date=start,
            end_date=end,
        )
        cpu = self._cpu(client, instance, start, end, DETAIL_GRANULARITY)
        if cpu is not None:
            result.vcpus, result.cpu = cpu
        memory = self._memory(client, instance, start, end, DETAIL_GRANULARITY)
        if memory is not None:
            result.memory = memory
        return result

    def billing_report(
        self,
        instance_id: str,
        start: str | None = None,
        end: str | None = None,
        *,
        cpu_price_per_hour: float | None = None,
        memory_price_per_gb_hour: float | None = None,
    ) -> BillingReport:
        start, end = self._period(start, end)
        pricing = self.pricing.override(
            cpu_price_per_hour=cpu_price_per_hour,
            memory_price_per_gb_hour=memory_price_per_gb_hour,
        )
        client = self._client()
        instance = self._instance(client, instance_id)

        cpu = self._cpu(client, instance, start, end, CPU_GRANULARITY)
        vcpus, cpu_usage = cpu if cpu is not None else (0, None)
        memory_usage = self._memory(client, instance, start, end, CPU_GRANULARITY)

        report = build_billing_report(
            instance,
            start=start,
            end=end,
            pricing=pricing,
            vcpus=vcpus,
            cpu_usage=cpu_usage,
            memory_usage=memory_usage,
        )
        logger.info(
            "Billing report for %s (%s to %s): %.4f %s",
            instance.instance_id,
            start,
            end,
            report.total_cost,
            report.currency,
        )
        return report


__all__ = ["BillingService", "MeasuresBackend"]
