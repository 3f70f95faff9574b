"""Bounded fan-out of per-VM metric lookups into one cluster snapshot.

Each scoped VM gets one task on a thread pool. A task holds a permit from a
``BoundedSemaphore`` for its whole body, so at most ``max_concurrency``
tasks talk to the metrics service at any time. Totals and the error list
live in an :class:`AggregateAccumulator` owned by the run and mutated only
under its lock.

Cancellation is cooperative: a task checks the deadline once, before any
I/O. A lookup already in flight runs until its own transport timeout, so a
run can outlast the deadline by up to one call.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence

from vhi_usage.domain import (
    AggregateAccumulator,
    AggregationError,
    ClusterSnapshot,
    Deadline,
    MeasurementSample,
    MetricKind,
    VMResource,
)
from vhi_usage.infrastructure import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 10
MEGABYTES_PER_GIGABYTE = 1024.0


class SampleAccessor(Protocol):
    def get_latest_sample(self, series_id: str) -> MeasurementSample: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AggregationEngine:
    def __init__(
        self,
        accessor: SampleAccessor,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._accessor = accessor
        self._max_concurrency = max_concurrency
        self._clock = clock

    # ------------------------------------------------------------------
    # per-VM work
    # ------------------------------------------------------------------
    @staticmethod
    def _error(vm: VMResource, message: str) -> AggregationError:
        return AggregationError(
            domain_name=vm.domain_name,
            instance_id=vm.instance_id,
            project_id=vm.project_id,
            message=message,
        )

    def _collect_metric(self, vm: VMResource, kind: MetricKind, accumulator: AggregateAccumulator) -> None:
        series_id = vm.series_id(kind)
        if series_id is None:
            logger.debug("Instance %s (%s) has no %s metric", vm.display_name, vm.instance_id, kind.value)
            return

        try:
            sample = self._accessor.get_latest_sample(series_id)
        except UpstreamError as exc:
            logger.warning(
                "Failed to get %s for instance %s (%s): %s",
                kind.value,
                vm.display_name,
                vm.instance_id,
                exc,
            )
            accumulator.record_error(self._error(vm, f"failed to get {kind.value} measures: {exc}"))
            return

        if kind is MetricKind.CPU:
            logger.debug("Instance %s (%s): vCPUs = %.0f", vm.display_name, vm.instance_id, sample.value)
            accumulator.add_cpu(sample.value)
        else:
            logger.debug("Instance %s (%s): memory = %.0f MB", vm.display_name, vm.instance_id, sample.value)
            accumulator.add_ram(sample.value / MEGABYTES_PER_GIGABYTE)

    def _collect(
        self,
        vm: VMResource,
        accumulator: AggregateAccumulator,
        permits,
        deadline: Deadline,
    ) -> None:
        with permits:
            if deadline.expired():
                accumulator.record_error(
                    self._error(vm, f"context cancelled while processing instance: {deadline.reason()}")
                )
                return
            for kind in (MetricKind.CPU, MetricKind.MEMORY):
                self._collect_metric(vm, kind, accumulator)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def aggregate(
        self,
        vms: Sequence[VMResource],
        deadline: Deadline,
        max_concurrency: int | None = None,
        *,
        leading_errors: Sequence[AggregationError] = (),
    ) -> ClusterSnapshot:
        """Sum current vCPU and memory allocation over ``vms``.

        Always returns a snapshot; failed or cancelled lookups are listed in
        ``errors`` after ``leading_errors``. ``total_vms`` is ``len(vms)``.
        """

        limit = self._max_concurrency if max_concurrency is None else max_concurrency
        if limit < 1:
            raise ValueError("max_concurrency must be at least 1")

        accumulator = AggregateAccumulator(total_vms=len(vms))
        permits = threading.BoundedSemaphore(limit)

        if vms:
            with ThreadPoolExecutor(max_workers=min(limit, len(vms)), thread_name_prefix="usage-worker") as executor:
                futures = [executor.submit(self._collect, vm, accumulator, permits, deadline) for vm in vms]
                for future in futures:
                    future.result()

        snapshot = accumulator.freeze(self._clock(), leading_errors=tuple(leading_errors))
        logger.info(
            "Aggregated %d VMs: %.2f CPU cores, %.2f GB RAM, %d errors",
            snapshot.total_vms,
            snapshot.cpu_cores_used,
            snapshot.ram_used_gb,
            len(snapshot.errors),
        )
        return snapshot


__all__ = ["AggregationEngine", "SampleAccessor"]
