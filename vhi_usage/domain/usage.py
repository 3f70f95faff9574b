"""Domain entities for cluster usage aggregation."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping

# project id -> owning domain name; frozen once the scope is resolved
ProjectMembership = Mapping[str, str]


class MetricKind(str, Enum):
    """Metric kinds the aggregation reads, keyed by their inventory metric name."""

    CPU = "vcpus"
    MEMORY = "memory"


@dataclass(slots=True, frozen=True)
class Project:
    """Identity-service project returned by a domain lookup."""

    project_id: str
    name: str = ""
    domain_id: str | None = None


@dataclass(slots=True, frozen=True)
class MeasurementSample:
    """Single point of a metric series."""

    timestamp: datetime
    value: float
    granularity: float | None = None


@dataclass(slots=True, frozen=True)
class VMResource:
    """Instance known to the metrics service and its measurement series ids."""

    instance_id: str
    project_id: str
    display_name: str = ""
    metrics: Mapping[str, str] = field(default_factory=dict)
    domain_name: str | None = None
    flavor_name: str | None = None

    def series_id(self, kind: MetricKind) -> str | None:
        """Return the series id for ``kind`` or ``None`` when the VM has no such metric."""

        return self.metrics.get(kind.value)


@dataclass(slots=True, frozen=True)
class AggregationError:
    """Failure record attached to a partial aggregate."""

    message: str
    domain_name: str | None = None
    instance_id: str | None = None
    project_id: str | None = None

    def as_payload(self) -> dict[str, str]:
        payload = {
            "domain_name": self.domain_name,
            "instance_id": self.instance_id,
            "project_id": self.project_id,
        }
        result = {key: value for key, value in payload.items() if value}
        result["error"] = self.message
        return result


class Deadline:
    """Cooperative cancellation token with an absolute expiry.

    Workers poll :meth:`expired` before starting I/O. Calls already in flight
    are bounded only by their own transport timeout.
    """

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._cancelled.is_set() or self._clock() >= self._expires_at

    def reason(self) -> str:
        if self._cancelled.is_set():
            return "context canceled"
        return "context deadline exceeded"


@dataclass(slots=True, frozen=True)
class ClusterSnapshot:
    """Immutable result of one aggregation run."""

    timestamp: datetime
    total_vms: int
    cpu_cores_used: float
    ram_used_gb: float
    errors: tuple[AggregationError, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.errors)


@dataclass(slots=True)
class AggregateAccumulator:
    """Mutable state owned by a single aggregation run.

    Every mutation happens under ``_lock``; the critical sections never
    perform I/O.
    """

    total_vms: int
    cpu_cores_used: float = 0.0
    ram_used_gb: float = 0.0
    errors: list[AggregationError] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_cpu(self, cores: float) -> None:
        with self._lock:
            self.cpu_cores_used += cores

    def add_ram(self, gigabytes: float) -> None:
        with self._lock:
            self.ram_used_gb += gigabytes

    def record_error(self, error: AggregationError) -> None:
        with self._lock:
            self.errors.append(error)

    def freeze(self, timestamp: datetime, *, leading_errors: tuple[AggregationError, ...] = ()) -> ClusterSnapshot:
        with self._lock:
            return ClusterSnapshot(
                timestamp=timestamp,
                total_vms=self.total_vms,
                cpu_cores_used=self.cpu_cores_used,
                ram_used_gb=self.ram_used_gb,
                errors=tuple(leading_errors) + tuple(self.errors),
            )
