"""Domain layer definitions."""

from .cluster import ComputeServer, Hypervisor
from .usage import (
    AggregateAccumulator,
    AggregationError,
    ClusterSnapshot,
    Deadline,
    MeasurementSample,
    MetricKind,
    Project,
    ProjectMembership,
    VMResource,
)

__all__ = [
    "AggregateAccumulator",
    "AggregationError",
    "ClusterSnapshot",
    "ComputeServer",
    "Deadline",
    "Hypervisor",
    "MeasurementSample",
    "MetricKind",
    "Project",
    "ProjectMembership",
    "VMResource",
]
