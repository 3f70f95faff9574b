"""Application services."""

from .aggregation import AggregationEngine, SampleAccessor
from .billing import BillingService
from .cluster import ClusterService
from .errors import BillingError, InventoryError, ScopeError, UsageRequestError
from .inventory import list_scoped_vms
from .registry import (
    build_services,
    configure_billing_service,
    configure_cluster_service,
    configure_usage_service,
    get_billing_service,
    get_cluster_service,
    get_usage_service,
    reset_services,
)
from .scope import ScopeResolver
from .usage import UsageService

__all__ = [
    "AggregationEngine",
    "BillingError",
    "BillingService",
    "ClusterService",
    "InventoryError",
    "SampleAccessor",
    "ScopeError",
    "ScopeResolver",
    "UsageRequestError",
    "UsageService",
    "build_services",
    "configure_billing_service",
    "configure_cluster_service",
    "configure_usage_service",
    "get_billing_service",
    "get_cluster_service",
    "get_usage_service",
    "list_scoped_vms",
    "reset_services",
]
