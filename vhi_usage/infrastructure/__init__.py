"""Infrastructure layer exports."""

from .cache import InMemorySnapshotCache, NullSnapshotCache, SnapshotCache
from .errors import (
    UpstreamError,
    UpstreamNotFound,
    UpstreamStatusError,
    UpstreamTimeout,
    UpstreamUnauthorized,
)
from .gnocchi import GnocchiClient, ProvisionedStorage
from .keystone import AdminCredentials, KeystoneClient
from .nova import NovaClient

__all__ = [
    "AdminCredentials",
    "GnocchiClient",
    "InMemorySnapshotCache",
    "KeystoneClient",
    "NovaClient",
    "NullSnapshotCache",
    "ProvisionedStorage",
    "SnapshotCache",
    "UpstreamError",
    "UpstreamNotFound",
    "UpstreamStatusError",
    "UpstreamTimeout",
    "UpstreamUnauthorized",
]
