"""Cluster usage aggregation service."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Protocol

from vhi_usage.core.domains import load_domain_names
from vhi_usage.domain import ClusterSnapshot, Deadline, MeasurementSample, VMResource
from vhi_usage.infrastructure import NullSnapshotCache, SnapshotCache, UpstreamError

from .aggregation import DEFAULT_MAX_CONCURRENCY, AggregationEngine
from .errors import InventoryError, ScopeError
from .inventory import list_scoped_vms
from .scope import IdentityDirectory, ScopeResolver

logger = logging.getLogger(__name__)


class AdminIdentity(IdentityDirectory, Protocol):
    def get_admin_token(self) -> str: ...


class MetricsBackend(Protocol):
    def list_instances(self) -> list[VMResource]: ...

    def get_latest_sample(self, series_id: str) -> MeasurementSample: ...


MetricsFactory = Callable[[str], MetricsBackend]


class UsageService:
    """Produces the total-usage snapshot for the configured domains.

    Each call gets a fresh :class:`Deadline`. Snapshots are cached for
    ``cache_ttl`` seconds, including partial ones.
    """

    def __init__(
        self,
        *,
        domains_file: Path | str,
        identity: AdminIdentity | None,
        metrics_factory: MetricsFactory | None,
        cache: SnapshotCache | None = None,
        cache_ttl: float = 0.0,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        deadline_seconds: float = 300.0,
    ) -> None:
        self._domains_file = Path(domains_file)
        self._identity = identity
        self._metrics_factory = metrics_factory
        self._cache = cache or NullSnapshotCache()
        self._cache_ttl = cache_ttl
        self._max_concurrency = max_concurrency
        self._deadline_seconds = deadline_seconds

    # ------------------------------------------------------------------
    # request steps
    # ------------------------------------------------------------------
    def _load_domains(self) -> list[str]:
        try:
            names = load_domain_names(self._domains_file)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read domain list %s: %s", self._domains_file, exc)
            raise ScopeError(f"failed to read domain list: {exc}", status_code=500) from exc
        if not names:
            raise ScopeError("no domains configured", status_code=400)
        logger.info("Processing %d domains", len(names))
        return names

    def _admin_token(self) -> str:
        if self._identity is None:
            raise ScopeError("identity service is not configured; set KEYSTONE_URL", status_code=500)
        try:
            return self._identity.get_admin_token()
        except (UpstreamError, ValueError) as exc:
            logger.warning("Failed to obtain admin token: %s", exc)
            raise ScopeError(f"failed to get admin token: {exc}", status_code=401) from exc

    def _compute(self) -> ClusterSnapshot:
        deadline = Deadline(self._deadline_seconds)
        domain_names = self._load_domains()
        token = self._admin_token()

        membership, scope_errors = ScopeResolver(self._identity).resolve(domain_names, token, deadline)
        if not membership:
            detail = "; ".join(f"{error.domain_name}: {error.message}" for error in scope_errors)
            raise ScopeError(f"no projects resolved for the configured domains ({detail})", status_code=500)

        if self._metrics_factory is None:
            raise InventoryError("metrics service is not configured; set GNOCCHI_URL")
        metrics = self._metrics_factory(token)
        vms = list_scoped_vms(metrics, membership)

        engine = AggregationEngine(metrics, max_concurrency=self._max_concurrency)
        return engine.aggregate(vms, deadline, leading_errors=scope_errors)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def total_usage(self) -> ClusterSnapshot:
        cached = self._cache.get()
        if cached is not None:
            return cached

        snapshot = self._compute()
        self._cache.put(snapshot, self._cache_ttl)
        return snapshot

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = ["AdminIdentity", "MetricsBackend", "MetricsFactory", "UsageService"]
