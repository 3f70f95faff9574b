"""Process-wide service instances.

The real services are wired from :class:`~vhi_usage.core.settings.Settings`
by :func:`build_services`, which ``create_app`` calls during start-up. Tests
install fakes through the ``configure_*`` hooks.
"""
from __future__ import annotations

import logging
from typing import Callable

from vhi_usage.core.pricing import load_pricing
from vhi_usage.core.settings import Settings
from vhi_usage.infrastructure import (
    AdminCredentials,
    GnocchiClient,
    InMemorySnapshotCache,
    KeystoneClient,
    NovaClient,
    NullSnapshotCache,
)

from .billing import BillingService
from .cluster import ClusterService
from .errors import UsageRequestError
from .usage import UsageService

logger = logging.getLogger(__name__)

_usage_service: UsageService | None = None
_billing_service: BillingService | None = None
_cluster_service: ClusterService | None = None


def configure_usage_service(service: UsageService | None) -> None:
    global _usage_service
    _usage_service = service


def configure_billing_service(service: BillingService | None) -> None:
    global _billing_service
    _billing_service = service


def configure_cluster_service(service: ClusterService | None) -> None:
    global _cluster_service
    _cluster_service = service


def get_usage_service() -> UsageService:
    if _usage_service is None:
        raise UsageRequestError("usage service is not configured")
    return _usage_service


def get_billing_service() -> BillingService:
    if _billing_service is None:
        raise UsageRequestError("billing service is not configured")
    return _billing_service


def get_cluster_service() -> ClusterService:
    if _cluster_service is None:
        raise UsageRequestError("cluster service is not configured")
    return _cluster_service


def reset_services() -> None:
    """Drop every configured service (used in tests)."""

    configure_usage_service(None)
    configure_billing_service(None)
    configure_cluster_service(None)


def _static_token(token: str) -> Callable[[], str]:
    def provider() -> str:
        return token

    return provider


def _missing_identity() -> str:
    raise ValueError("identity service is not configured; set KEYSTONE_URL")


def build_services(settings: Settings) -> None:
    """Create the upstream clients and services described by ``settings``."""

    timeout = settings.upstream_timeout_seconds
    verify = settings.upstream_verify_tls

    keystone: KeystoneClient | None = None
    if settings.keystone_url:
        credentials = AdminCredentials(
            username=settings.admin_username,
            password=settings.admin_password,
            user_domain_name=settings.admin_domain_name,
            project_name=settings.admin_project_name,
            project_domain_id=settings.admin_domain_id,
        )
        keystone = KeystoneClient(settings.keystone_url, credentials, timeout=timeout, verify=verify)
    else:
        logger.warning("KEYSTONE_URL is not set; usage and cluster endpoints will fail")

    gnocchi: GnocchiClient | None = None
    if settings.gnocchi_url:
        gnocchi = GnocchiClient(settings.gnocchi_url, timeout=timeout, verify=verify)
    else:
        logger.warning("GNOCCHI_URL is not set; usage and billing endpoints will fail")

    nova: NovaClient | None = None
    if settings.nova_url:
        nova = NovaClient(settings.nova_url, timeout=timeout, verify=verify)

    admin_token = keystone.get_admin_token if keystone is not None else _missing_identity
    gnocchi_factory = gnocchi.with_token if gnocchi is not None else None

    billing_token = _static_token(settings.gnocchi_token) if settings.gnocchi_token else admin_token

    cache = InMemorySnapshotCache() if settings.cache_enabled else NullSnapshotCache()
    configure_usage_service(
        UsageService(
            domains_file=settings.domains_file,
            identity=keystone,
            metrics_factory=gnocchi_factory,
            cache=cache,
            cache_ttl=settings.cache_ttl_seconds,
            max_concurrency=settings.max_concurrency,
            deadline_seconds=settings.deadline_seconds,
        )
    )
    configure_billing_service(
        BillingService(metrics_factory=gnocchi_factory, token_provider=billing_token, pricing=load_pricing())
    )
    configure_cluster_service(
        ClusterService(
            token_provider=admin_token,
            compute_factory=nova.with_token if nova is not None else None,
            storage_factory=gnocchi_factory,
            overcommit_ratio=settings.overcommit_ratio,
        )
    )
