"""Resolve configured domain names into a project membership map."""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Protocol, Sequence

from vhi_usage.domain import AggregationError, Deadline, Project, ProjectMembership
from vhi_usage.infrastructure import UpstreamError

logger = logging.getLogger(__name__)


class IdentityDirectory(Protocol):
    def list_projects_for_domain(self, token: str, domain_name: str) -> list[Project]: ...


class ScopeResolver:
    """Builds the project -> domain map for one aggregation run.

    Domains are resolved one after another. A domain that fails to resolve, or
    resolves to no projects, is recorded and skipped. Once the deadline has
    passed the current domain is recorded as cancelled and resolution stops.
    """

    def __init__(self, identity: IdentityDirectory) -> None:
        self._identity = identity

    def resolve(
        self,
        domain_names: Sequence[str],
        auth_token: str,
        deadline: Deadline,
    ) -> tuple[ProjectMembership, list[AggregationError]]:
        membership: dict[str, str] = {}
        errors: list[AggregationError] = []

        for domain_name in domain_names:
            if deadline.expired():
                errors.append(
                    AggregationError(
                        domain_name=domain_name,
                        message=f"context cancelled while resolving domain: {deadline.reason()}",
                    )
                )
                break

            try:
                projects = self._identity.list_projects_for_domain(auth_token, domain_name)
            except UpstreamError as exc:
                logger.warning("Failed to list projects for domain %s: %s", domain_name, exc)
                errors.append(
                    AggregationError(domain_name=domain_name, message=f"failed to list projects for domain: {exc}")
                )
                continue

            if not projects:
                errors.append(AggregationError(domain_name=domain_name, message="no projects found for domain"))
                continue

            for project in projects:
                previous = membership.get(project.project_id)
                if previous is not None and previous != domain_name:
                    # last write wins
                    logger.warning(
                        "Project %s is listed under domains %s and %s; keeping %s",
                        project.project_id,
                        previous,
                        domain_name,
                        domain_name,
                    )
                membership[project.project_id] = domain_name

        logger.info(
            "Project to domain mapping: %d projects across %d domains",
            len(membership),
            len(domain_names),
        )
        return MappingProxyType(membership), errors


__all__ = ["IdentityDirectory", "ScopeResolver"]
