"""Keystone (identity v3) client used for the admin token and domain scoping."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from vhi_usage.domain import Project

from .errors import UpstreamError, UpstreamNotFound
from .http import UpstreamClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AdminCredentials:
    """Password credentials for the cluster admin, scoped to a project."""

    username: str = ""
    password: str = ""
    user_domain_name: str = ""
    project_name: str = ""
    project_domain_id: str = ""

    def missing(self) -> list[str]:
        fields = {
            "ADMIN_USERNAME": self.username,
            "ADMIN_PASSWORD": self.password,
            "ADMIN_DOMAIN_NAME": self.user_domain_name,
            "ADMIN_PROJECT_NAME": self.project_name,
            "ADMIN_DOMAIN_ID": self.project_domain_id,
        }
        return [name for name, value in fields.items() if not value]


class KeystoneClient(UpstreamClient):
    """Thin client for the identity endpoints the usage API relies on.

    ``base_url`` is the versioned identity endpoint, e.g.
    ``https://cluster:5000/v3``.
    """

    service_name = "keystone"

    def __init__(
        self,
        base_url: str,
        credentials: AdminCredentials,
        *,
        timeout: float = 30.0,
        verify: bool = True,
        http_client: httpx.Client | None = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, verify=verify, http_client=http_client)
        self._credentials = credentials
        self.admin_project_id: str | None = None

    def _build_auth_payload(self) -> dict:
        creds = self._credentials
        return {
            "auth": {
                "identity": {
                    "methods": ["password"],
                    "password": {
                        "user": {
                            "name": creds.username,
                            "domain": {"name": creds.user_domain_name},
                            "password": creds.password,
                        }
                    },
                },
                "scope": {
                    "project": {
                        "name": creds.project_name,
                        "domain": {"id": creds.project_domain_id},
                    }
                },
            }
        }

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def get_admin_token(self) -> str:
        """Exchange the admin credentials for an ``X-Subject-Token``."""

        missing = self._credentials.missing()
        if missing:
            raise ValueError(f"admin credentials are incomplete; please set {', '.join(missing)}")

        response = self._request("POST", "auth/tokens", json=self._build_auth_payload(), expected=(201,))
        token = response.headers.get("X-Subject-Token")
        if not token:
            raise UpstreamError("keystone response missing X-Subject-Token header")

        try:
            body = response.json()
        except ValueError:
            body = None
        token_info = body.get("token") if isinstance(body, dict) else None
        project = token_info.get("project") if isinstance(token_info, dict) else None
        if not isinstance(project, dict):
            logger.warning("Could not parse keystone token body for the admin project id")
        else:
            self.admin_project_id = project.get("id") or None
            logger.info("Admin project ID: %s (name: %s)", self.admin_project_id, project.get("name"))
        return token

    def list_projects_for_domain(self, token: str, domain_name: str) -> list[Project]:
        """Resolve ``domain_name`` to its id and list the projects it owns."""

        auth = {"X-Auth-Token": token}
        domains = self._decode(self._request("GET", "domains", params={"name": domain_name}, headers=auth))
        if not isinstance(domains, dict):
            raise UpstreamError("keystone domain listing is not an object")
        matches = domains.get("domains") or []
        if not matches:
            raise UpstreamNotFound(service=self.service_name, message=f"no domain found with name {domain_name!r}")
        if not isinstance(matches, list) or not isinstance(matches[0], dict):
            raise UpstreamError("keystone domain entry is not an object")
        domain_id = matches[0].get("id")

        payload = self._decode(self._request("GET", "projects", params={"domain_id": domain_id}, headers=auth))
        if not isinstance(payload, dict):
            raise UpstreamError("keystone project listing is not an object")
        items = payload.get("projects") or []
        if not isinstance(items, list):
            raise UpstreamError("keystone project listing is not a list")
        projects: list[Project] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            projects.append(
                Project(
                    project_id=str(item["id"]),
                    name=str(item.get("name") or ""),
                    domain_id=item.get("domain_id") or domain_id,
                )
            )
        return projects


__all__ = ["AdminCredentials", "KeystoneClient"]
