"""Gnocchi (metrics service) client: instance inventory and measurement series."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from vhi_usage.domain import MeasurementSample, VMResource

from .errors import UpstreamError, UpstreamNotFound
from .http import UpstreamClient

logger = logging.getLogger(__name__)

DEFAULT_GRANULARITY = 300
GNOCCHI_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass(slots=True, frozen=True)
class ProvisionedStorage:
    """Sum of ``volume.size`` across every volume in the cluster."""

    total_gib: float

    @property
    def total_tib(self) -> float:
        return self.total_gib / 1024.0


def parse_timestamp(value: str) -> datetime:
    """Parse a Gnocchi timestamp; naive values are taken as UTC."""

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_measure(raw: Any) -> MeasurementSample | None:
    if not isinstance(raw, (list, tuple)) or len(raw) != 3:
        return None
    timestamp, granularity, value = raw
    if not isinstance(timestamp, str) or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        moment = parse_timestamp(timestamp)
    except ValueError:
        return None
    return MeasurementSample(
        timestamp=moment,
        value=float(value),
        granularity=float(granularity) if isinstance(granularity, (int, float)) else None,
    )


class GnocchiClient(UpstreamClient):
    """Client for the metrics service; ``base_url`` already includes ``/v1``."""

    service_name = "gnocchi"

    def with_token(self, token: str) -> "GnocchiClient":
        """Return a client authenticated with ``token`` that shares this client's connection pool."""

        return GnocchiClient(self._base_url, token=token, timeout=self._timeout, http_client=self._client)

    @staticmethod
    def _to_resource(item: dict[str, Any]) -> VMResource:
        metrics = item.get("metrics") or {}
        return VMResource(
            instance_id=str(item.get("id") or ""),
            project_id=str(item.get("project_id") or ""),
            display_name=str(item.get("display_name") or ""),
            metrics={str(key): str(value) for key, value in metrics.items()},
            flavor_name=item.get("flavor_name"),
        )

    # ------------------------------------------------------------------
    # inventory
    # ------------------------------------------------------------------
    def list_instances(self) -> list[VMResource]:
        payload = self._decode(self._request("GET", "resource/instance"))
        if not isinstance(payload, list):
            raise UpstreamError("gnocchi instance listing is not a list")
        return [self._to_resource(item) for item in payload if isinstance(item, dict) and item.get("id")]

    def get_instance(self, instance_id: str) -> VMResource:
        payload = self._decode(self._request("GET", f"resource/instance/{instance_id}"))
        if not isinstance(payload, dict):
            raise UpstreamError("gnocchi instance payload is not an object")
        return self._to_resource(payload)

    # ------------------------------------------------------------------
    # measures
    # ------------------------------------------------------------------
    def get_measures(
        self,
        metric_id: str,
        start: str | None = None,
        stop: str | None = None,
        granularity: int = DEFAULT_GRANULARITY,
    ) -> list[MeasurementSample]:
        """Return the ``mean`` aggregation of ``metric_id`` ordered by timestamp."""

        params: dict[str, Any] = {"granularity": granularity, "aggregation": "mean"}
        if start:
            params["start"] = start
        if stop:
            params["stop"] = stop

        payload = self._decode(self._request("GET", f"metric/{metric_id}/measures", params=params))
        if not isinstance(payload, list):
            raise UpstreamError("gnocchi measures payload is not a list")

        samples: list[MeasurementSample] = []
        for raw in payload:
            sample = _parse_measure(raw)
            if sample is not None:
                samples.append(sample)
        return samples

    def get_latest_sample(self, series_id: str) -> MeasurementSample:
        samples = self.get_measures(series_id)
        if not samples:
            raise UpstreamNotFound(service=self.service_name, message=f"metric {series_id} has no data points")
        return samples[-1]

    def get_provisioned_storage(self, *, now: datetime | None = None) -> ProvisionedStorage:
        """Sum the latest ``volume.size`` over all volumes (last hour window)."""

        now = now or datetime.now(timezone.utc)
        params = {
            "details": "False",
            "needed_overlap": "0.0",
            "start": (now - timedelta(hours=1)).strftime(GNOCCHI_TIME_FORMAT),
            "stop": now.strftime(GNOCCHI_TIME_FORMAT),
        }
        body = {
            "operations": "(aggregate sum (metric volume.size mean))",
            "search": {},
            "resource_type": "volume",
        }
        payload = self._decode(self._request("POST", "aggregates", params=params, json=body))

        # newer releases nest the series under measures.aggregated, older ones return the bare list
        if isinstance(payload, dict):
            points = (payload.get("measures") or {}).get("aggregated") or []
        else:
            points = payload or []

        samples = [sample for sample in (_parse_measure(point) for point in points) if sample is not None]
        if not samples:
            raise UpstreamNotFound(service=self.service_name, message="no aggregated data points returned")
        latest = samples[-1]
        logger.info("Gnocchi provisioned storage: %.2f GiB", latest.value)
        return ProvisionedStorage(total_gib=latest.value)


__all__ = ["GnocchiClient", "ProvisionedStorage", "parse_timestamp"]
