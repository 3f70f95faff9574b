"""Shared plumbing for the httpx-based OpenStack clients."""
from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import urlparse

import httpx

from .errors import UpstreamError, UpstreamTimeout, status_error

BODY_SNIPPET_LIMIT = 500


class UpstreamClient:
    """Base class holding the base URL, auth token and the underlying ``httpx.Client``."""

    service_name = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        verify: bool = True,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"{self.service_name} base_url must include scheme and host")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client = http_client or httpx.Client(timeout=timeout, verify=verify)
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["X-Auth-Token"] = self._token
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        expected: Iterable[int] = (200,),
    ) -> httpx.Response:
        """Send a request and translate transport and status failures into ``UpstreamError``."""

        url = self._build_url(path)
        try:
            response = self._client.request(
                method.upper(),
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(
                f"{self.service_name} request to {url} timed out after {self._timeout} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"error communicating with {self.service_name} at {url}: {exc}") from exc

        if response.status_code not in tuple(expected):
            raise status_error(
                response.status_code,
                response.text[:BODY_SNIPPET_LIMIT],
                service=self.service_name,
            )
        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"failed to decode {self.service_name} response: {exc}") from exc

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = ["UpstreamClient"]
