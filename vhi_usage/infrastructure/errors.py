"""Exceptions raised by the upstream OpenStack clients."""
from __future__ import annotations


class UpstreamError(RuntimeError):
    """Raised when an upstream service call fails."""


class UpstreamTimeout(UpstreamError):
    """Raised when an upstream call exceeds its transport timeout."""


class UpstreamStatusError(UpstreamError):
    """Raised when an upstream service answers with an unexpected status code."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        *,
        service: str = "upstream",
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.service = service
        if message is None:
            message = f"{service} returned status {status_code}"
            if body:
                message = f"{message}: {body}"
        super().__init__(message)


class UpstreamNotFound(UpstreamStatusError):
    """Raised for 404 responses and for lookups that matched nothing."""

    def __init__(self, body: str = "", *, service: str = "upstream", message: str | None = None) -> None:
        super().__init__(404, body, service=service, message=message)


class UpstreamUnauthorized(UpstreamStatusError):
    """Raised for 401/403 responses."""


def status_error(status_code: int, body: str, *, service: str) -> UpstreamStatusError:
    """Map an HTTP status code onto the matching exception type."""

    if status_code == 404:
        return UpstreamNotFound(body, service=service)
    if status_code in (401, 403):
        return UpstreamUnauthorized(status_code, body, service=service)
    return UpstreamStatusError(status_code, body, service=service)


__all__ = [
    "UpstreamError",
    "UpstreamNotFound",
    "UpstreamStatusError",
    "UpstreamTimeout",
    "UpstreamUnauthorized",
    "status_error",
]
