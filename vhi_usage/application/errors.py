"""Request-fatal errors raised by the application services."""
from __future__ import annotations


class UsageRequestError(Exception):
    """Raised when a request cannot produce any result; carries the HTTP status to answer with."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ScopeError(UsageRequestError):
    """The domain scope or the admin token could not be established."""


class InventoryError(UsageRequestError):
    """The VM inventory could not be listed."""


class BillingError(UsageRequestError):
    """A per-instance billing request failed."""


__all__ = ["BillingError", "InventoryError", "ScopeError", "UsageRequestError"]
