"""Static bearer-token gate for the ``/api/v1`` routes."""
from __future__ import annotations

import hmac
import logging

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

REALM_HEADER = {"WWW-Authenticate": 'Bearer realm="VHI Billing API"'}


def require_bearer_token(request: Request) -> None:
    expected = request.app.state.settings.api_bearer_token
    if not expected:
        logger.error("API_BEARER_TOKEN is not set; rejecting request")
        raise HTTPException(status_code=500, detail="server misconfiguration")

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="missing or invalid Authorization header", headers=REALM_HEADER)

    if not hmac.compare_digest(token.strip().encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="invalid token", headers=REALM_HEADER)
