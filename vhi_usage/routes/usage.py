from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from vhi_usage.application import UsageRequestError, get_cluster_service, get_usage_service
from vhi_usage.core.schema import ClusterUsage, TotalUsage

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/total", response_model=TotalUsage, response_model_exclude_none=True)
async def total_usage() -> JSONResponse:
    try:
        service = get_usage_service()
        snapshot = await asyncio.to_thread(service.total_usage)
    except UsageRequestError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    body = TotalUsage.from_snapshot(snapshot).model_dump(exclude_none=True)
    # errors are reported alongside a partial total
    status_code = 206 if snapshot.partial else 200
    return JSONResponse(body, status_code=status_code)


@router.get("/cluster", response_model=ClusterUsage)
async def cluster_usage() -> ClusterUsage:
    try:
        service = get_cluster_service()
        return await asyncio.to_thread(service.cluster_usage)
    except UsageRequestError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
