from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Query

from vhi_usage.application import UsageRequestError, get_billing_service
from vhi_usage.core.schema import BillingReport, CPUBillingResponse, ResourceUsage

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/cpu/{instance_id}", response_model=CPUBillingResponse)
async def cpu_billing(
    instance_id: str,
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
) -> CPUBillingResponse:
    try:
        service = get_billing_service()
        return await asyncio.to_thread(service.cpu_billing, instance_id, start_date, end_date)
    except UsageRequestError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/resources/{instance_id}", response_model=ResourceUsage)
async def resource_usage(
    instance_id: str,
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
) -> ResourceUsage:
    try:
        service = get_billing_service()
        return await asyncio.to_thread(service.resource_usage, instance_id, start_date, end_date)
    except UsageRequestError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/report/{instance_id}", response_model=BillingReport)
async def billing_report(
    instance_id: str,
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    cpu_price_per_hour: float | None = Query(default=None, ge=0),
    memory_price_per_gb: float | None = Query(default=None, ge=0),
) -> BillingReport:
    try:
        service = get_billing_service()
        return await asyncio.to_thread(
            service.billing_report,
            instance_id,
            start_date,
            end_date,
            cpu_price_per_hour=cpu_price_per_hour,
            memory_price_per_gb_hour=memory_price_per_gb,
        )
    except UsageRequestError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
