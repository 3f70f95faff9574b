"""CPU and memory usage statistics and the cost arithmetic for billing reports.

CPU samples are cumulative nanosecond counters, so usage is derived per
interval::

    cpu% = delta_ns / (delta_seconds * vcpus * 1e9) * 100

Intervals with a negative counter delta (restart, live migration, counter
reset), a non-positive time delta, or a percentage outside ``[0, 110]`` are
discarded.  Memory samples are absolute megabyte values.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pandas as pd

from vhi_usage.core.pricing import Pricing
from vhi_usage.core.schema import (
    BillingReport,
    CPUBillingInfo,
    CPUUsageStats,
    DailyMemUsage,
    DailyUsage,
    HourlyUsage,
    MemoryUsageStats,
)
from vhi_usage.domain import MeasurementSample, VMResource

logger = logging.getLogger(__name__)

NANOSECONDS = 1e9
# 10% headroom over a fully busy vCPU absorbs sampling jitter
MAX_CPU_PERCENT = 110.0
PERIOD_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _samples_frame(samples: Sequence[MeasurementSample]) -> pd.DataFrame:
    frame = pd.DataFrame(
        {
            "timestamp": [sample.timestamp for sample in samples],
            "value": [float(sample.value) for sample in samples],
        }
    )
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    return frame


def _percentile(values: Sequence[float], p: float) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0.0
    index = min(int(len(ordered) * p / 100.0), len(ordered) - 1)
    return float(ordered[index])


# ----------------------------------------------------------------------
# billing period
# ----------------------------------------------------------------------
def previous_month_period(now: datetime | None = None) -> tuple[str, str]:
    """Return ``(start, end)`` covering the whole previous calendar month."""

    now = now or datetime.now(timezone.utc)
    first_of_this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month_end = first_of_this_month - timedelta(seconds=1)
    last_month_start = last_month_end.replace(day=1, hour=0, minute=0, second=0)
    return last_month_start.strftime(PERIOD_FORMAT), last_month_end.strftime(PERIOD_FORMAT)


def parse_period_bound(value: str) -> datetime:
    return datetime.strptime(value, PERIOD_FORMAT)


def period_hours(start: str, end: str) -> float:
    return (parse_period_bound(end) - parse_period_bound(start)).total_seconds() / 3600.0


# ----------------------------------------------------------------------
# CPU
# ----------------------------------------------------------------------
def calculate_cpu_usage(samples: Sequence[MeasurementSample], vcpus: int) -> CPUUsageStats:
    if len(samples) < 2:
        logger.warning("Not enough CPU measures (%d), need at least 2", len(samples))
        return CPUUsageStats()
    if vcpus <= 0:
        logger.warning("Invalid vCPU count (%d), defaulting to 1", vcpus)
        vcpus = 1

    frame = _samples_frame(samples)
    frame["delta_ns"] = frame["value"].diff()
    frame["delta_s"] = frame["timestamp"].diff().dt.total_seconds()
    intervals = frame.iloc[1:]

    negative = intervals["delta_ns"] < 0
    bad_time = ~negative & ~(intervals["delta_s"] > 0)
    candidates = intervals[~negative & ~bad_time].copy()
    candidates["cpu_percent"] = candidates["delta_ns"] / (candidates["delta_s"] * vcpus * NANOSECONDS) * 100
    abnormal = (candidates["cpu_percent"] < 0) | (candidates["cpu_percent"] > MAX_CPU_PERCENT)
    valid = candidates[~abnormal].copy()
    valid["cpu_seconds"] = valid["delta_ns"] / NANOSECONDS

    logger.info(
        "CPU usage: %d intervals, %d valid, %d negative, %d abnormal",
        len(intervals),
        len(valid),
        int(negative.sum()),
        int(bad_time.sum()) + int(abnormal.sum()),
    )

    if valid.empty:
        logger.warning("No valid CPU data points after filtering")
        return CPUUsageStats()

    hourly = [
        HourlyUsage(
            timestamp=row.timestamp.isoformat(),
            cpu_percent=float(row.cpu_percent),
            cpu_seconds=float(row.cpu_seconds),
        )
        for row in valid.itertuples(index=False)
    ]

    valid["date"] = valid["timestamp"].dt.strftime("%Y-%m-%d")
    daily_frame = valid.groupby("date", sort=True).agg(
        avg_percent=("cpu_percent", "mean"),
        max_percent=("cpu_percent", "max"),
        min_percent=("cpu_percent", "min"),
        cpu_seconds=("cpu_seconds", "sum"),
    )
    daily = [
        DailyUsage(
            date=str(row.date),
            average_cpu_percent=float(row.avg_percent),
            max_cpu_percent=float(row.max_percent),
            min_cpu_percent=float(row.min_percent),
            total_cpu_hours=float(row.cpu_seconds) / 3600.0,
        )
        for row in daily_frame.reset_index().itertuples(index=False)
    ]

    percentages = valid["cpu_percent"]
    return CPUUsageStats(
        total_data_points=len(valid),
        average_percent=float(percentages.mean()),
        max_percent=float(percentages.max()),
        min_percent=float(percentages.min()),
        median_percent=float(percentages.median()),
        percentile_95=_percentile(percentages.tolist(), 95),
        usage_by_hour=hourly,
        usage_by_day=daily,
    )


def calculate_cpu_billing(usage: CPUUsageStats, start: str, end: str) -> CPUBillingInfo:
    hours = period_hours(start, end)
    cpu_hours = sum(day.total_cpu_hours for day in usage.usage_by_day)
    return CPUBillingInfo(
        total_cpu_hours=cpu_hours,
        total_cpu_core_hours=cpu_hours,
        average_cpu_percent=usage.average_percent,
        billing_period_days=int(math.ceil(hours / 24.0)),
        billing_period_hours=hours,
    )


# ----------------------------------------------------------------------
# memory
# ----------------------------------------------------------------------
def calculate_memory_usage(
    usage_samples: Sequence[MeasurementSample],
    total_samples: Sequence[MeasurementSample],
) -> MemoryUsageStats:
    if not usage_samples or not total_samples:
        return MemoryUsageStats()

    total_mb = float(total_samples[0].value)
    frame = _samples_frame(usage_samples).rename(columns={"value": "used_mb"})
    frame["percent"] = frame["used_mb"] / total_mb * 100 if total_mb > 0 else 0.0
    frame["date"] = frame["timestamp"].dt.strftime("%Y-%m-%d")

    daily_frame = frame.groupby("date", sort=True).agg(
        used_mb=("used_mb", "mean"),
        percent=("percent", "mean"),
    )
    daily = [
        DailyMemUsage(date=str(row.date), average_used_mb=float(row.used_mb), average_percent=float(row.percent))
        for row in daily_frame.reset_index().itertuples(index=False)
    ]

    average_mb = float(frame["used_mb"].mean())
    return MemoryUsageStats(
        average_used_mb=average_mb,
        average_used_gb=average_mb / 1024.0,
        max_used_mb=float(frame["used_mb"].max()),
        min_used_mb=float(frame["used_mb"].min()),
        average_percent=float(frame["percent"].mean()),
        total_memory_mb=total_mb,
        usage_by_day=daily,
    )


# ----------------------------------------------------------------------
# report
# ----------------------------------------------------------------------
def build_billing_report(
    instance: VMResource,
    *,
    start: str,
    end: str,
    pricing: Pricing,
    vcpus: int = 0,
    cpu_usage: CPUUsageStats | None = None,
    memory_usage: MemoryUsageStats | None = None,
    generated_at: datetime | None = None,
) -> BillingReport:
    """Price CPU-hours and memory GB-hours for a single instance."""

    report = BillingReport(
        instance_id=instance.instance_id,
        instance_name=instance.display_name,
        flavor_name=instance.flavor_name,
        start_date=start,
        end_date=end,
        generated_at=(generated_at or datetime.now(timezone.utc)).isoformat(timespec="seconds"),
        currency=pricing.currency,
        cpu_price_per_hour=pricing.cpu_price_per_hour,
        memory_price_per_gb_hour=pricing.memory_price_per_gb_hour,
    )

    if cpu_usage is not None:
        billing = calculate_cpu_billing(cpu_usage, start, end)
        report.cpu_usage = cpu_usage
        report.vcpus = vcpus
        report.cpu_cost = billing.total_cpu_hours * pricing.cpu_price_per_hour

    if memory_usage is not None:
        report.memory_usage = memory_usage
        report.memory_cost = memory_usage.average_used_gb * period_hours(start, end) * pricing.memory_price_per_gb_hour

    report.total_cost = report.cpu_cost + report.memory_cost
    return report


__all__ = [
    "build_billing_report",
    "calculate_cpu_billing",
    "calculate_cpu_usage",
    "calculate_memory_usage",
    "parse_period_bound",
    "period_hours",
    "previous_month_period",
]
