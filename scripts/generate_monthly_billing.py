#!/usr/bin/env python
"""Generate per-customer billing reports for one calendar month.

Each line of the instances file is ``INSTANCE_ID:CUSTOMER``. For every
instance the billing-report endpoint is queried for the whole month; the
JSON report and a plain-text invoice are written under
``OUTPUT_DIR/YYYY-MM`` together with ``billing_summary.csv``.
"""
from __future__ import annotations

import argparse
import calendar
import json
import os
import sys
from datetime import date, datetime
from pathlib import Path

import httpx
import pandas as pd

SUMMARY_COLUMNS = [
    "Customer",
    "Instance_ID",
    "Instance_Name",
    "Flavor",
    "vCPUs",
    "Avg_CPU_%",
    "Avg_Memory_GB",
    "CPU_Cost",
    "Memory_Cost",
    "Total_Cost",
    "Period",
]

INVOICE_TEMPLATE = """\
================================================================================
                                   INVOICE
================================================================================

Customer:           {customer}
Invoice Date:       {invoice_date}
Billing Period:     {period}

Instance Name:      {instance_name}
Instance ID:        {instance_id}
Flavor:             {flavor}
vCPUs:              {vcpus}

Average CPU Usage:  {avg_cpu:.2f}%
Average Memory:     {avg_mem:.2f} GB

CPU Cost:           {cpu_cost:.2f} {currency}
Memory Cost:        {memory_cost:.2f} {currency}
TOTAL:              {total_cost:.2f} {currency}
================================================================================
"""


def previous_month(today: date | None = None) -> str:
    today = today or date.today()
    year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
    return f"{year:04d}-{month:02d}"


def month_bounds(year_month: str) -> tuple[str, str]:
    """Return ``(start, end)`` for ``YYYY-MM`` in the API's period format."""

    parsed = datetime.strptime(year_month, "%Y-%m")
    last_day = calendar.monthrange(parsed.year, parsed.month)[1]
    return f"{year_month}-01T00:00:00", f"{year_month}-{last_day:02d}T23:59:59"


def read_instances(path: Path) -> list[tuple[str, str]]:
    entries: list[tuple[str, str]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        instance_id, _, customer = line.partition(":")
        entries.append((instance_id.strip(), customer.strip() or instance_id.strip()))
    return entries


def summary_row(customer: str, report: dict, period: str) -> dict:
    return {
        "Customer": customer,
        "Instance_ID": report.get("instance_id"),
        "Instance_Name": report.get("instance_name"),
        "Flavor": report.get("flavor_name"),
        "vCPUs": report.get("vcpus", 0),
        "Avg_CPU_%": (report.get("cpu_usage") or {}).get("average_percent", 0.0),
        "Avg_Memory_GB": (report.get("memory_usage") or {}).get("average_used_gb", 0.0),
        "CPU_Cost": report.get("cpu_cost", 0.0),
        "Memory_Cost": report.get("memory_cost", 0.0),
        "Total_Cost": report.get("total_cost", 0.0),
        "Period": period,
    }


def render_invoice(customer: str, report: dict, period: str, *, invoice_date: date | None = None) -> str:
    row = summary_row(customer, report, period)
    return INVOICE_TEMPLATE.format(
        customer=customer,
        invoice_date=(invoice_date or date.today()).isoformat(),
        period=period,
        instance_name=row["Instance_Name"],
        instance_id=row["Instance_ID"],
        flavor=row["Flavor"],
        vcpus=row["vCPUs"],
        avg_cpu=float(row["Avg_CPU_%"]),
        avg_mem=float(row["Avg_Memory_GB"]),
        cpu_cost=float(row["CPU_Cost"]),
        memory_cost=float(row["Memory_Cost"]),
        total_cost=float(row["Total_Cost"]),
        currency=report.get("currency", "USD"),
    )


def generate(
    client: httpx.Client,
    instances: list[tuple[str, str]],
    year_month: str,
    output_dir: Path,
    *,
    cpu_price: float | None = None,
    memory_price: float | None = None,
) -> pd.DataFrame:
    start, end = month_bounds(year_month)
    target = output_dir / year_month
    target.mkdir(parents=True, exist_ok=True)

    params: dict[str, object] = {"start_date": start, "end_date": end}
    if cpu_price is not None:
        params["cpu_price_per_hour"] = cpu_price
    if memory_price is not None:
        params["memory_price_per_gb"] = memory_price

    rows: list[dict] = []
    for instance_id, customer in instances:
        print(f"Processing: {customer} ({instance_id})")
        try:
            response = client.get(f"billing/report/{instance_id}", params=params)
            response.raise_for_status()
            report = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            print(f"  Failed to get report for {customer}: {exc}", file=sys.stderr)
            continue

        stem = f"{customer}_{instance_id}"
        (target / f"{stem}_report.json").write_text(json.dumps(report, indent=2), encoding="utf-8")
        (target / f"{stem}_invoice.txt").write_text(render_invoice(customer, report, year_month), encoding="utf-8")
        rows.append(summary_row(customer, report, year_month))
        print(f"  Total: {float(report.get('total_cost', 0.0)):.2f}")

    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    summary.to_csv(target / "billing_summary.csv", index=False)
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate monthly billing reports from the usage API")
    parser.add_argument("month", nargs="?", help="billing month, YYYY-MM (default: previous month)")
    parser.add_argument("--instances", required=True, help="file of INSTANCE_ID:CUSTOMER lines")
    parser.add_argument("--api-url", default=os.getenv("API_BASE_URL", "http://localhost:8080/api/v1"))
    parser.add_argument("--token", default=os.getenv("API_BEARER_TOKEN", ""), help="bearer token for the API")
    parser.add_argument("--output", default=os.getenv("OUTPUT_DIR", "./billing_reports"))
    parser.add_argument("--cpu-price", type=float, default=None, help="override CPU price per hour")
    parser.add_argument("--memory-price", type=float, default=None, help="override memory price per GB-hour")
    args = parser.parse_args()

    year_month = args.month or previous_month()
    start, end = month_bounds(year_month)
    print(f"Period: {year_month} ({start} .. {end})")

    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}
    with httpx.Client(base_url=args.api_url.rstrip("/") + "/", headers=headers, timeout=600.0) as client:
        summary = generate(
            client,
            read_instances(Path(args.instances)),
            year_month,
            Path(args.output),
            cpu_price=args.cpu_price,
            memory_price=args.memory_price,
        )

    print(f"Total customers: {len(summary)}")
    print(f"Total revenue:   {float(summary['Total_Cost'].sum()) if not summary.empty else 0.0:.2f}")


if __name__ == "__main__":
    main()
