from __future__ import annotations

import json
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
sys.path.append(str(ROOT / "scripts"))

import httpx
import pandas as pd

import generate_monthly_billing as script


def test_month_bounds_and_previous_month():
    assert script.month_bounds("2024-02") == ("2024-02-01T00:00:00", "2024-02-29T23:59:59")
    assert script.previous_month(date(2026, 1, 10)) == "2025-12"
    assert script.previous_month(date(2026, 7, 1)) == "2026-06"


def test_read_instances(tmp_path):
    path = tmp_path / "instances.txt"
    path.write_text("# id:customer\nvm-1:Customer_A\n\nvm-2\n", encoding="utf-8")

    assert script.read_instances(path) == [("vm-1", "Customer_A"), ("vm-2", "vm-2")]


def test_generate_writes_reports_and_summary(tmp_path):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        instance_id = request.url.path.rsplit("/", 1)[-1]
        if instance_id == "vm-bad":
            return httpx.Response(404, json={"detail": "instance not found"})
        return httpx.Response(
            200,
            json={
                "instance_id": instance_id,
                "instance_name": "web",
                "flavor_name": "small",
                "vcpus": 2,
                "cpu_usage": {"average_percent": 12.5},
                "memory_usage": {"average_used_gb": 1.5},
                "cpu_cost": 1.25,
                "memory_cost": 0.75,
                "total_cost": 2.0,
                "currency": "USD",
            },
        )

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://api.test/api/v1/")

    summary = script.generate(
        client,
        [("vm-1", "Customer_A"), ("vm-bad", "Customer_B")],
        "2026-01",
        tmp_path,
        cpu_price=0.08,
    )

    assert seen[0]["start_date"] == "2026-01-01T00:00:00"
    assert seen[0]["end_date"] == "2026-01-31T23:59:59"
    assert seen[0]["cpu_price_per_hour"] == "0.08"
    assert "memory_price_per_gb" not in seen[0]

    target = tmp_path / "2026-01"
    report = json.loads((target / "Customer_A_vm-1_report.json").read_text(encoding="utf-8"))
    assert report["total_cost"] == 2.0
    invoice = (target / "Customer_A_vm-1_invoice.txt").read_text(encoding="utf-8")
    assert "TOTAL:              2.00 USD" in invoice
    assert not (target / "Customer_B_vm-bad_report.json").exists()

    assert list(summary["Customer"]) == ["Customer_A"]
    written = pd.read_csv(target / "billing_summary.csv")
    assert list(written.columns) == script.SUMMARY_COLUMNS
    assert written.loc[0, "Total_Cost"] == 2.0
    assert written.loc[0, "Period"] == "2026-01"
