from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

import yaml

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


@dataclass(frozen=True)
class Pricing:
    cpu_price_per_hour: float = 0.05
    memory_price_per_gb_hour: float = 0.01
    currency: str = "USD"

    def override(self, *, cpu_price_per_hour: float | None = None, memory_price_per_gb_hour: float | None = None) -> Pricing:
        changes: dict[str, float] = {}
        if cpu_price_per_hour is not None:
            changes["cpu_price_per_hour"] = cpu_price_per_hour
        if memory_price_per_gb_hour is not None:
            changes["memory_price_per_gb_hour"] = memory_price_per_gb_hour
        return replace(self, **changes)


def load_pricing(path: Path | None = None) -> Pricing:
    path = path or CONFIG_DIR / "pricing.yaml"
    if not path.exists():
        return Pricing()
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    defaults = Pricing()
    return Pricing(
        cpu_price_per_hour=float(data.get("cpu_price_per_hour", defaults.cpu_price_per_hour)),
        memory_price_per_gb_hour=float(data.get("memory_price_per_gb_hour", defaults.memory_price_per_gb_hour)),
        currency=str(data.get("currency", defaults.currency)),
    )


DEFAULT_PRICING = load_pricing()
