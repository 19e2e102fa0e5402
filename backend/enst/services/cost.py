"""
cost.py

Purpose:
  Converts energy and ENST into money, and compares ENST regimes by the cost of
  producing a fixed reference amount of work.

Units:
  - **Energy**: joules (1 MWh = 3.6e9 J)
  - **Price**: USD per MWh
  - **Reference work**: 1e9 work units

Sentinels:
  - Energy or cost that cannot be produced (ENST absent or <= 0) is UNBOUNDED (math.inf).
  - A delta between regimes where either side is UNBOUNDED is None, never +/-inf.
"""
from __future__ import annotations

import math
from typing import Iterable, NamedTuple, Optional

from enst.models.domain import TsvRecord

JOULES_PER_MWH = 3.6e9
DEFAULT_PRICE_USD_PER_MWH = 50.0
REFERENCE_WORK_UNITS = 1e9

UNBOUNDED = math.inf


class PriceResolution(NamedTuple):
    price: float
    defaulted: bool


class WeightedPrice(NamedTuple):
    avg_price: float
    defaulted_count: int


def cost_usd(energy_j: Optional[float], price_usd_per_mwh: float) -> float:
    if energy_j is None or energy_j <= 0:
        return 0.0
    return (float(energy_j) / JOULES_PER_MWH) * float(price_usd_per_mwh)


def energy_for_work(work_units: float, enst: Optional[float]) -> float:
    if enst is None or enst <= 0:
        return UNBOUNDED
    return float(work_units) / float(enst)


def cost_for_work(work_units: float, enst: Optional[float], price_usd_per_mwh: float) -> float:
    energy_j = energy_for_work(work_units, enst)
    if math.isinf(energy_j):
        return UNBOUNDED
    return cost_usd(energy_j, price_usd_per_mwh)


def delta_cost_per_reference_work(
    enst_baseline: Optional[float],
    enst_policy: Optional[float],
    price_usd_per_mwh: float,
    reference_work_units: float = REFERENCE_WORK_UNITS,
    policy_price_usd_per_mwh: Optional[float] = None,
) -> Optional[float]:
    """
    cost(policy) - cost(baseline) for `reference_work_units` of work.
    Negative means the policy regime is cheaper per unit of work.

    policy_price_usd_per_mwh lets each regime carry its own weighted price;
    it defaults to the baseline price.
    """
    if policy_price_usd_per_mwh is None:
        policy_price_usd_per_mwh = price_usd_per_mwh

    cost_baseline = cost_for_work(reference_work_units, enst_baseline, price_usd_per_mwh)
    cost_policy = cost_for_work(reference_work_units, enst_policy, policy_price_usd_per_mwh)
    if math.isinf(cost_baseline) or math.isinf(cost_policy):
        return None
    return cost_policy - cost_baseline


def resolve_price(record: TsvRecord, default_price: float = DEFAULT_PRICE_USD_PER_MWH) -> PriceResolution:
    if record.price_usd_per_mwh is not None:
        return PriceResolution(float(record.price_usd_per_mwh), False)
    return PriceResolution(float(default_price), True)


def weighted_average_price(
    records: Iterable[TsvRecord],
    default_price: float = DEFAULT_PRICE_USD_PER_MWH,
) -> WeightedPrice:
    """Energy-weighted mean price; default price when total energy is zero."""
    total_energy = 0.0
    weighted_sum = 0.0
    defaulted_count = 0

    for record in records:
        energy_j = max(0.0, record.energy_j or 0.0)
        price, defaulted = resolve_price(record, default_price)
        if defaulted:
            defaulted_count += 1
        total_energy += energy_j
        weighted_sum += energy_j * price

    avg_price = weighted_sum / total_energy if total_energy > 0 else float(default_price)
    return WeightedPrice(avg_price, defaulted_count)


def build_notes(price_defaulted: bool = False, data_source: Optional[str] = None) -> str:
    parts = []
    if price_defaulted:
        parts.append("missing_price_defaulted")
    if data_source:
        parts.append(f"data_source={data_source}")
    return ";".join(parts)
