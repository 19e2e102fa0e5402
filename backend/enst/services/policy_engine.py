"""
policy_engine.py

Purpose:
  Replays recorded windows under "what-if" power / thermal / grid caps and
  quantifies the throughput and cost impact against the unconstrained baseline.

Rule Order (per record, stateless):
  1. **energy_cap**: power_w > energy_cap_w           -> throttle
  2. **thermal_cap**: thermal_headroom_w < thermal_cap_w -> throttle
  3. **grid_stress**: grid_stress_index > grid_stress_cap -> migrate flag only

  Violations compound: the applied throttle factor is the most restrictive
  (minimum) of all triggered factors. The migrate flag is independent of
  throttling. Caps set to None, and record fields that are None, are skipped.

Throttle Model:
  - work_units, validated_work_units, cpu_core_seconds, gpu_seconds scale by f.
  - energy_j scales by (0.5 + 0.5 * f): idle draw does not vanish, so energy
    never drops below 50% of the original.
  - ENST is recomputed from the throttled pair.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, Iterator, Optional

from pydantic import ValidationError

from enst.models.domain import (
    ImpactDelta,
    ImpactSummary,
    ImpactTotals,
    Policy,
    PolicyEvaluation,
    PolicyViolation,
    TsvRecord,
    ViolationCounts,
    ViolationType,
)
from enst.services.cost import (
    DEFAULT_PRICE_USD_PER_MWH,
    REFERENCE_WORK_UNITS,
    cost_usd,
    delta_cost_per_reference_work,
    resolve_price,
)
from enst.services.enst_engine import compute_enst

logger = logging.getLogger(__name__)

IDLE_ENERGY_FRACTION = 0.5

_THROTTLED_FIELDS = ("work_units", "validated_work_units", "cpu_core_seconds", "gpu_seconds")


# ============================================================
# 1) POLICY LOADING
# ============================================================

def parse_policy(value: Any) -> Optional[Policy]:
    """
    Accepts a Policy, a dict, a JSON string or a path to a JSON file.
    Anything unparsable is a configuration error (ValueError).
    """
    if value is None:
        return None
    if isinstance(value, Policy):
        return value

    data = value
    if isinstance(value, str):
        text = value.strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            if not os.path.isfile(text):
                raise ValueError(f"Policy is neither valid JSON nor a readable file: {text!r}")
            try:
                with open(text, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Failed to parse policy file {text}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Policy must be a JSON object")
    try:
        return Policy.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid policy: {e}") from e


# ============================================================
# 2) PER-RECORD EVALUATION
# ============================================================

def evaluate_policy(record: TsvRecord, policy: Policy) -> PolicyEvaluation:
    result = PolicyEvaluation()

    def throttle(kind: ViolationType, actual: float, cap: float) -> None:
        result.throttle_applied = True
        result.throttle_factor = min(result.throttle_factor, float(policy.throttle_factor))
        result.violations.append(PolicyViolation(type=kind, actual=float(actual), cap=float(cap)))

    if policy.energy_cap_w is not None and record.power_w is not None:
        if record.power_w > policy.energy_cap_w:
            throttle(ViolationType.ENERGY_CAP, record.power_w, policy.energy_cap_w)

    if policy.thermal_cap_w is not None and record.thermal_headroom_w is not None:
        if record.thermal_headroom_w < policy.thermal_cap_w:
            throttle(ViolationType.THERMAL_CAP, record.thermal_headroom_w, policy.thermal_cap_w)

    if policy.grid_stress_cap is not None and record.grid_stress_index is not None:
        if record.grid_stress_index > policy.grid_stress_cap:
            result.migrate_flag = True
            result.violations.append(
                PolicyViolation(
                    type=ViolationType.GRID_STRESS,
                    actual=float(record.grid_stress_index),
                    cap=float(policy.grid_stress_cap),
                )
            )

    return result


def apply_throttle(record: TsvRecord, evaluation: PolicyEvaluation) -> TsvRecord:
    if not evaluation.throttle_applied:
        return record.model_copy()

    factor = float(evaluation.throttle_factor)
    update: Dict[str, Any] = {}
    for name in _THROTTLED_FIELDS:
        value = getattr(record, name)
        if value is not None:
            update[name] = value * factor

    if record.energy_j is not None:
        update["energy_j"] = record.energy_j * (IDLE_ENERGY_FRACTION + factor * (1.0 - IDLE_ENERGY_FRACTION))

    update["policy_evaluation"] = evaluation
    throttled = record.model_copy(update=update)
    throttled.enst = compute_enst(throttled)
    return throttled


def apply_policy_stream(records: Iterable[TsvRecord], policy: Policy) -> Iterator[TsvRecord]:
    """Lazy; every output carries its evaluation, throttled or not."""
    for record in records:
        evaluation = evaluate_policy(record, policy)
        processed = apply_throttle(record, evaluation)
        processed.policy_evaluation = evaluation
        yield processed


# ============================================================
# 3) IMPACT SUMMARY
# ============================================================

def _pct(delta: float, base: float) -> float:
    return (delta / base) * 100.0 if base > 0 else 0.0


def _totals(records: Iterable[TsvRecord], default_price: float) -> ImpactTotals:
    energy = 0.0
    work = 0.0
    price_energy = 0.0
    weighted_price = 0.0
    count = 0

    for record in records:
        count += 1
        energy += record.energy_j or 0.0
        work += record.work_units or 0.0

        price, _ = resolve_price(record, default_price)
        record_energy = max(0.0, record.energy_j or 0.0)
        price_energy += record_energy
        weighted_price += record_energy * price

    avg_price = weighted_price / price_energy if price_energy > 0 else float(default_price)
    return ImpactTotals(
        enst_units_per_j=work / energy if energy > 0 else 0.0,
        energy_j=energy,
        work_units=work,
        price_usd_per_mwh=avg_price,
        cost_usd=cost_usd(energy, avg_price),
        record_count=count,
    )


def compute_policy_impact(
    baseline: Iterable[TsvRecord],
    policy: Iterable[TsvRecord],
    default_price: float = DEFAULT_PRICE_USD_PER_MWH,
) -> ImpactSummary:
    policy_records = list(policy)
    base = _totals(baseline, default_price)
    pol = _totals(policy_records, default_price)

    delta = ImpactDelta(
        enst_units_per_j=pol.enst_units_per_j - base.enst_units_per_j,
        enst_pct=_pct(pol.enst_units_per_j - base.enst_units_per_j, base.enst_units_per_j),
        energy_j=pol.energy_j - base.energy_j,
        energy_j_pct=_pct(pol.energy_j - base.energy_j, base.energy_j),
        work_units=pol.work_units - base.work_units,
        work_units_pct=_pct(pol.work_units - base.work_units, base.work_units),
        cost_usd=pol.cost_usd - base.cost_usd,
        cost_usd_pct=_pct(pol.cost_usd - base.cost_usd, base.cost_usd),
    )

    violations = ViolationCounts()
    throttled = 0
    migrate = 0
    for record in policy_records:
        evaluation = record.policy_evaluation
        if evaluation is None:
            continue
        if evaluation.throttle_applied:
            throttled += 1
        if evaluation.migrate_flag:
            migrate += 1
        for v in evaluation.violations:
            name = ViolationType(v.type).value
            setattr(violations, name, getattr(violations, name) + 1)

    summary = ImpactSummary(
        baseline=base,
        policy=pol,
        delta=delta,
        delta_cost_usd_per_1e9_work_units=delta_cost_per_reference_work(
            base.enst_units_per_j,
            pol.enst_units_per_j,
            base.price_usd_per_mwh,
            reference_work_units=REFERENCE_WORK_UNITS,
            policy_price_usd_per_mwh=pol.price_usd_per_mwh,
        ),
        violations=violations,
        throttled_windows=throttled,
        migrate_flagged_windows=migrate,
    )
    logger.debug(
        "Policy impact: %d/%d windows throttled, %d migrate-flagged",
        throttled, pol.record_count, migrate,
    )
    return summary
