"""
replay.py

Purpose:
  Replays recorded TSV windows: optional site/time filtering, ENST derivation,
  then either descriptive statistics or a baseline-vs-policy impact summary.

Pipeline:
  filter_records -> compute_enst_stream -> (compute_replay_stats | apply_policy_stream -> compute_policy_impact)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from enst.models.domain import ImpactSummary, Policy, ReplayStats, TsvRecord, WorkUnitsMode
from enst.services.cost import DEFAULT_PRICE_USD_PER_MWH
from enst.services.enst_engine import compute_enst_stream
from enst.services.policy_engine import apply_policy_stream, compute_policy_impact
from enst.services.window_keyer import US_PER_S
from enst.services.work_units import DEFAULT_GPU_WEIGHT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayFilter:
    """All bounds inclusive; timestamps in µs against ts_start."""
    site_id: Optional[str] = None
    start_ts: Optional[int] = None
    end_ts: Optional[int] = None

    def accepts(self, record: TsvRecord) -> bool:
        if self.site_id is not None and record.site_id != self.site_id:
            return False
        if self.start_ts is not None and record.ts_start < self.start_ts:
            return False
        if self.end_ts is not None and record.ts_start > self.end_ts:
            return False
        return True


def filter_records(records: Iterable[TsvRecord], flt: Optional[ReplayFilter] = None) -> Iterator[TsvRecord]:
    if flt is None:
        yield from records
        return
    for record in records:
        if flt.accepts(record):
            yield record


def compute_replay_stats(records: Iterable[TsvRecord]) -> ReplayStats:
    count = 0
    sites = set()
    min_ts: Optional[int] = None
    max_ts: Optional[int] = None
    cpu_values: List[float] = []
    enst_values: List[float] = []

    for record in records:
        count += 1
        sites.add(record.site_id)
        min_ts = record.ts_start if min_ts is None else min(min_ts, record.ts_start)
        max_ts = record.ts_start if max_ts is None else max(max_ts, record.ts_start)
        if record.cpu_util is not None:
            cpu_values.append(record.cpu_util)
        if record.enst is not None:
            enst_values.append(record.enst)

    return ReplayStats(
        record_count=count,
        site_count=len(sites),
        sites=sorted(sites),
        min_ts=min_ts,
        max_ts=max_ts,
        time_range_s=(max_ts - min_ts) / US_PER_S if count else 0.0,
        mean_cpu_util=math.fsum(cpu_values) / len(cpu_values) if cpu_values else None,
        mean_enst=math.fsum(enst_values) / len(enst_values) if enst_values else None,
    )


def run_replay(
    records: Iterable[TsvRecord],
    policy: Policy,
    mode: WorkUnitsMode = WorkUnitsMode.INFRA,
    gpu_weight: float = DEFAULT_GPU_WEIGHT,
    default_price: float = DEFAULT_PRICE_USD_PER_MWH,
    flt: Optional[ReplayFilter] = None,
) -> ImpactSummary:
    baseline = list(compute_enst_stream(filter_records(records, flt), mode=mode, gpu_weight=gpu_weight))
    policy_records = apply_policy_stream(baseline, policy)

    summary = compute_policy_impact(baseline, policy_records, default_price=default_price)
    summary.policy_config = policy
    summary.work_units_mode = mode

    logger.info(
        "Replay of %d windows under %s: delta ENST %.2f%%, delta cost $%.2f",
        summary.baseline.record_count,
        policy.model_dump(exclude_none=True),
        summary.delta.enst_pct,
        summary.delta.cost_usd,
    )
    return summary
