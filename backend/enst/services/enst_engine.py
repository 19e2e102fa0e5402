"""
enst_engine.py

Purpose:
  Energy-Normalized System Throughput:
    ENST = work_units / energy_j   [units per joule]

Null Propagation:
  ENST is computed only from a complete pair: energy_j present and > 0 and
  work_units present and >= 0 (zero work is fine). Anything else yields None;
  a ratio over zero or missing energy is undefined, not zero.
"""
from __future__ import annotations

from typing import Iterable, Iterator, Optional

from enst.models.domain import TsvRecord, WorkUnitsMode
from enst.services.work_units import DEFAULT_GPU_WEIGHT, compute_work_units


def compute_enst(record: TsvRecord) -> Optional[float]:
    energy = record.energy_j
    work = record.work_units
    if energy is None or energy <= 0:
        return None
    if work is None or work < 0:
        return None
    return float(work) / float(energy)


def compute_enst_stream(
    records: Iterable[TsvRecord],
    mode: WorkUnitsMode = WorkUnitsMode.INFRA,
    gpu_weight: float = DEFAULT_GPU_WEIGHT,
) -> Iterator[TsvRecord]:
    """
    Lazy, order-preserving, one output per input. Holds only the current
    record; input records are not mutated.
    """
    for record in records:
        work = compute_work_units(record, mode=mode, gpu_weight=gpu_weight)
        update = {
            "work_units": work.value,
            "work_units_mode": work.mode,
        }
        if record.validated_work_units is None:
            update["validated_work_units"] = work.value

        out = record.model_copy(update=update)
        out.enst = compute_enst(out)
        yield out
