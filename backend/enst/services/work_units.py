"""
work_units.py

Purpose:
  Computes the work-unit quantity of one TSV record under one of two modes.

Modes:
  - **infra**:  work = cpu_core_seconds + gpu_seconds * gpu_weight
  - **domain**: validated_steps, else timesteps, else infra (reported as
                `infra_fallback`, never as `domain`).

Scaling Constants:
  Raw traces carry utilization fractions but no core or GPU counts. When
  cpu_core_seconds / gpu_seconds are absent they are estimated as
    util * window_duration_s * ASSUMED_{CPU_CORES,GPUS}_PER_SITE
  The assumed counts (100 cores, 8 GPUs) are fixed and not configurable; they
  may need calibration per deployment.
"""
from __future__ import annotations

from typing import Any, NamedTuple

from enst.models.domain import TsvRecord, WorkUnitsMode

ASSUMED_CPU_CORES_PER_SITE = 100
ASSUMED_GPUS_PER_SITE = 8
DEFAULT_WINDOW_DURATION_S = 300
DEFAULT_GPU_WEIGHT = 1.0


class WorkUnitsResult(NamedTuple):
    value: float
    mode: WorkUnitsMode


def parse_work_units_mode(value: Any) -> WorkUnitsMode:
    """
    Boundary validation of a requested mode. Only `infra` and `domain` can be
    requested; `infra_fallback` is an outcome, not a request.
    """
    text = value.value if isinstance(value, WorkUnitsMode) else str(value).strip().lower()
    if text == WorkUnitsMode.INFRA.value:
        return WorkUnitsMode.INFRA
    if text == WorkUnitsMode.DOMAIN.value:
        return WorkUnitsMode.DOMAIN
    raise ValueError(f"Invalid work units mode {value!r}: expected 'infra' or 'domain'")


def compute_work_units_infra(record: TsvRecord, gpu_weight: float = DEFAULT_GPU_WEIGHT) -> float:
    duration_s = record.window_duration_s or DEFAULT_WINDOW_DURATION_S

    cpu_core_seconds = record.cpu_core_seconds
    if cpu_core_seconds is None:
        cpu_core_seconds = (record.cpu_util or 0.0) * duration_s * ASSUMED_CPU_CORES_PER_SITE

    gpu_seconds = record.gpu_seconds
    if gpu_seconds is None:
        gpu_seconds = (record.gpu_util or 0.0) * duration_s * ASSUMED_GPUS_PER_SITE

    return float(cpu_core_seconds + gpu_seconds * float(gpu_weight))


def compute_work_units_domain(record: TsvRecord, gpu_weight: float = DEFAULT_GPU_WEIGHT) -> WorkUnitsResult:
    if record.validated_steps is not None:
        return WorkUnitsResult(float(record.validated_steps), WorkUnitsMode.DOMAIN)
    if record.timesteps is not None:
        return WorkUnitsResult(float(record.timesteps), WorkUnitsMode.DOMAIN)
    return WorkUnitsResult(compute_work_units_infra(record, gpu_weight), WorkUnitsMode.INFRA_FALLBACK)


def compute_work_units(
    record: TsvRecord,
    mode: WorkUnitsMode = WorkUnitsMode.INFRA,
    gpu_weight: float = DEFAULT_GPU_WEIGHT,
) -> WorkUnitsResult:
    if mode == WorkUnitsMode.DOMAIN:
        return compute_work_units_domain(record, gpu_weight)
    return WorkUnitsResult(compute_work_units_infra(record, gpu_weight), WorkUnitsMode.INFRA)
