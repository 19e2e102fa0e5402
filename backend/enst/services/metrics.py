"""
metrics.py

Purpose:
  In-process gauge registry rendered in the Prometheus text exposition format.
  Gauges are keyed by (name, labels); the latest value wins.
"""
from __future__ import annotations

import math
import threading
from typing import Dict, Optional, Tuple

from enst.models.domain import TsvRecord

LabelSet = Tuple[Tuple[str, str], ...]

# record field -> gauge name
TSV_GAUGES = (
    ("power_w", "tsv_power_w"),
    ("energy_j", "tsv_energy_j_window"),
    ("job_queue_depth", "tsv_job_queue_depth"),
    ("gpu_util", "tsv_gpu_util"),
    ("cpu_util", "tsv_cpu_util"),
    ("enst", "enst_units_per_j"),
    ("work_units", "tsv_work_units"),
    ("pue", "tsv_pue"),
    ("thermal_headroom_w", "tsv_thermal_headroom_w"),
    ("grid_stress_index", "tsv_grid_stress_index"),
)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


class MetricsRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._gauges: Dict[Tuple[str, LabelSet], float] = {}

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        label_set: LabelSet = tuple((k, str(v)) for k, v in (labels or {}).items())
        with self._lock:
            self._gauges[(name, label_set)] = float(value)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        label_set: LabelSet = tuple((k, str(v)) for k, v in (labels or {}).items())
        with self._lock:
            return self._gauges.get((name, label_set))

    def to_prometheus_format(self) -> str:
        with self._lock:
            # One contiguous block per family under its TYPE line.
            items = sorted(self._gauges.items(), key=lambda kv: kv[0])

        lines = []
        seen = set()
        for (name, label_set), value in items:
            if name not in seen:
                lines.append(f"# TYPE {name} gauge")
                seen.add(name)
            if label_set:
                rendered = ",".join(f'{k}="{_escape_label(v)}"' for k, v in label_set)
                lines.append(f"{name}{{{rendered}}} {_format_value(value)}")
            else:
                lines.append(f"{name} {_format_value(value)}")
        return "\n".join(lines) + "\n"

    def clear(self) -> None:
        with self._lock:
            self._gauges.clear()

    def __len__(self) -> int:
        return len(self._gauges)


def update_metrics_from_tsv(registry: MetricsRegistry, record: TsvRecord) -> None:
    labels = {
        "site_id": record.site_id or "unknown",
        "cluster_id": record.cluster_id or "default",
    }
    for attr, gauge in TSV_GAUGES:
        value = getattr(record, attr)
        if value is not None:
            registry.set_gauge(gauge, value, labels)
