"""
ingest.py

Purpose:
  Ingestion boundary. Turns loosely-typed telemetry dicts (cluster traces,
  PDU exports, previously written TSV lines) into canonical structures once,
  so no later stage has to guess field names.

Field Aliases:
  Each concept has an ordered tuple of accepted legacy field names. The first
  alias that is present and parses wins. Dotted aliases ("average_usage.cpus")
  address nested objects as found in Google cluster traces.

Lossy Input Policy:
  Telemetry is lossy by nature. Values that do not parse as finite numbers
  are dropped (None), never raised.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from enst.models.domain import TsvRecord, WorkUnitsMode
from enst.services.window_keyer import normalize_timestamp_us

logger = logging.getLogger(__name__)

_WORK_UNITS_MODES = tuple(m.value for m in WorkUnitsMode)


# ============================================================
# 0) ALIAS TABLES
# ============================================================

USAGE_TS_ALIASES: Tuple[str, ...] = ("ts", "timestamp", "start_time", "time", "ts_start")
USAGE_END_ALIASES: Tuple[str, ...] = ("end_time", "ts_end")
POWER_TS_ALIASES: Tuple[str, ...] = ("ts", "timestamp", "time", "t", "ts_start")

SITE_ALIASES: Tuple[str, ...] = ("site_id", "machine_id", "node_id")

CPU_ALIASES: Tuple[str, ...] = ("cpu_util", "cpu_fraction", "average_usage.cpus", "cpu")
GPU_ALIASES: Tuple[str, ...] = ("gpu_util", "gpu_fraction")
MEM_ALIASES: Tuple[str, ...] = ("mem_util", "mem_fraction", "average_usage.memory")
EVENT_ALIASES: Tuple[str, ...] = ("event_marker", "type", "event_type")

POWER_ALIASES: Tuple[str, ...] = ("power_w", "power", "watts", "watt", "power_watts", "pdu_power")

# Default duration of a usage sample without an end time (µs).
DEFAULT_SAMPLE_DURATION_US = 1_000_000

_TSV_INT_FIELDS = ("ts_start", "ts_end", "job_queue_depth", "validated_steps", "timesteps", "window_duration_s")
_TSV_FLOAT_FIELDS = (
    "cpu_util", "gpu_util", "mem_util",
    "resource_seconds", "cpu_core_seconds", "gpu_seconds",
    "power_w", "energy_j",
    "pue", "thermal_headroom_w", "grid_stress_index",
    "price_usd_per_mwh",
    "work_units", "validated_work_units", "enst",
)


# ============================================================
# 1) COERCION
# ============================================================

def coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out):
        return None
    return out


def coerce_int(value: Any) -> Optional[int]:
    out = coerce_float(value)
    if out is None:
        return None
    return int(out)


def _lookup(raw: Mapping[str, Any], alias: str) -> Any:
    node: Any = raw
    for part in alias.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def resolve_present(raw: Mapping[str, Any], aliases: Tuple[str, ...]) -> Any:
    for alias in aliases:
        value = _lookup(raw, alias)
        if value is not None:
            return value
    return None


def resolve_float(raw: Mapping[str, Any], aliases: Tuple[str, ...]) -> Optional[float]:
    for alias in aliases:
        value = coerce_float(_lookup(raw, alias))
        if value is not None:
            return value
    return None


def resolve_site(raw: Mapping[str, Any], override: Optional[str] = None) -> str:
    if override:
        return str(override)
    site = resolve_present(raw, SITE_ALIASES)
    if site is None or str(site).strip() == "":
        return "unknown"
    return str(site)


# ============================================================
# 2) CANONICAL SAMPLES
# ============================================================

@dataclass(frozen=True)
class UsageSample:
    ts_us: int
    site_id: str
    cpu_fraction: Optional[float] = None
    gpu_fraction: Optional[float] = None
    mem_fraction: Optional[float] = None
    event_marker: bool = False
    duration_s: float = 1.0


@dataclass(frozen=True)
class PowerSample:
    ts_us: int
    site_id: str
    power_watts: Optional[float] = None


def parse_usage_sample(raw: Mapping[str, Any], site_override: Optional[str] = None) -> Optional[UsageSample]:
    ts = resolve_float(raw, USAGE_TS_ALIASES)
    if ts is None:
        return None
    ts_us = normalize_timestamp_us(ts)

    end = resolve_float(raw, USAGE_END_ALIASES)
    end_us = normalize_timestamp_us(end) if end is not None else ts_us + DEFAULT_SAMPLE_DURATION_US
    duration_s = max(0.0, (end_us - ts_us) / 1_000_000)

    return UsageSample(
        ts_us=ts_us,
        site_id=resolve_site(raw, site_override),
        cpu_fraction=resolve_float(raw, CPU_ALIASES),
        gpu_fraction=resolve_float(raw, GPU_ALIASES),
        mem_fraction=resolve_float(raw, MEM_ALIASES),
        event_marker=resolve_present(raw, EVENT_ALIASES) is not None,
        duration_s=duration_s,
    )


def parse_power_sample(raw: Mapping[str, Any], site_override: Optional[str] = None) -> Optional[PowerSample]:
    ts = resolve_float(raw, POWER_TS_ALIASES)
    if ts is None:
        return None
    return PowerSample(
        ts_us=normalize_timestamp_us(ts),
        site_id=resolve_site(raw, site_override),
        power_watts=resolve_float(raw, POWER_ALIASES),
    )


# ============================================================
# 3) TSV RECORDS (already-normalized lines)
# ============================================================

def parse_tsv_record(raw: Any) -> Optional[TsvRecord]:
    """
    Validates one TSV dict. Numeric fields that do not parse are nulled
    rather than failing the record; a record fails only if it is not an
    object or has no usable start timestamp.
    """
    if isinstance(raw, TsvRecord):
        return raw
    if not isinstance(raw, Mapping):
        return None

    data = dict(raw)
    if data.get("ts_start") is None and data.get("ts") is not None:
        data["ts_start"] = data["ts"]

    for name in _TSV_FLOAT_FIELDS:
        if name in data:
            data[name] = coerce_float(data[name])
    for name in _TSV_INT_FIELDS:
        if name in data:
            data[name] = coerce_int(data[name])

    if data.get("ts_start") is None:
        return None
    if data.get("ts_end") is None:
        duration = data.get("window_duration_s") or 300
        data["ts_end"] = int(data["ts_start"]) + int(duration) * 1_000_000
    for name in ("job_queue_depth", "window_duration_s"):
        if data.get(name) is None:
            data.pop(name, None)

    data["site_id"] = resolve_site(data)
    if data.get("cluster_id") is not None:
        data["cluster_id"] = str(data["cluster_id"])
    if data.get("data_source") is not None:
        data["data_source"] = str(data["data_source"])
    if data.get("work_units_mode") not in (None, *_WORK_UNITS_MODES):
        data["work_units_mode"] = None
    data.pop("policy_evaluation", None)

    try:
        return TsvRecord.model_validate(data)
    except ValidationError as e:
        logger.debug("Dropping invalid TSV record: %s", e)
        return None


def parse_tsv_records(raws: Iterable[Any]) -> Tuple[List[TsvRecord], int]:
    """Returns (valid records, skipped count)."""
    records: List[TsvRecord] = []
    skipped = 0
    for raw in raws:
        record = parse_tsv_record(raw)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    return records, skipped
