"""
pipeline.py

Purpose:
  Wires the engines into the two end-to-end flows used by the API:

  1. **Normalize**: raw usage + power samples -> aggregators -> TsvNormalizer -> TSV records
  2. **Process**:   TSV records -> ENST stream -> leaderboard (+ optional metrics gauges)

  Every call builds its own aggregators and leaderboard; nothing is shared
  across requests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from enst.models.domain import TsvRecord, WorkUnitsMode
from enst.services.aggregators import DEFAULT_WINDOW_SIZE_US, PowerAggregator, UsageAggregator
from enst.services.cost import DEFAULT_PRICE_USD_PER_MWH
from enst.services.enst_engine import compute_enst_stream
from enst.services.leaderboard import EnstLeaderboard
from enst.services.metrics import MetricsRegistry, update_metrics_from_tsv
from enst.services.readers import discover_files, read_records
from enst.services.tsv_normalize import TsvNormalizer
from enst.services.work_units import DEFAULT_GPU_WEIGHT

logger = logging.getLogger(__name__)

USAGE_TABLES = ("instance_usage", "collection_events")
SHARD_SUFFIXES = (".json", ".json.gz", ".ndjson")

POWER_KEYWORDS = ("power", "energy", "pdu", "watt")
POWER_SUFFIXES = (".csv", ".json", ".json.gz", ".ndjson")


@dataclass
class NormalizeResult:
    records: List[TsvRecord] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ProcessResult:
    records: List[TsvRecord]
    leaderboard: EnstLeaderboard


# ============================================================
# 1) NORMALIZE
# ============================================================

def normalize_samples(
    usage_samples: Iterable[Mapping[str, Any]],
    power_samples: Iterable[Mapping[str, Any]],
    window_size_us: int = DEFAULT_WINDOW_SIZE_US,
    site_id: Optional[str] = None,
    cluster_id: Optional[str] = None,
    data_source: Optional[str] = None,
    price_usd_per_mwh: Optional[float] = None,
) -> NormalizeResult:
    usage = UsageAggregator(window_size_us, site_id=site_id)
    power = PowerAggregator(window_size_us, site_id=site_id)

    for raw in usage_samples:
        usage.add_sample(raw)
    for raw in power_samples:
        power.add_sample(raw)

    normalizer = TsvNormalizer(
        window_size_us,
        cluster_id=cluster_id,
        data_source=data_source,
        price_usd_per_mwh=price_usd_per_mwh,
    )
    for window in usage.emit():
        normalizer.add_usage(window)
    for window in power.emit():
        normalizer.add_power(window)

    result = NormalizeResult(records=list(normalizer.emit()), skipped=usage.skipped + power.skipped)
    logger.debug("Normalized %d windows (%d samples skipped)", len(result.records), result.skipped)
    return result


def _chain_files(paths: List[str]) -> Iterable[Mapping[str, Any]]:
    for path in paths:
        logger.info("Reading %s", path)
        yield from read_records(path)


def ingest_directories(
    cluster_dir: Optional[str],
    power_dir: Optional[str],
    window_size_us: int = DEFAULT_WINDOW_SIZE_US,
    site_id: Optional[str] = None,
    cluster_id: Optional[str] = None,
    data_source: Optional[str] = None,
    price_usd_per_mwh: Optional[float] = None,
) -> NormalizeResult:
    """
    Discovers cluster-trace shards under cluster_dir and power exports under
    power_dir, then normalizes them in one pass. Either directory may be None.
    """
    usage_files: List[str] = []
    if cluster_dir:
        for table in USAGE_TABLES:
            usage_files.extend(discover_files(cluster_dir, (table,), SHARD_SUFFIXES))

    power_files: List[str] = []
    if power_dir:
        power_files = discover_files(power_dir, POWER_KEYWORDS, POWER_SUFFIXES)

    logger.info("Ingesting %d usage shard(s) and %d power file(s)", len(usage_files), len(power_files))
    return normalize_samples(
        _chain_files(usage_files),
        _chain_files(power_files),
        window_size_us=window_size_us,
        site_id=site_id,
        cluster_id=cluster_id,
        data_source=data_source,
        price_usd_per_mwh=price_usd_per_mwh,
    )


# ============================================================
# 2) PROCESS
# ============================================================

def process_records(
    records: Iterable[TsvRecord],
    mode: WorkUnitsMode = WorkUnitsMode.INFRA,
    gpu_weight: float = DEFAULT_GPU_WEIGHT,
    default_price: float = DEFAULT_PRICE_USD_PER_MWH,
    registry: Optional[MetricsRegistry] = None,
) -> ProcessResult:
    leaderboard = EnstLeaderboard(default_price_usd_per_mwh=default_price, work_units_mode=mode)
    processed: List[TsvRecord] = []

    for record in compute_enst_stream(records, mode=mode, gpu_weight=gpu_weight):
        leaderboard.add_record(record)
        if registry is not None:
            update_metrics_from_tsv(registry, record)
        processed.append(record)

    return ProcessResult(records=processed, leaderboard=leaderboard)
