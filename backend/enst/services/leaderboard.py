"""
leaderboard.py

Purpose:
  Terminal aggregation of ENST records into one ranked entry per
  (site_id, cluster_id), plus CSV export and fleet-level summary stats.

Ranking:
  Strictly descending by enst_units_per_j. Exact ties keep first-seen order
  (Python's sort is stable).
"""
from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from enst.models.domain import LeaderboardEntry, LeaderboardSummary, TsvRecord, WorkUnitsMode
from enst.services.cost import DEFAULT_PRICE_USD_PER_MWH, build_notes, cost_usd, resolve_price

DEFAULT_CLUSTER_ID = "default"

CSV_COLUMNS = [
    "window_start",
    "window_end",
    "site_id",
    "cluster_id",
    "energy_j",
    "work_units",
    "work_units_mode",
    "enst_units_per_j",
    "pue",
    "thermal_headroom_w",
    "grid_stress_index",
    "price_usd_per_mwh",
    "cost_usd",
    "notes",
]


def _mode_text(mode) -> str:
    return mode.value if isinstance(mode, WorkUnitsMode) else str(mode)


def _mean(values: List[float]) -> Optional[float]:
    return math.fsum(values) / len(values) if values else None


def _fmt(value: Optional[float], places: int) -> str:
    return "" if value is None else f"{value:.{places}f}"


@dataclass
class _SiteAccumulator:
    site_id: str
    cluster_id: str
    work_units_mode: str

    total_energy_j: float = 0.0
    total_work_units: float = 0.0
    window_count: int = 0
    window_start: Optional[int] = None
    window_end: Optional[int] = None

    pue_samples: List[float] = field(default_factory=list)
    thermal_samples: List[float] = field(default_factory=list)
    grid_stress_samples: List[float] = field(default_factory=list)

    price_energy_j: float = 0.0
    price_weighted_sum: float = 0.0
    price_defaulted_count: int = 0
    data_sources: Set[str] = field(default_factory=set)


class EnstLeaderboard:
    def __init__(
        self,
        default_price_usd_per_mwh: float = DEFAULT_PRICE_USD_PER_MWH,
        work_units_mode: WorkUnitsMode = WorkUnitsMode.INFRA,
    ):
        self.default_price_usd_per_mwh = float(default_price_usd_per_mwh)
        self.work_units_mode = work_units_mode
        self.sites: Dict[Tuple[str, str], _SiteAccumulator] = {}

    def add_record(self, record: TsvRecord) -> None:
        cluster_id = record.cluster_id or DEFAULT_CLUSTER_ID
        key = (record.site_id, cluster_id)

        site = self.sites.get(key)
        if site is None:
            site = _SiteAccumulator(
                site_id=record.site_id,
                cluster_id=cluster_id,
                work_units_mode=_mode_text(record.work_units_mode or self.work_units_mode),
            )
            self.sites[key] = site

        site.window_count += 1
        if record.energy_j is not None:
            site.total_energy_j += record.energy_j
        if record.work_units is not None:
            site.total_work_units += record.work_units

        if site.window_start is None or record.ts_start < site.window_start:
            site.window_start = record.ts_start
        if site.window_end is None or record.ts_end > site.window_end:
            site.window_end = record.ts_end

        if record.pue is not None:
            site.pue_samples.append(record.pue)
        if record.thermal_headroom_w is not None:
            site.thermal_samples.append(record.thermal_headroom_w)
        if record.grid_stress_index is not None:
            site.grid_stress_samples.append(record.grid_stress_index)

        price, defaulted = resolve_price(record, self.default_price_usd_per_mwh)
        energy = max(0.0, record.energy_j or 0.0)
        site.price_energy_j += energy
        site.price_weighted_sum += energy * price
        if defaulted:
            site.price_defaulted_count += 1

        if record.data_source:
            site.data_sources.add(record.data_source)

    def _finalize(self, site: _SiteAccumulator) -> LeaderboardEntry:
        enst = site.total_work_units / site.total_energy_j if site.total_energy_j > 0 else 0.0
        avg_price = (
            site.price_weighted_sum / site.price_energy_j
            if site.price_energy_j > 0
            else self.default_price_usd_per_mwh
        )
        notes = build_notes(
            price_defaulted=site.price_defaulted_count > 0,
            data_source=",".join(sorted(site.data_sources)) or None,
        )
        return LeaderboardEntry(
            window_start=site.window_start or 0,
            window_end=site.window_end or 0,
            site_id=site.site_id,
            cluster_id=site.cluster_id,
            energy_j=site.total_energy_j,
            work_units=site.total_work_units,
            work_units_mode=site.work_units_mode,
            enst_units_per_j=enst,
            pue=_mean(site.pue_samples),
            thermal_headroom_w=_mean(site.thermal_samples),
            grid_stress_index=_mean(site.grid_stress_samples),
            price_usd_per_mwh=avg_price,
            cost_usd=cost_usd(site.total_energy_j, avg_price),
            notes=notes,
        )

    def get_leaderboard(self) -> List[LeaderboardEntry]:
        entries = [self._finalize(site) for site in self.sites.values()]
        return sorted(entries, key=lambda e: e.enst_units_per_j, reverse=True)

    def to_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for e in self.get_leaderboard():
            writer.writerow([
                e.window_start,
                e.window_end,
                e.site_id,
                e.cluster_id,
                _fmt(e.energy_j, 2),
                _fmt(e.work_units, 2),
                e.work_units_mode,
                _fmt(e.enst_units_per_j, 6),
                _fmt(e.pue, 3),
                _fmt(e.thermal_headroom_w, 2),
                _fmt(e.grid_stress_index, 4),
                _fmt(e.price_usd_per_mwh, 2),
                _fmt(e.cost_usd, 2),
                e.notes,
            ])
        return buf.getvalue().rstrip("\n")


def summary_stats(source: Union[EnstLeaderboard, Iterable[LeaderboardEntry]]) -> LeaderboardSummary:
    """Fleet totals; ENST percentiles are over sites with ENST > 0 only."""
    entries = source.get_leaderboard() if isinstance(source, EnstLeaderboard) else list(source)
    if not entries:
        return LeaderboardSummary()

    total_energy = math.fsum(e.energy_j for e in entries)
    total_work = math.fsum(e.work_units for e in entries)
    values = sorted(e.enst_units_per_j for e in entries if e.enst_units_per_j > 0)

    def pick(q: float) -> float:
        return values[int(len(values) * q)] if values else 0.0

    return LeaderboardSummary(
        site_count=len(entries),
        total_energy_j=total_energy,
        total_work_units=total_work,
        global_enst=total_work / total_energy if total_energy > 0 else 0.0,
        total_cost_usd=math.fsum(e.cost_usd for e in entries),
        min_enst=values[0] if values else 0.0,
        max_enst=values[-1] if values else 0.0,
        median_enst=pick(0.5),
        p90_enst=pick(0.9),
    )
