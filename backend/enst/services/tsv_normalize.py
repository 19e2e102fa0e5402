"""
tsv_normalize.py

Purpose:
  Full outer join of usage windows and power windows on (site_id, window_start),
  producing one TsvRecord per key.

Missing Sides:
  A window seen by only one source is kept. Fields of the absent side are
  explicit nulls (job_queue_depth stays 0), so "no data" is never confused with
  a measured zero.
"""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from enst.models.domain import PowerWindow, TsvRecord, UsageWindow
from enst.services.aggregators import DEFAULT_WINDOW_SIZE_US
from enst.services.window_keyer import US_PER_S, WindowKey, window_key


class TsvNormalizer:
    def __init__(
        self,
        window_size_us: int = DEFAULT_WINDOW_SIZE_US,
        cluster_id: Optional[str] = None,
        data_source: Optional[str] = None,
        price_usd_per_mwh: Optional[float] = None,
    ):
        if window_size_us <= 0:
            raise ValueError(f"window_size_us must be positive, got {window_size_us}")
        self.window_size_us = int(window_size_us)
        self.cluster_id = cluster_id
        self.data_source = data_source
        self.price_usd_per_mwh = price_usd_per_mwh
        self.usage_by_key: Dict[WindowKey, UsageWindow] = {}
        self.power_by_key: Dict[WindowKey, PowerWindow] = {}

    def _key(self, ts_start: int, site_id: str) -> WindowKey:
        return window_key(ts_start, site_id, self.window_size_us, normalize=False)

    def add_usage(self, window: UsageWindow) -> None:
        self.usage_by_key[self._key(window.ts_start, window.site_id)] = window

    def add_power(self, window: PowerWindow) -> None:
        self.power_by_key[self._key(window.ts_start, window.site_id)] = window

    def emit(self) -> Iterator[TsvRecord]:
        window_duration_s = self.window_size_us // US_PER_S
        keys = sorted(set(self.usage_by_key) | set(self.power_by_key))

        for key in keys:
            usage = self.usage_by_key.get(key)
            power = self.power_by_key.get(key)
            source = usage if usage is not None else power

            yield TsvRecord(
                ts_start=source.ts_start,
                ts_end=source.ts_end,
                site_id=key.site_id,
                cluster_id=self.cluster_id,
                cpu_util=usage.cpu_util if usage is not None else None,
                gpu_util=usage.gpu_util if usage is not None else None,
                mem_util=usage.mem_util if usage is not None else None,
                job_queue_depth=usage.job_queue_depth if usage is not None else 0,
                resource_seconds=usage.resource_seconds if usage is not None else None,
                power_w=power.power_w if power is not None else None,
                energy_j=power.energy_j if power is not None else None,
                window_duration_s=window_duration_s,
                price_usd_per_mwh=self.price_usd_per_mwh,
                data_source=self.data_source,
            )

    def clear(self) -> None:
        self.usage_by_key.clear()
        self.power_by_key.clear()


def normalize_tsv(
    usage_windows: Iterable[UsageWindow],
    power_windows: Iterable[PowerWindow],
    window_size_us: int = DEFAULT_WINDOW_SIZE_US,
    **options,
) -> List[TsvRecord]:
    normalizer = TsvNormalizer(window_size_us=window_size_us, **options)
    for window in usage_windows:
        normalizer.add_usage(window)
    for window in power_windows:
        normalizer.add_power(window)
    return list(normalizer.emit())
