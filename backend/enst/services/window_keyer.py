"""
window_keyer.py

Purpose:
  Maps (timestamp, site_id) to the canonical aggregation bucket shared by
  every aggregator in the pipeline.

Timestamp Unit Rule (magnitude heuristic):
  Telemetry arrives in seconds, milliseconds or microseconds with no unit tag.
  The unit is inferred from the magnitude of the value:
    - ts <  1e10  -> seconds       (covers epochs up to year 2286)
    - ts <  1e13  -> milliseconds
    - otherwise   -> microseconds
  Everything is converted to integer microseconds before bucketing.

Bucketing:
  window_start = floor(ts_us / window_size_us) * window_size_us
"""
from __future__ import annotations

from typing import NamedTuple

US_PER_S = 1_000_000
US_PER_MS = 1_000

SECONDS_UPPER_BOUND = 1e10
MILLISECONDS_UPPER_BOUND = 1e13


class WindowKey(NamedTuple):
    site_id: str
    window_start: int   # µs


def normalize_timestamp_us(ts: float) -> int:
    ts = float(ts)
    if ts < SECONDS_UPPER_BOUND:
        return int(round(ts * US_PER_S))
    if ts < MILLISECONDS_UPPER_BOUND:
        return int(round(ts * US_PER_MS))
    return int(ts)


def window_start_us(ts_us: int, window_size_us: int) -> int:
    return (int(ts_us) // int(window_size_us)) * int(window_size_us)


def window_key(ts: float, site_id: str, window_size_us: int, normalize: bool = True) -> WindowKey:
    """
    normalize=False is for inputs already in µs (finalized window aggregates),
    where a small epoch offset would otherwise be misread as seconds.
    """
    if window_size_us <= 0:
        raise ValueError(f"window_size_us must be positive, got {window_size_us}")
    ts_us = normalize_timestamp_us(ts) if normalize else int(ts)
    return WindowKey(site_id=str(site_id), window_start=window_start_us(ts_us, window_size_us))
