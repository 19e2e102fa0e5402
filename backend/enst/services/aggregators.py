"""
aggregators.py

Purpose:
  Folds raw usage and power samples into one record per (site_id, window).

Math:
  - **Utilization**: arithmetic mean of the samples in the window, clamped to [0, 1].
  - **Resource seconds**: sum of cpu_fraction * sample_duration_s.
  - **Energy**: trapezoidal integration of instantaneous power over time:
      E = sum( (P[i-1] + P[i]) / 2 * (t[i] - t[i-1]) )
    One sample is held constant over the whole window; zero samples give 0 J.

Determinism:
  Buckets are keyed, sums use math.fsum and emission is sorted by key, so any
  permutation of the same samples produces identical output.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from enst.models.domain import PowerWindow, UsageWindow
from enst.services.ingest import parse_power_sample, parse_usage_sample
from enst.services.window_keyer import US_PER_S, WindowKey, window_key

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE_US = 300_000_000


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return math.fsum(values) / len(values)


def clamp_fraction(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def integrate_energy_j(samples: List[Tuple[int, float]], window_duration_s: float) -> float:
    """
    samples: (ts_us, power_w) pairs, any order.
    """
    if not samples:
        return 0.0
    if len(samples) == 1:
        return float(samples[0][1]) * float(window_duration_s)

    ordered = sorted(samples)
    parts = []
    for (t0, p0), (t1, p1) in zip(ordered, ordered[1:]):
        dt_s = (t1 - t0) / US_PER_S
        parts.append((p0 + p1) / 2.0 * dt_s)
    return float(math.fsum(parts))


class _WindowAggregator:
    """Bucket bookkeeping shared by the usage and power aggregators."""

    def __init__(self, window_size_us: int = DEFAULT_WINDOW_SIZE_US, site_id: Optional[str] = None):
        if window_size_us <= 0:
            raise ValueError(f"window_size_us must be positive, got {window_size_us}")
        self.window_size_us = int(window_size_us)
        self.site_override = site_id
        self._finalized = False
        self.skipped = 0

    @property
    def window_duration_s(self) -> float:
        return self.window_size_us / US_PER_S

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("aggregator already emitted; call clear() before adding samples")

    def _key(self, ts_us: int, site_id: str) -> WindowKey:
        return window_key(ts_us, site_id, self.window_size_us, normalize=False)


# ============================================================
# 1) USAGE
# ============================================================

@dataclass
class _UsageBucket:
    ts_start: int
    ts_end: int
    site_id: str
    cpu_samples: List[float] = field(default_factory=list)
    gpu_samples: List[float] = field(default_factory=list)
    mem_samples: List[float] = field(default_factory=list)
    resource_parts: List[float] = field(default_factory=list)
    job_count: int = 0
    sample_count: int = 0


class UsageAggregator(_WindowAggregator):
    def __init__(self, window_size_us: int = DEFAULT_WINDOW_SIZE_US, site_id: Optional[str] = None):
        super().__init__(window_size_us, site_id)
        self.windows: Dict[WindowKey, _UsageBucket] = {}

    def add_sample(self, raw: Mapping[str, Any]) -> bool:
        """Returns False when the sample has no usable timestamp."""
        self._check_open()
        sample = parse_usage_sample(raw, site_override=self.site_override)
        if sample is None:
            self.skipped += 1
            logger.debug("Skipping usage sample without timestamp: %r", raw)
            return False

        key = self._key(sample.ts_us, sample.site_id)
        bucket = self.windows.get(key)
        if bucket is None:
            bucket = _UsageBucket(
                ts_start=key.window_start,
                ts_end=key.window_start + self.window_size_us,
                site_id=key.site_id,
            )
            self.windows[key] = bucket

        bucket.sample_count += 1
        if sample.cpu_fraction is not None:
            bucket.cpu_samples.append(sample.cpu_fraction)
        if sample.gpu_fraction is not None:
            bucket.gpu_samples.append(sample.gpu_fraction)
        if sample.mem_fraction is not None:
            bucket.mem_samples.append(sample.mem_fraction)
        if sample.event_marker:
            bucket.job_count += 1
        bucket.resource_parts.append((sample.cpu_fraction or 0.0) * sample.duration_s)
        return True

    def emit(self) -> Iterator[UsageWindow]:
        self._finalized = True
        return self._iter_windows()

    def _iter_windows(self) -> Iterator[UsageWindow]:
        for key in sorted(self.windows):
            b = self.windows[key]
            cpu = _mean(b.cpu_samples)
            gpu = _mean(b.gpu_samples)
            mem = _mean(b.mem_samples)
            yield UsageWindow(
                ts_start=b.ts_start,
                ts_end=b.ts_end,
                site_id=b.site_id,
                cpu_util=clamp_fraction(cpu) if cpu is not None else 0.0,
                gpu_util=clamp_fraction(gpu) if gpu is not None else None,
                mem_util=clamp_fraction(mem) if mem is not None else None,
                job_queue_depth=b.job_count,
                resource_seconds=float(math.fsum(b.resource_parts)),
                sample_count=b.sample_count,
            )

    def clear(self) -> None:
        self.windows.clear()
        self.skipped = 0
        self._finalized = False


# ============================================================
# 2) POWER
# ============================================================

@dataclass
class _PowerBucket:
    ts_start: int
    ts_end: int
    site_id: str
    samples: List[Tuple[int, float]] = field(default_factory=list)


class PowerAggregator(_WindowAggregator):
    def __init__(self, window_size_us: int = DEFAULT_WINDOW_SIZE_US, site_id: Optional[str] = None):
        super().__init__(window_size_us, site_id)
        self.windows: Dict[WindowKey, _PowerBucket] = {}

    def add_sample(self, raw: Mapping[str, Any]) -> bool:
        self._check_open()
        sample = parse_power_sample(raw, site_override=self.site_override)
        if sample is None:
            self.skipped += 1
            logger.debug("Skipping power sample without timestamp: %r", raw)
            return False

        key = self._key(sample.ts_us, sample.site_id)
        bucket = self.windows.get(key)
        if bucket is None:
            bucket = _PowerBucket(
                ts_start=key.window_start,
                ts_end=key.window_start + self.window_size_us,
                site_id=key.site_id,
            )
            self.windows[key] = bucket

        if sample.power_watts is not None:
            bucket.samples.append((sample.ts_us, sample.power_watts))
        return True

    def emit(self) -> Iterator[PowerWindow]:
        self._finalized = True
        return self._iter_windows()

    def _iter_windows(self) -> Iterator[PowerWindow]:
        for key in sorted(self.windows):
            b = self.windows[key]
            yield PowerWindow(
                ts_start=b.ts_start,
                ts_end=b.ts_end,
                site_id=b.site_id,
                power_w=_mean([p for _, p in b.samples]),
                energy_j=integrate_energy_j(b.samples, self.window_duration_s),
                sample_count=len(b.samples),
            )

    def clear(self) -> None:
        self.windows.clear()
        self.skipped = 0
        self._finalized = False
