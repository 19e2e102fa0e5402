"""
deps.py

Purpose:
  Process-wide singletons for the API layer.

Services Managed:
  - `Settings` (environment configuration, read once)
  - `MetricsRegistry` (gauges exposed on /metrics)

Pattern:
  - `lru_cache` enforces one instance per process.
  - Tests reset state with `get_settings.cache_clear()` or override via
    `app.dependency_overrides`.
"""
from __future__ import annotations

from functools import lru_cache

from enst.config import Settings, load_settings
from enst.services.metrics import MetricsRegistry


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_metrics_registry() -> MetricsRegistry:
    return MetricsRegistry()
