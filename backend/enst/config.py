from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUE = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in _TRUE


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return float(val.strip())
    except ValueError:
        return default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


@dataclass(frozen=True)
class Settings:
    window_size_s: int = 300
    default_price_usd_per_mwh: float = 50.0
    gpu_weight: float = 1.0
    work_units_mode: str = "infra"

    data_root: Optional[str] = None
    demo_mode: bool = False

    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @property
    def window_size_us(self) -> int:
        return int(self.window_size_s) * 1_000_000


def load_settings() -> Settings:
    """
    Reads Settings from the environment.

    Numeric values that fail to parse fall back to their defaults. The work
    units mode is the one strict field: an unknown mode is a configuration
    error and must stop the service before any record is processed.
    """
    mode = (env_str("ENST_WORK_UNITS_MODE", "infra") or "infra").lower()
    if mode not in ("infra", "domain"):
        raise ValueError(f"ENST_WORK_UNITS_MODE must be 'infra' or 'domain', got {mode!r}")

    window_size_s = env_int("ENST_WINDOW_SIZE_S", 300)
    if window_size_s <= 0:
        window_size_s = 300

    return Settings(
        window_size_s=window_size_s,
        default_price_usd_per_mwh=env_float("ENST_DEFAULT_PRICE_USD_PER_MWH", 50.0),
        gpu_weight=env_float("ENST_GPU_WEIGHT", 1.0),
        work_units_mode=mode,
        data_root=env_str("ENST_DATA_ROOT"),
        demo_mode=env_flag("DEMO_MODE", False),
        log_level=(env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        log_dir=env_str("LOG_DIR"),
    )
