from __future__ import annotations

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# 0) ENUMS (Type Safety)
# ============================================================

class WorkUnitsMode(str, Enum):
    INFRA = "infra"
    DOMAIN = "domain"
    INFRA_FALLBACK = "infra_fallback"


class ViolationType(str, Enum):
    ENERGY_CAP = "energy_cap"
    THERMAL_CAP = "thermal_cap"
    GRID_STRESS = "grid_stress"


# ============================================================
# 1) WINDOW AGGREGATES (Aggregator output)
# ============================================================

class UsageWindow(BaseModel):
    ts_start: int           # µs
    ts_end: int             # µs
    site_id: str

    cpu_util: float = 0.0   # [0, 1], 0 when no samples
    gpu_util: Optional[float] = None
    mem_util: Optional[float] = None

    job_queue_depth: int = 0
    resource_seconds: float = 0.0
    sample_count: int = 0


class PowerWindow(BaseModel):
    ts_start: int
    ts_end: int
    site_id: str

    power_w: Optional[float] = None   # mean of samples
    energy_j: float = 0.0             # trapezoidal integral
    sample_count: int = 0


# ============================================================
# 2) POLICY (what-if configuration + evaluation)
# ============================================================

class PolicyViolation(BaseModel):
    type: ViolationType
    actual: float
    cap: float


class PolicyEvaluation(BaseModel):
    throttle_applied: bool = False
    throttle_factor: float = 1.0
    migrate_flag: bool = False
    violations: List[PolicyViolation] = Field(default_factory=list)


class Policy(BaseModel):
    """
    Caps that are None are never evaluated.
      - energy_cap_w: max mean window power before throttling (W)
      - thermal_cap_w: min thermal headroom before throttling (W)
      - grid_stress_cap: max grid stress before flagging migration
    """
    model_config = ConfigDict(extra="ignore")   # descriptive keys (name, notes) are allowed in policy files

    energy_cap_w: Optional[float] = None
    thermal_cap_w: Optional[float] = None
    grid_stress_cap: Optional[float] = None
    throttle_factor: float = Field(0.5, ge=0.0, le=1.0)


# ============================================================
# 3) TSV RECORD (canonical pipeline unit)
# ============================================================

class TsvRecord(BaseModel):
    """
    Temporal state vector: one merged usage + power window for one site.

    Units:
      - ts_start / ts_end: integer microseconds
      - power_w: W, energy_j: J, thermal_headroom_w: W
      - price_usd_per_mwh: USD/MWh
    """
    model_config = ConfigDict(extra="ignore")

    ts_start: int = 0
    ts_end: int = 0
    site_id: str = "unknown"
    cluster_id: Optional[str] = None

    cpu_util: Optional[float] = None
    gpu_util: Optional[float] = None
    mem_util: Optional[float] = None
    job_queue_depth: int = 0

    resource_seconds: Optional[float] = None
    cpu_core_seconds: Optional[float] = None
    gpu_seconds: Optional[float] = None

    validated_steps: Optional[int] = None
    timesteps: Optional[int] = None

    power_w: Optional[float] = None
    energy_j: Optional[float] = None

    pue: Optional[float] = None
    thermal_headroom_w: Optional[float] = None
    grid_stress_index: Optional[float] = None

    window_duration_s: int = 300
    price_usd_per_mwh: Optional[float] = None
    data_source: Optional[str] = None

    # Derived by the ENST stream
    work_units: Optional[float] = None
    validated_work_units: Optional[float] = None
    work_units_mode: Optional[WorkUnitsMode] = None
    enst: Optional[float] = None

    # Set by the policy stream only
    policy_evaluation: Optional[PolicyEvaluation] = None


# ============================================================
# 4) LEADERBOARD
# ============================================================

class LeaderboardEntry(BaseModel):
    window_start: int
    window_end: int
    site_id: str
    cluster_id: str

    energy_j: float
    work_units: float
    work_units_mode: str
    enst_units_per_j: float

    pue: Optional[float] = None
    thermal_headroom_w: Optional[float] = None
    grid_stress_index: Optional[float] = None

    price_usd_per_mwh: float
    cost_usd: float
    notes: str = ""


class LeaderboardSummary(BaseModel):
    site_count: int = 0
    total_energy_j: float = 0.0
    total_work_units: float = 0.0
    global_enst: float = 0.0
    total_cost_usd: float = 0.0
    min_enst: float = 0.0
    max_enst: float = 0.0
    median_enst: float = 0.0
    p90_enst: float = 0.0


# ============================================================
# 5) REPLAY / IMPACT SUMMARY
# ============================================================

class ImpactTotals(BaseModel):
    enst_units_per_j: float
    energy_j: float
    work_units: float
    price_usd_per_mwh: float
    cost_usd: float
    record_count: int


class ImpactDelta(BaseModel):
    enst_units_per_j: float
    enst_pct: float
    energy_j: float
    energy_j_pct: float
    work_units: float
    work_units_pct: float
    cost_usd: float
    cost_usd_pct: float


class ViolationCounts(BaseModel):
    energy_cap: int = 0
    thermal_cap: int = 0
    grid_stress: int = 0


class ImpactSummary(BaseModel):
    baseline: ImpactTotals
    policy: ImpactTotals
    delta: ImpactDelta
    delta_cost_usd_per_1e9_work_units: Optional[float] = None
    violations: ViolationCounts = Field(default_factory=ViolationCounts)
    throttled_windows: int = 0
    migrate_flagged_windows: int = 0

    # Annotated by the replay service
    policy_config: Optional[Policy] = None
    work_units_mode: Optional[WorkUnitsMode] = None


class ReplayStats(BaseModel):
    record_count: int = 0
    site_count: int = 0
    sites: List[str] = Field(default_factory=list)
    min_ts: Optional[int] = None
    max_ts: Optional[int] = None
    time_range_s: float = 0.0
    mean_cpu_util: Optional[float] = None
    mean_enst: Optional[float] = None


# ============================================================
# 6) API RESPONSE SCHEMAS
# ============================================================

class HealthResponse(BaseModel):
    status: str
    ts: str
    window_size_s: int
    work_units_mode: str
    metric_series: int = 0


class CountedRecords(BaseModel):
    records: List[TsvRecord]
    skipped: int = 0


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntry]
    summary: LeaderboardSummary
    skipped: int = 0
