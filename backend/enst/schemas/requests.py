from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


RequestedMode = Literal["infra", "domain"]

# Omitted tuning fields fall back to Settings (see enst.config).


class NormalizeRequest(BaseModel):
    usage: List[Dict[str, Any]] = Field(default_factory=list)     # raw cluster-trace samples
    power: List[Dict[str, Any]] = Field(default_factory=list)     # raw PDU / meter samples

    window_size_s: Optional[int] = Field(None, gt=0)
    site_id: Optional[str] = None          # overrides every sample's site
    cluster_id: Optional[str] = None
    data_source: Optional[str] = None
    price_usd_per_mwh: Optional[float] = Field(None, ge=0.0)


class IngestRequest(BaseModel):
    cluster_dir: Optional[str] = None      # relative to ENST_DATA_ROOT
    power_dir: Optional[str] = None

    window_size_s: Optional[int] = Field(None, gt=0)
    site_id: Optional[str] = None
    cluster_id: Optional[str] = None
    data_source: Optional[str] = None
    price_usd_per_mwh: Optional[float] = Field(None, ge=0.0)


class EnstRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    records: List[Any] = Field(default_factory=list)   # each element parsed or skipped by parse_tsv_record
    work_units_mode: Optional[RequestedMode] = None
    gpu_weight: Optional[float] = Field(None, ge=0.0)
    default_price_usd_per_mwh: Optional[float] = Field(None, ge=0.0)


class ReplayRequest(EnstRequest):
    policy: Optional[Dict[str, Any]] = None   # validated by parse_policy

    site_id: Optional[str] = None
    start_ts: Optional[int] = None         # µs, inclusive
    end_ts: Optional[int] = None           # µs, inclusive


class SyntheticRequest(BaseModel):
    sites: List[str] = Field(default_factory=lambda: ["nrel-eagle", "ornl-frontier", "anl-polaris"])
    windows_per_site: int = Field(10, ge=1, le=10_000)
    window_size_s: int = Field(300, gt=0)
    start_ts: Optional[int] = None
    seed: int = 7
