from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from enst.api.routes_enst import resolve_run_options
from enst.config import Settings
from enst.deps import get_settings
from enst.models.domain import ImpactSummary, ReplayStats
from enst.schemas.requests import ReplayRequest
from enst.services.enst_engine import compute_enst_stream
from enst.services.ingest import parse_tsv_records
from enst.services.policy_engine import parse_policy
from enst.services.replay import ReplayFilter, compute_replay_stats, filter_records, run_replay

logger = logging.getLogger(__name__)

router = APIRouter()


def _filter_from(req: ReplayRequest) -> ReplayFilter:
    return ReplayFilter(site_id=req.site_id, start_ts=req.start_ts, end_ts=req.end_ts)


@router.post("/impact", response_model=ImpactSummary)
async def replay_impact(req: ReplayRequest, settings: Settings = Depends(get_settings)) -> ImpactSummary:
    """
    Baseline vs. what-if policy over the same recorded windows.
    """
    if req.policy is None:
        raise HTTPException(status_code=422, detail="policy is required")
    try:
        policy = parse_policy(req.policy)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    opts = resolve_run_options(req, settings)
    records, skipped = parse_tsv_records(req.records)
    if skipped:
        logger.info("Replay skipped %d malformed records", skipped)

    return run_replay(
        records,
        policy,
        mode=opts.mode,
        gpu_weight=opts.gpu_weight,
        default_price=opts.default_price,
        flt=_filter_from(req),
    )


@router.post("/stats", response_model=ReplayStats)
async def replay_stats(req: ReplayRequest, settings: Settings = Depends(get_settings)) -> ReplayStats:
    opts = resolve_run_options(req, settings)
    records, _ = parse_tsv_records(req.records)
    processed = compute_enst_stream(
        filter_records(records, _filter_from(req)),
        mode=opts.mode,
        gpu_weight=opts.gpu_weight,
    )
    return compute_replay_stats(processed)
