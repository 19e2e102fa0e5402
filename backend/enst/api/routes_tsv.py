from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from enst.config import Settings
from enst.deps import get_settings
from enst.models.domain import CountedRecords
from enst.schemas.requests import IngestRequest, NormalizeRequest
from enst.services.pipeline import ingest_directories, normalize_samples
from enst.services.window_keyer import US_PER_S

logger = logging.getLogger(__name__)

router = APIRouter()


def _window_size_us(requested_s: Optional[int], settings: Settings) -> int:
    return int(requested_s) * US_PER_S if requested_s else settings.window_size_us


def _resolve_under_root(root: Optional[str], rel: Optional[str]) -> Optional[str]:
    """Absolute path of rel inside root; 403 if it escapes, 404 if missing."""
    if not rel:
        return None
    if not root:
        raise HTTPException(status_code=403, detail="ENST_DATA_ROOT not set")

    root_real = os.path.realpath(root)
    path = os.path.realpath(os.path.join(root_real, rel))
    if os.path.commonpath([root_real, path]) != root_real:
        raise HTTPException(status_code=403, detail="Path outside data root")
    if not os.path.isdir(path):
        raise HTTPException(status_code=404, detail=f"Directory not found: {rel}")
    return path


@router.post("/normalize", response_model=CountedRecords)
async def normalize(req: NormalizeRequest, settings: Settings = Depends(get_settings)) -> CountedRecords:
    """
    Raw usage + power samples -> one TSV record per (site, window).
    Samples without a timestamp are skipped and counted.
    """
    result = normalize_samples(
        req.usage,
        req.power,
        window_size_us=_window_size_us(req.window_size_s, settings),
        site_id=req.site_id,
        cluster_id=req.cluster_id,
        data_source=req.data_source,
        price_usd_per_mwh=req.price_usd_per_mwh,
    )
    logger.info("Normalized %d windows (%d skipped)", len(result.records), result.skipped)
    return CountedRecords(records=result.records, skipped=result.skipped)


@router.post("/ingest", response_model=CountedRecords)
async def ingest(req: IngestRequest, settings: Settings = Depends(get_settings)) -> CountedRecords:
    if not req.cluster_dir and not req.power_dir:
        raise HTTPException(status_code=422, detail="cluster_dir or power_dir is required")

    cluster_dir = _resolve_under_root(settings.data_root, req.cluster_dir)
    power_dir = _resolve_under_root(settings.data_root, req.power_dir)

    result = ingest_directories(
        cluster_dir,
        power_dir,
        window_size_us=_window_size_us(req.window_size_s, settings),
        site_id=req.site_id,
        cluster_id=req.cluster_id,
        data_source=req.data_source,
        price_usd_per_mwh=req.price_usd_per_mwh,
    )
    logger.info("Ingested %d windows (%d skipped)", len(result.records), result.skipped)
    return CountedRecords(records=result.records, skipped=result.skipped)
