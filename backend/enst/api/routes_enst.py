from __future__ import annotations

import json
import logging
from typing import Iterator, List, Literal, NamedTuple

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import PlainTextResponse, StreamingResponse

from enst.config import Settings
from enst.deps import get_metrics_registry, get_settings
from enst.models.domain import CountedRecords, LeaderboardResponse, TsvRecord, WorkUnitsMode
from enst.schemas.requests import EnstRequest
from enst.services.enst_engine import compute_enst_stream
from enst.services.ingest import parse_tsv_records
from enst.services.leaderboard import summary_stats
from enst.services.metrics import MetricsRegistry, update_metrics_from_tsv
from enst.services.pipeline import process_records
from enst.services.work_units import parse_work_units_mode

logger = logging.getLogger(__name__)

router = APIRouter()


class RunOptions(NamedTuple):
    mode: WorkUnitsMode
    gpu_weight: float
    default_price: float


def resolve_run_options(req: EnstRequest, settings: Settings) -> RunOptions:
    """Request values win; omitted ones come from Settings."""
    try:
        mode = parse_work_units_mode(req.work_units_mode or settings.work_units_mode)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    gpu_weight = req.gpu_weight if req.gpu_weight is not None else settings.gpu_weight
    price = (
        req.default_price_usd_per_mwh
        if req.default_price_usd_per_mwh is not None
        else settings.default_price_usd_per_mwh
    )
    return RunOptions(mode, float(gpu_weight), float(price))


@router.post("/compute", response_model=CountedRecords)
async def compute(
    req: EnstRequest,
    settings: Settings = Depends(get_settings),
    registry: MetricsRegistry = Depends(get_metrics_registry),
) -> CountedRecords:
    opts = resolve_run_options(req, settings)
    records, skipped = parse_tsv_records(req.records)

    result = process_records(
        records,
        mode=opts.mode,
        gpu_weight=opts.gpu_weight,
        default_price=opts.default_price,
        registry=registry,
    )
    logger.info("ENST computed for %d records (%d skipped, mode=%s)", len(result.records), skipped, opts.mode.value)
    return CountedRecords(records=result.records, skipped=skipped)


@router.post("/stream")
async def stream(
    req: EnstRequest,
    settings: Settings = Depends(get_settings),
    registry: MetricsRegistry = Depends(get_metrics_registry),
) -> StreamingResponse:
    """Same as /compute, one JSON record per line."""
    opts = resolve_run_options(req, settings)
    records, skipped = parse_tsv_records(req.records)

    def lines(items: List[TsvRecord]) -> Iterator[str]:
        for record in compute_enst_stream(items, mode=opts.mode, gpu_weight=opts.gpu_weight):
            update_metrics_from_tsv(registry, record)
            yield json.dumps(record.model_dump(mode="json")) + "\n"

    return StreamingResponse(
        lines(records),
        media_type="application/x-ndjson",
        headers={"X-Skipped-Records": str(skipped)},
    )


@router.post("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    req: EnstRequest,
    format: Literal["json", "csv"] = Query("json", description="json or csv"),
    settings: Settings = Depends(get_settings),
):
    opts = resolve_run_options(req, settings)
    records, skipped = parse_tsv_records(req.records)

    result = process_records(records, mode=opts.mode, gpu_weight=opts.gpu_weight, default_price=opts.default_price)
    board = result.leaderboard

    if format == "csv":
        return PlainTextResponse(board.to_csv() + "\n", media_type="text/csv")

    entries = board.get_leaderboard()
    return LeaderboardResponse(entries=entries, summary=summary_stats(entries), skipped=skipped)
