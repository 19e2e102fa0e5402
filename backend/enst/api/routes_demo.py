from __future__ import annotations

import os
from collections import deque
from typing import Any, Deque, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from enst.config import Settings
from enst.deps import get_settings
from enst.logging_config import LOG_FILE_NAME
from enst.models.domain import CountedRecords
from enst.schemas.requests import SyntheticRequest
from enst.services.synthetic import DEFAULT_START_TS_US, generate_multi_site_synthetic


def require_demo_mode(settings: Settings = Depends(get_settings)) -> None:
    # Hidden rather than forbidden outside demo deployments.
    if not settings.demo_mode:
        raise HTTPException(status_code=404, detail="Not found")


router = APIRouter(dependencies=[Depends(require_demo_mode)])


@router.post("/synthetic", response_model=CountedRecords)
async def demo_synthetic(req: SyntheticRequest) -> CountedRecords:
    """
    Deterministic multi-site TSV records (same request -> same records).
    Profiles: nrel-eagle, ornl-frontier, anl-polaris.
    """
    start_ts = DEFAULT_START_TS_US if req.start_ts is None else req.start_ts
    records = list(
        generate_multi_site_synthetic(
            sites=req.sites,
            windows_per_site=req.windows_per_site,
            window_size_s=req.window_size_s,
            start_ts=start_ts,
            seed=req.seed,
        )
    )
    return CountedRecords(records=records, skipped=0)


@router.get("/logs/tail")
async def demo_logs_tail(
    lines: int = Query(200, ge=10, le=2000),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not settings.log_dir:
        return {"ok": False, "hint": "LOG_DIR is not set; file logging is off."}

    log_path = os.path.join(settings.log_dir, LOG_FILE_NAME)
    if not os.path.isfile(log_path):
        return {"ok": False, "hint": f"No {LOG_FILE_NAME} under {settings.log_dir} yet."}

    tail: Deque[str] = deque(maxlen=lines)
    with open(log_path, "r", encoding="utf-8", errors="replace") as fh:
        tail.extend(line.rstrip("\n") for line in fh)

    return {"ok": True, "path": log_path, "lines": list(tail)}
