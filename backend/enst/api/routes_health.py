from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from enst.config import Settings
from enst.deps import get_metrics_registry, get_settings
from enst.models.domain import HealthResponse
from enst.services.metrics import MetricsRegistry

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    settings: Settings = Depends(get_settings),
    registry: MetricsRegistry = Depends(get_metrics_registry),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        ts=datetime.now(timezone.utc).isoformat(),
        window_size_s=settings.window_size_s,
        work_units_mode=settings.work_units_mode,
        metric_series=len(registry),
    )
