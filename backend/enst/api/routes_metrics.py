from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.responses import PlainTextResponse

from enst.deps import get_metrics_registry
from enst.services.metrics import MetricsRegistry

router = APIRouter()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(registry: MetricsRegistry = Depends(get_metrics_registry)) -> PlainTextResponse:
    return PlainTextResponse(registry.to_prometheus_format(), media_type=PROMETHEUS_CONTENT_TYPE)
