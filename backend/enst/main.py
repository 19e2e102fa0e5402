# main.py
from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from enst.api import routes_demo, routes_enst, routes_health, routes_metrics, routes_replay, routes_tsv
from enst.deps import get_settings
from enst.logging_config import configure_logging

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


# ============================================================
# 1) FASTAPI APP SETUP
# ============================================================

def create_app() -> FastAPI:
    # Fails fast on an invalid ENST_WORK_UNITS_MODE.
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_dir)

    app = FastAPI(
        title="ENST Engine",
        version="0.1.0",
        description="Energy-normalized throughput, cost and what-if policy replay for HPC telemetry.",
    )

    allowed = os.getenv("ALLOWED_ORIGINS", "*")
    allow_origins = ["*"] if allowed == "*" else [o.strip() for o in allowed.split(",")]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_tsv.router, prefix="/tsv", tags=["tsv"])
    app.include_router(routes_enst.router, prefix="/enst", tags=["enst"])
    app.include_router(routes_replay.router, prefix="/replay", tags=["replay"])
    app.include_router(routes_metrics.router, tags=["metrics"])
    app.include_router(routes_demo.router, prefix="/demo", tags=["demo"])

    logger.info(
        "ENST engine ready (window=%ds, mode=%s, demo=%s)",
        settings.window_size_s, settings.work_units_mode, settings.demo_mode,
    )
    return app


app = create_app()


# ============================================================
# 2) LOCAL RUN INSTRUCTIONS
# ============================================================
# Run (from backend/):
#   uvicorn enst.main:app --reload --port 8000
#
# Open docs:
#   http://localhost:8000/docs
