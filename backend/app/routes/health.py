"""
Doll Pin API: Liveness & Health Routes
========================================

What:  GET / (liveness message) and GET /health (dependency check).
How:   /health pings the database with SELECT 1 and checks that the upload
       directory exists and is writable. Always answers 200; the body says
       whether the service is healthy.
Who:   Docker health checks, load balancers, humans with curl.
"""

import logging
import os
import time

from fastapi import APIRouter, Depends

from app import __version__
from app.database import Database, get_database
from app.schemas.common import HealthResponse, MessageResponse
from app.services.image_pipeline import ImagePipeline, get_image_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Module-level: set once when the app is imported
_start_time = time.time()


@router.get("/", response_model=MessageResponse, summary="Liveness message")
async def root() -> MessageResponse:
    return MessageResponse(message="Doll Pin API is running!")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Reports database connectivity and upload directory state.",
)
async def health_check(
    database: Database = Depends(get_database),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> HealthResponse:
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    db_status = "connected"
    if not await database.ping():
        db_status = "disconnected"
        overall = "unhealthy"

    # ── Check Upload Directory ────────────────────────────────────────────
    upload_status = "writable"
    upload_dir = pipeline.upload_dir
    if not (upload_dir.is_dir() and os.access(upload_dir, os.W_OK)):
        upload_status = "unavailable"
        overall = "unhealthy"
        logger.warning("Health check: upload directory %s is not writable", upload_dir)

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        upload_dir=upload_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
