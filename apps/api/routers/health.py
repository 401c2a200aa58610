"""
Service probes: database, job queues, and the settings uploads depend on.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config import settings
from database import engine
from services.job_queue import get_asset_queue, get_transcription_queue

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_SETTINGS = ("OPENAI_API_KEY", "AWS_S3_BUCKET_NAME", "JWT_SECRET")


def _queue_depths() -> Dict[str, int]:
    depths = {}
    for queue in (get_asset_queue(), get_transcription_queue()):
        depths[queue.name] = queue.count
    return depths


async def _database_state() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "up"
    except Exception as exc:
        logger.warning("Database probe failed: %s", exc)
        return f"down: {exc}"


def _missing_settings():
    return [name for name in REQUIRED_SETTINGS if not getattr(settings, name, None)]


@router.get("/health")
async def health_check():
    """Report database reachability and how many jobs wait in each queue."""
    report: Dict[str, Any] = {
        "status": "healthy",
        "database": await _database_state(),
        "queues": {},
        "missing_settings": _missing_settings(),
    }
    if report["database"] != "up":
        report["status"] = "degraded"

    try:
        report["queues"] = await asyncio.to_thread(_queue_depths)
    except Exception as exc:
        logger.warning("Queue probe failed: %s", exc)
        report["queues"] = {"error": str(exc)}
        report["status"] = "degraded"

    return report


@router.get("/health/ready")
async def readiness_check():
    missing = _missing_settings()
    database = await _database_state()
    if missing or database != "up":
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing, "database": database},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
