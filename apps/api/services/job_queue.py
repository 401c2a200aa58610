"""Durable asset and transcription job queue helpers (Redis/RQ)."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from redis import Redis
from rq import Queue, Retry
from rq.job import Job
from sqlalchemy import func, select

from config import settings
from database import async_session_maker
from models.asset import Asset, AssetStatus
from models.transcription import TranscriptionJob, TranscriptionStatus


ASSET_QUEUE_NAME = "asset_jobs"
TRANSCRIPTION_QUEUE_NAME = "transcription_jobs"

INTERRUPTED_PROCESSING_MESSAGE = (
    "Server restarted during processing. The job was interrupted. Please try again."
)
NEVER_STARTED_MESSAGE = (
    "Job was created but never started. Server may have restarted. Please try again."
)
INTERRUPTED_ASSET_TIP = "Processing failed: Processing was interrupted. Please reanalyze."


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def get_asset_queue() -> Queue:
    """Return the configured asset processing queue."""
    return Queue(
        name=ASSET_QUEUE_NAME,
        connection=get_redis_connection(),
        default_timeout=1800,
    )


def get_transcription_queue() -> Queue:
    """Return the configured transcription queue."""
    return Queue(
        name=TRANSCRIPTION_QUEUE_NAME,
        connection=get_redis_connection(),
        default_timeout=1800,
    )


def enqueue_asset_processing_job(
    asset_id: str,
    storage_url: str,
    file_type: Optional[str],
    run_id: str,
) -> Job:
    """Enqueue one processing run for an asset with retry/timeouts for durability."""
    queue = get_asset_queue()
    return queue.enqueue(
        "services.asset_processor.process_asset_job",
        asset_id,
        storage_url,
        file_type,
        run_id,
        job_id=f"asset:{asset_id}:{run_id}",
        retry=Retry(max=3, interval=[15, 60, 180]),
        job_timeout=1800,
        result_ttl=86400,
        failure_ttl=86400,
    )


def build_transcription_queue_job_id(job_id: str) -> str:
    return f"transcription:{job_id}:{uuid.uuid4().hex[:12]}"


def enqueue_transcription_job(
    job_id: str,
    first_ten_minutes_only: bool = False,
    queue_job_id: Optional[str] = None,
) -> Job:
    """Enqueue a transcription job with retry/timeouts for durability.

    ``queue_job_id`` should already be stored on the row; the worker drops
    any job whose id no longer matches it.
    """
    queue = get_transcription_queue()
    return queue.enqueue(
        "services.transcription.process_transcription_job",
        job_id,
        first_ten_minutes_only,
        job_id=queue_job_id or build_transcription_queue_job_id(job_id),
        retry=Retry(max=3, interval=[10, 30, 120]),
        job_timeout=1800,
        result_ttl=86400,
        failure_ttl=86400,
    )


async def recover_stalled_transcription_jobs(
    processing_max_age_minutes: Optional[int] = None,
    pending_max_age_minutes: Optional[int] = None,
) -> int:
    """Mark orphaned PROCESSING/PENDING transcription jobs as FAILED after restarts."""
    now = datetime.now(timezone.utc)
    processing_cutoff = now - timedelta(
        minutes=max(int(processing_max_age_minutes or settings.STALLED_PROCESSING_MINUTES), 1)
    )
    pending_cutoff = now - timedelta(
        minutes=max(int(pending_max_age_minutes or settings.STALLED_PENDING_MINUTES), 1)
    )
    async with async_session_maker() as db:
        processing_result = await db.execute(
            select(TranscriptionJob).where(
                TranscriptionJob.status == TranscriptionStatus.PROCESSING,
                func.coalesce(TranscriptionJob.updated_at, TranscriptionJob.created_at) < processing_cutoff,
            )
        )
        processing_jobs = processing_result.scalars().all()
        for job in processing_jobs:
            job.status = TranscriptionStatus.FAILED
            job.error = INTERRUPTED_PROCESSING_MESSAGE
            job.progress = 0

        pending_result = await db.execute(
            select(TranscriptionJob).where(
                TranscriptionJob.status == TranscriptionStatus.PENDING,
                func.coalesce(TranscriptionJob.updated_at, TranscriptionJob.created_at) < pending_cutoff,
            )
        )
        pending_jobs = pending_result.scalars().all()
        for job in pending_jobs:
            job.status = TranscriptionStatus.FAILED
            job.error = NEVER_STARTED_MESSAGE
            job.progress = 0

        recovered = len(processing_jobs) + len(pending_jobs)
        if recovered:
            await db.commit()
        return recovered


async def recover_stalled_assets(max_age_minutes: Optional[int] = None) -> int:
    """Move assets stuck in PROCESSING to ERROR so they can be reanalyzed."""
    cutoff = datetime.now(timezone.utc) - timedelta(
        minutes=max(int(max_age_minutes or settings.STALLED_PROCESSING_MINUTES), 1)
    )
    async with async_session_maker() as db:
        result = await db.execute(
            select(Asset).where(
                Asset.status == AssetStatus.PROCESSING,
                func.coalesce(Asset.updated_at, Asset.created_at) < cutoff,
            )
        )
        assets = result.scalars().all()
        for asset in assets:
            asset.status = AssetStatus.ERROR
            asset.outreach_tip = INTERRUPTED_ASSET_TIP
            asset.processing_run_id = None
        if assets:
            await db.commit()
        return len(assets)
