from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from rq import Retry
from sqlalchemy.future import select

from models.account import Account
from models.asset import Asset, AssetStatus, FunnelStage
from models.transcription import TranscriptionJob, TranscriptionStatus
from services.job_queue import (
    INTERRUPTED_ASSET_TIP,
    INTERRUPTED_PROCESSING_MESSAGE,
    NEVER_STARTED_MESSAGE,
    enqueue_asset_processing_job,
    enqueue_transcription_job,
    recover_stalled_assets,
    recover_stalled_transcription_jobs,
)


def test_enqueue_asset_processing_job_uses_run_scoped_job_id():
    queue = MagicMock()
    queue.enqueue.return_value = MagicMock(id="asset:a1:r1")
    with patch("services.job_queue.get_asset_queue", return_value=queue):
        job = enqueue_asset_processing_job("a1", "https://bucket/file", "application/pdf", "r1")

    assert job.id == "asset:a1:r1"
    args, kwargs = queue.enqueue.call_args
    assert args == ("services.asset_processor.process_asset_job", "a1", "https://bucket/file", "application/pdf", "r1")
    assert kwargs["job_id"] == "asset:a1:r1"
    assert isinstance(kwargs["retry"], Retry)
    assert kwargs["job_timeout"] == 1800


def test_enqueue_transcription_job_targets_worker_entrypoint():
    queue = MagicMock()
    with patch("services.job_queue.get_transcription_queue", return_value=queue):
        enqueue_transcription_job("t1", True)

    args, kwargs = queue.enqueue.call_args
    assert args == ("services.transcription.process_transcription_job", "t1", True)
    assert kwargs["job_id"].startswith("transcription:t1:")


def test_enqueue_transcription_job_uses_id_stored_on_row():
    queue = MagicMock()
    with patch("services.job_queue.get_transcription_queue", return_value=queue):
        enqueue_transcription_job("t1", False, queue_job_id="transcription:t1:abc123")

    assert queue.enqueue.call_args.kwargs["job_id"] == "transcription:t1:abc123"


async def _seed_asset(db, status, updated_at):
    account = Account(name="Acme")
    db.add(account)
    await db.flush()
    asset = Asset(
        account_id=account.id,
        storage_key=f"accounts/{account.id}/uploads/file.mp4",
        storage_url="https://bucket/file.mp4",
        title="Recording",
        file_type="video/mp4",
        status=status,
        funnel_stage=FunnelStage.TOFU_AWARENESS,
        processing_run_id="run-1",
        created_at=updated_at,
        updated_at=updated_at,
    )
    db.add(asset)
    await db.flush()
    return asset


@pytest.mark.asyncio
async def test_recover_stalled_transcription_jobs(api_client):
    _, session_maker = api_client
    now = datetime.now(timezone.utc)
    async with session_maker() as db:
        assets = [await _seed_asset(db, AssetStatus.PROCESSED, now) for _ in range(4)]
        jobs = {
            "stale_processing": TranscriptionJob(
                asset_id=assets[0].id,
                status=TranscriptionStatus.PROCESSING,
                progress=50,
                created_at=now - timedelta(hours=2),
                updated_at=now - timedelta(hours=1),
            ),
            "stale_pending": TranscriptionJob(
                asset_id=assets[1].id,
                status=TranscriptionStatus.PENDING,
                created_at=now - timedelta(minutes=20),
                updated_at=now - timedelta(minutes=20),
            ),
            "fresh_pending": TranscriptionJob(
                asset_id=assets[2].id,
                status=TranscriptionStatus.PENDING,
                created_at=now,
                updated_at=now,
            ),
            "fresh_processing": TranscriptionJob(
                asset_id=assets[3].id,
                status=TranscriptionStatus.PROCESSING,
                progress=20,
                created_at=now - timedelta(hours=2),
                updated_at=now,
            ),
        }
        db.add_all(jobs.values())
        await db.commit()
        ids = {name: job.id for name, job in jobs.items()}

    recovered = await recover_stalled_transcription_jobs()

    assert recovered == 2
    async with session_maker() as db:
        rows = {
            job.id: job
            for job in (await db.execute(select(TranscriptionJob))).scalars().all()
        }
    assert rows[ids["stale_processing"]].status == TranscriptionStatus.FAILED
    assert rows[ids["stale_processing"]].error == INTERRUPTED_PROCESSING_MESSAGE
    assert rows[ids["stale_processing"]].progress == 0
    assert rows[ids["stale_pending"]].status == TranscriptionStatus.FAILED
    assert rows[ids["stale_pending"]].error == NEVER_STARTED_MESSAGE
    assert rows[ids["fresh_pending"]].status == TranscriptionStatus.PENDING
    assert rows[ids["fresh_processing"]].status == TranscriptionStatus.PROCESSING


@pytest.mark.asyncio
async def test_recover_stalled_assets_moves_processing_to_error(api_client):
    _, session_maker = api_client
    now = datetime.now(timezone.utc)
    async with session_maker() as db:
        stale = await _seed_asset(db, AssetStatus.PROCESSING, now - timedelta(hours=2))
        fresh = await _seed_asset(db, AssetStatus.PROCESSING, now)
        done = await _seed_asset(db, AssetStatus.PROCESSED, now - timedelta(hours=2))
        await db.commit()
        stale_id, fresh_id, done_id = stale.id, fresh.id, done.id

    recovered = await recover_stalled_assets()

    assert recovered == 1
    async with session_maker() as db:
        rows = {a.id: a for a in (await db.execute(select(Asset))).scalars().all()}
    assert rows[stale_id].status == AssetStatus.ERROR
    assert rows[stale_id].outreach_tip == INTERRUPTED_ASSET_TIP
    assert rows[stale_id].processing_run_id is None
    assert rows[fresh_id].status == AssetStatus.PROCESSING
    assert rows[done_id].status == AssetStatus.PROCESSED
