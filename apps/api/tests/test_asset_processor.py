import io
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from database import Base
from models.account import Account
from models.asset import Asset, AssetProductLine, AssetStatus, FunnelStage, can_transition
from models.brand_context import BrandContext, ProductLine
from models.transcription import TranscriptSegment
from multimodal.llm import analyze_asset
from multimodal.models import AssetAnalysis, MediaAnalysis, TranscriptSegmentData
from services.asset_processor import (
    failure_tip,
    merge_import_metadata,
    process_asset_async,
    process_asset_job,
)


@pytest_asyncio.fixture
async def processor_db(tmp_path):
    db_path = tmp_path / "processor.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    with patch("services.asset_processor.async_session_maker", session_maker):
        yield session_maker, str(db_path)

    await engine.dispose()


async def _create_asset(session_maker, file_type="application/pdf", status=AssetStatus.PENDING, **fields):
    async with session_maker() as db:
        account = Account(name="Acme")
        db.add(account)
        await db.flush()
        asset = Asset(
            account_id=account.id,
            storage_key=f"accounts/{account.id}/uploads/file",
            storage_url="https://bucket.s3.us-east-1.amazonaws.com/file",
            title="Acme overview",
            file_type=file_type,
            status=status,
            funnel_stage=FunnelStage.TOFU_AWARENESS,
            processing_run_id=fields.pop("processing_run_id", "run-1"),
            **fields,
        )
        db.add(asset)
        await db.commit()
        return asset.id, account.id


async def _load(session_maker, asset_id):
    async with session_maker() as db:
        return (await db.execute(select(Asset).where(Asset.id == asset_id))).scalar_one()


def _analysis(**overrides):
    values = {
        "rationale": "test",
        "asset_type": "Case Study",
        "funnel_stage": FunnelStage.MOFU_CONSIDERATION,
        "icp_targets": ["VP Marketing"],
        "pain_clusters": ["Slow Pipeline Reporting"],
        "outreach_tip": "Lead with the reporting win.",
        "content_quality_score": 80,
    }
    values.update(overrides)
    return AssetAnalysis(**values)


def test_failure_tip_truncates_long_messages():
    assert failure_tip("boom") == "Processing failed: boom"
    tip = failure_tip("x" * 250)
    assert tip == "Processing failed: " + "x" * 81 + "..."
    assert len(tip) == 103
    assert failure_tip("") == "Processing failed: Unknown error"


def test_merge_import_metadata_keeps_source_url():
    merged = merge_import_metadata({"source_url": "https://example.com", "snippets": [{"old": 1}]}, [{"new": 2}])
    assert merged == {"source_url": "https://example.com", "snippets": [{"new": 2}]}
    assert merge_import_metadata(None, []) == {"snippets": []}


def test_processor_transitions_only_move_forward():
    assert can_transition(AssetStatus.PENDING, AssetStatus.PROCESSING)
    assert can_transition(AssetStatus.PROCESSING, AssetStatus.PROCESSED)
    assert not can_transition(AssetStatus.PROCESSED, AssetStatus.PENDING)
    assert not can_transition(AssetStatus.PROCESSING, AssetStatus.APPROVED)
    assert can_transition(AssetStatus.PROCESSED, AssetStatus.APPROVED, by_user=True)
    assert not can_transition(AssetStatus.ERROR, AssetStatus.APPROVED, by_user=True)


@pytest.mark.asyncio
async def test_text_is_extracted_before_analysis_runs(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="text/plain")
    seen = {}

    def _fake_analyze(text, mime_type, *args, **kwargs):
        seen["text"] = text
        seen["mime"] = mime_type
        return _analysis()

    with (
        patch("services.asset_processor.download_object_async", new=AsyncMock(return_value=b"Customer story text")),
        patch("services.asset_processor.analyze_asset", side_effect=_fake_analyze),
    ):
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    assert seen == {"text": "Customer story text", "mime": "text/plain"}
    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.PROCESSED
    assert asset.extracted_text == "Customer story text"
    assert asset.funnel_stage == FunnelStage.MOFU_CONSIDERATION
    assert asset.icp_targets_json == ["VP Marketing"]
    assert asset.ai_confidence == pytest.approx(0.8)
    assert asset.processing_attempts == 1


@pytest.mark.asyncio
async def test_existing_text_is_reused_without_download(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="text/plain", extracted_text="Already here")
    download = AsyncMock(return_value=b"ignored")

    with (
        patch("services.asset_processor.download_object_async", new=download),
        patch("services.asset_processor.analyze_asset", return_value=_analysis()) as analyze,
    ):
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    download.assert_not_awaited()
    assert analyze.call_args.args[0] == "Already here"


@pytest.mark.asyncio
async def test_superseded_run_writes_nothing(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="text/plain", processing_run_id="run-2")

    with patch("services.asset_processor.analyze_asset") as analyze:
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    analyze.assert_not_called()
    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.PENDING
    assert asset.processing_attempts == 0


@pytest.mark.asyncio
async def test_cancel_during_analysis_keeps_cancelled_state(processor_db):
    session_maker, db_path = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="text/plain", extracted_text="Body")

    def _cancel_then_analyze(*args, **kwargs):
        conn = sqlite3.connect(db_path)
        try:
            conn.execute(
                "UPDATE assets SET status = ?, outreach_tip = ?, processing_run_id = NULL WHERE id = ?",
                (AssetStatus.ERROR, "Processing failed: Cancelled by user", asset_id),
            )
            conn.commit()
        finally:
            conn.close()
        return _analysis()

    with patch("services.asset_processor.analyze_asset", side_effect=_cancel_then_analyze):
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.ERROR
    assert asset.outreach_tip == "Processing failed: Cancelled by user"
    assert asset.funnel_stage == FunnelStage.TOFU_AWARENESS


@pytest.mark.asyncio
async def test_analysis_failure_marks_asset_error_with_tip(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="text/plain", extracted_text="Body")

    with patch("services.asset_processor.analyze_asset", side_effect=RuntimeError("model exploded " * 20)):
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.ERROR
    assert asset.outreach_tip.startswith("Processing failed: model exploded")
    assert asset.outreach_tip.endswith("...")
    assert len(asset.outreach_tip) == 103


@pytest.mark.asyncio
async def test_pdf_without_text_fails_with_pdf_message(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="application/pdf")

    with (
        patch("services.asset_processor.download_object_async", new=AsyncMock(return_value=b"%PDF-1.4 broken")),
        patch("services.asset_processor.settings.OPENAI_API_KEY", "test-key"),
    ):
        await process_asset_async(asset_id, "https://bucket/file", "application/pdf", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.ERROR
    assert asset.outreach_tip.startswith("Processing failed: Cannot analyze PDF")


@pytest.mark.asyncio
async def test_image_asset_records_dominant_color(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="image/png")
    buffer = io.BytesIO()
    Image.new("RGB", (40, 40), (255, 0, 0)).save(buffer, format="PNG")

    with (
        patch("services.asset_processor.download_object_async", new=AsyncMock(return_value=buffer.getvalue())),
        patch("services.asset_processor.settings.OPENAI_API_KEY", "test-key"),
    ):
        await process_asset_async(asset_id, "https://bucket/file", "image/png", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.PROCESSED
    assert asset.dominant_color == "#FF0000"
    assert asset.asset_type == "Infographic"


@pytest.mark.asyncio
async def test_media_asset_stores_transcript_text_and_segments(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="video/mp4")
    media = MediaAnalysis(
        content_type="webinar",
        transcript="Welcome everyone. Today we cover pipeline reporting.",
        summary="A webinar on reporting.",
        segments=[
            TranscriptSegmentData(text="Welcome everyone.", start=0.0, end=2.0),
            TranscriptSegmentData(text="Today we cover pipeline reporting.", start=2.0, end=5.0),
        ],
    )

    with (
        patch("services.asset_processor._analyze_media", new=AsyncMock(return_value=media)),
        patch("services.asset_processor.analyze_asset", return_value=_analysis()) as analyze,
    ):
        await process_asset_async(asset_id, "https://bucket/file", "video/mp4", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.PROCESSED
    assert asset.extracted_text.startswith("[VIDEO TRANSCRIPT - webinar]")
    assert "Today we cover pipeline reporting." in analyze.call_args.args[0]
    async with session_maker() as db:
        segments = (
            await db.execute(
                select(TranscriptSegment)
                .where(TranscriptSegment.asset_id == asset_id)
                .order_by(TranscriptSegment.start_time)
            )
        ).scalars().all()
    assert [s.text for s in segments] == ["Welcome everyone.", "Today we cover pipeline reporting."]


@pytest.mark.asyncio
async def test_brand_context_is_passed_and_product_line_match_is_linked(processor_db):
    session_maker, _ = processor_db
    asset_id, account_id = await _create_asset(session_maker, file_type="text/plain", extracted_text="Body")
    async with session_maker() as db:
        db.add(BrandContext(account_id=account_id, value_proposition="Faster reporting", brand_voice_json=["Direct"]))
        line = ProductLine(account_id=account_id, name="Analytics Cloud")
        db.add(line)
        await db.commit()
        line_id = line.id

    with patch(
        "services.asset_processor.analyze_asset",
        return_value=_analysis(matched_product_line_id=line_id),
    ) as analyze:
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    brand_context, product_lines = analyze.call_args.args[4], analyze.call_args.args[5]
    assert brand_context["value_proposition"] == "Faster reporting"
    assert [line["id"] for line in product_lines] == [line_id]
    async with session_maker() as db:
        links = (await db.execute(select(AssetProductLine))).scalars().all()
    assert [(link.asset_id, link.product_line_id) for link in links] == [(asset_id, line_id)]


@pytest.mark.asyncio
async def test_reanalysis_preserves_source_url(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(
        session_maker,
        file_type="text/plain",
        status=AssetStatus.PROCESSED,
        extracted_text="Body",
        atomic_snippets_json={"source_url": "https://example.com/a", "snippets": []},
    )

    with patch("services.asset_processor.analyze_asset", return_value=_analysis()):
        await process_asset_async(asset_id, "https://bucket/file", "text/plain", "run-1")

    asset = await _load(session_maker, asset_id)
    assert asset.status == AssetStatus.PROCESSED
    assert asset.atomic_snippets_json["source_url"] == "https://example.com/a"


def test_rq_entrypoint_runs_async_processor():
    with patch("services.asset_processor.process_asset_async", new=AsyncMock()) as processor:
        process_asset_job("asset-1", "https://bucket/file", "text/plain", "run-1")
    processor.assert_awaited_once_with("asset-1", "https://bucket/file", "text/plain", "run-1")


@pytest.mark.asyncio
async def test_video_never_uses_document_extraction(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="video/mp4")
    media = MediaAnalysis(transcript="Short demo walkthrough.")

    with (
        patch("services.asset_processor._analyze_media", new=AsyncMock(return_value=media)) as analyze_media,
        patch("services.asset_processor.extract_text") as extract,
        patch("services.asset_processor.analyze_asset", return_value=_analysis()),
    ):
        await process_asset_async(asset_id, "https://bucket/file", "video/mp4", "run-1")

    analyze_media.assert_awaited_once()
    extract.assert_not_called()
    assert (await _load(session_maker, asset_id)).status == AssetStatus.PROCESSED


@pytest.mark.asyncio
async def test_multi_page_pdf_text_reaches_analysis(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="application/pdf")
    pages = "Page one covers pricing.\n\nPage two covers rollout."

    with (
        patch("services.asset_processor.download_object_async", new=AsyncMock(return_value=b"%PDF")),
        patch("services.asset_processor.extract_text", return_value=pages),
        patch("services.asset_processor.settings.OPENAI_API_KEY", "test-key"),
        patch("services.asset_processor.analyze_asset", wraps=analyze_asset) as analyze,
    ):
        await process_asset_async(asset_id, "https://bucket/file", "application/pdf", "run-1")

    assert analyze.call_args.args[0] == pages
    asset = await _load(session_maker, asset_id)
    assert asset.extracted_text == pages
    assert asset.status == AssetStatus.PROCESSED
    assert asset.funnel_stage in FunnelStage.ALL
    assert 0 <= asset.content_quality_score <= 100


@pytest.mark.asyncio
async def test_unsupported_type_reaches_terminal_status(processor_db):
    session_maker, _ = processor_db
    asset_id, _ = await _create_asset(session_maker, file_type="application/zip")
    download = AsyncMock()

    with (
        patch("services.asset_processor.download_object_async", new=download),
        patch("services.asset_processor.settings.OPENAI_API_KEY", "test-key"),
        patch("services.asset_processor.analyze_asset", wraps=analyze_asset) as analyze,
    ):
        await process_asset_async(asset_id, "https://bucket/file", "application/zip", "run-1")

    download.assert_not_awaited()
    assert analyze.call_args.args[0] is None
    asset = await _load(session_maker, asset_id)
    assert asset.status in (AssetStatus.PROCESSED, AssetStatus.ERROR)
    assert asset.outreach_tip == "Processing failed: Cannot analyze application/zip: No text content found"
