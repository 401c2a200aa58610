"""Asset processing pipeline: extraction, AI categorization and persistence."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.asset import Asset, AssetProductLine, AssetStatus, can_transition
from models.transcription import TranscriptSegment
from multimodal.documents import extract_text, is_text_extractable
from multimodal.image import extract_dominant_color
from multimodal.llm import PROMPT_VERSION, analyze_asset
from multimodal.media import analyze_media_file, is_media_type, media_analysis_to_text
from multimodal.models import AssetAnalysis, MediaAnalysis
from services.brand import load_brand_context
from services.storage import download_object_async, staged_download

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Processing failed:"
MAX_FAILURE_TIP = 100
SNIPPETS_KEY = "snippets"


class SupersededRunError(Exception):
    """Raised when a newer run (or a cancel) has taken over the asset."""


def failure_tip(message: str) -> str:
    """Build the outreach tip stored on a failed asset."""
    text = str(message or "Unknown error").strip() or "Unknown error"
    tip = f"{FAILURE_PREFIX} {text}"
    if len(tip) > MAX_FAILURE_TIP:
        tip = tip[:MAX_FAILURE_TIP] + "..."
    return tip


def merge_import_metadata(existing: Any, snippets: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Replace stored snippets while keeping import metadata such as ``source_url``."""
    preserved = {k: v for k, v in existing.items() if k != SNIPPETS_KEY} if isinstance(existing, dict) else {}
    return {**preserved, SNIPPETS_KEY: snippets}


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


async def _load_owned_asset(db, asset_id: str, run_id: Optional[str]) -> Asset:
    result = await db.execute(select(Asset).where(Asset.id == asset_id))
    asset = result.scalar_one_or_none()
    if asset is None:
        raise SupersededRunError(f"Asset {asset_id} no longer exists")
    if run_id is not None and asset.processing_run_id != run_id:
        raise SupersededRunError(f"Run {run_id} superseded for asset {asset_id}")
    return asset


async def _begin_run(asset_id: str, run_id: Optional[str]) -> None:
    async with async_session_maker() as db:
        asset = await _load_owned_asset(db, asset_id, run_id)
        if not can_transition(asset.status, AssetStatus.PROCESSING):
            raise SupersededRunError(f"Asset {asset_id} cannot start processing from {asset.status}")
        asset.status = AssetStatus.PROCESSING
        asset.processing_attempts = int(asset.processing_attempts or 0) + 1
        await db.commit()


async def _save_extracted_text(asset_id: str, run_id: Optional[str], text: str) -> None:
    async with async_session_maker() as db:
        asset = await _load_owned_asset(db, asset_id, run_id)
        asset.extracted_text = text
        await db.commit()


async def _save_media_segments(asset_id: str, analysis: MediaAnalysis) -> None:
    if not analysis.segments:
        return
    async with async_session_maker() as db:
        existing = await db.execute(
            select(func.count(TranscriptSegment.id)).where(TranscriptSegment.asset_id == asset_id)
        )
        if int(existing.scalar() or 0) > 0:
            return
        db.add_all([
            TranscriptSegment(
                asset_id=asset_id,
                text=segment.text,
                start_time=segment.start,
                end_time=segment.end,
                speaker=segment.speaker,
                confidence=segment.confidence,
            )
            for segment in analysis.segments
        ])
        await db.commit()


async def _analyze_media(storage_key: str, title: str, mime_type: str) -> MediaAnalysis:
    async with staged_download(storage_key) as (local_path, work_dir):
        return await asyncio.to_thread(
            analyze_media_file,
            local_path,
            title,
            mime_type,
            settings.OPENAI_API_KEY,
            work_dir,
            model=settings.OPENAI_MODEL,
        )


async def _persist_results(
    asset_id: str,
    run_id: Optional[str],
    analysis: AssetAnalysis,
    dominant_color: Optional[str],
) -> None:
    async with async_session_maker() as db:
        asset = await _load_owned_asset(db, asset_id, run_id)
        if not can_transition(asset.status, AssetStatus.PROCESSED):
            raise SupersededRunError(f"Asset {asset_id} left PROCESSING before results were written")

        asset.funnel_stage = analysis.funnel_stage
        asset.asset_type = analysis.asset_type
        asset.icp_targets_json = analysis.icp_targets
        asset.pain_clusters_json = analysis.pain_clusters
        asset.outreach_tip = analysis.outreach_tip
        asset.content_gaps_json = analysis.content_gaps
        asset.atomic_snippets_json = merge_import_metadata(
            asset.atomic_snippets_json,
            [snippet.model_dump() for snippet in analysis.atomic_snippets],
        )
        asset.content_quality_score = analysis.content_quality_score
        asset.applicable_industries_json = analysis.applicable_industries
        asset.expiry_date = _parse_expiry(analysis.suggested_expiry_date)
        if dominant_color:
            asset.dominant_color = dominant_color
        asset.ai_model = settings.OPENAI_MODEL
        asset.prompt_version = PROMPT_VERSION
        asset.analyzed_at = datetime.now(timezone.utc)
        asset.ai_confidence = analysis.content_quality_score / 100
        asset.status = AssetStatus.PROCESSED

        if analysis.matched_product_line_id:
            await db.execute(delete(AssetProductLine).where(AssetProductLine.asset_id == asset_id))
            db.add(AssetProductLine(asset_id=asset_id, product_line_id=analysis.matched_product_line_id))

        await db.commit()


async def _mark_error(asset_id: str, run_id: Optional[str], message: str) -> None:
    async with async_session_maker() as db:
        try:
            asset = await _load_owned_asset(db, asset_id, run_id)
        except SupersededRunError:
            return
        if not can_transition(asset.status, AssetStatus.ERROR):
            return
        asset.status = AssetStatus.ERROR
        asset.outreach_tip = failure_tip(message)
        await db.commit()


async def process_asset_async(
    asset_id: str,
    storage_url: str,
    file_type: Optional[str],
    run_id: Optional[str] = None,
) -> None:
    """Drive one asset from raw upload to a categorized PROCESSED (or ERROR) row."""
    async with async_session_maker() as db:
        result = await db.execute(select(Asset).where(Asset.id == asset_id))
        asset = result.scalar_one_or_none()
        if not asset:
            logger.warning("Asset %s not found for processing", asset_id)
            return
        if run_id is not None and asset.processing_run_id != run_id:
            logger.info("Skipping superseded run %s for asset %s", run_id, asset_id)
            return
        account_id = asset.account_id
        storage_key = asset.storage_key
        title = asset.title
        existing_text = asset.extracted_text or ""

    mime_type = (file_type or asset.file_type or "").lower()

    try:
        await _begin_run(asset_id, run_id)

        extracted_text: Optional[str] = existing_text if existing_text.strip() else None

        if is_media_type(mime_type):
            media_analysis = await _analyze_media(storage_key, title, mime_type)
            extracted_text = media_analysis_to_text(media_analysis)
            await _save_extracted_text(asset_id, run_id, extracted_text)
            await _save_media_segments(asset_id, media_analysis)
        elif is_text_extractable(mime_type) and extracted_text is None:
            try:
                data = await download_object_async(storage_key)
                text = await asyncio.to_thread(extract_text, data, mime_type)
                if text and text.strip():
                    extracted_text = text
                    await _save_extracted_text(asset_id, run_id, extracted_text)
            except SupersededRunError:
                raise
            except Exception as exc:
                logger.warning("Text extraction failed for asset %s (%s): %s", asset_id, mime_type, exc)

        image_bytes: Optional[bytes] = None
        dominant_color: Optional[str] = None
        if mime_type.startswith("image/"):
            try:
                image_bytes = await download_object_async(storage_key)
                dominant_color = await asyncio.to_thread(extract_dominant_color, image_bytes)
            except Exception as exc:
                logger.warning("Dominant color step failed for asset %s: %s", asset_id, exc)

        async with async_session_maker() as db:
            brand_context, product_lines = await load_brand_context(db, account_id)

        analysis = await asyncio.to_thread(
            analyze_asset,
            extracted_text,
            mime_type,
            storage_url,
            title,
            brand_context,
            product_lines,
            settings.OPENAI_API_KEY,
            image_bytes=image_bytes,
            model=settings.OPENAI_MODEL,
        )

        await _persist_results(asset_id, run_id, analysis, dominant_color)
        logger.info("Asset %s processed (funnel=%s score=%s)", asset_id, analysis.funnel_stage, analysis.content_quality_score)
    except SupersededRunError as exc:
        logger.info("Stopping asset run: %s", exc)
    except Exception as exc:
        logger.exception("Asset processing %s failed: %s", asset_id, exc)
        await _mark_error(asset_id, run_id, str(exc))


def process_asset_job(
    asset_id: str,
    storage_url: str,
    file_type: Optional[str],
    run_id: Optional[str] = None,
) -> None:
    """RQ worker entrypoint for asset processing jobs."""
    asyncio.run(process_asset_async(asset_id, storage_url, file_type, run_id))
