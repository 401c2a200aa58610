"""Asset ingestion, editing and reanalysis router."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.asset import Asset, AssetProductLine, AssetStatus, FunnelStage, can_transition
from models.brand_context import ProductLine
from models.transcription import TranscriptionJob, TranscriptSegment
from routers.auth_scope import AuthContext, get_account_context
from routers.rate_limit import rate_limit
from services.job_queue import enqueue_asset_processing_job
from services.storage import (
    account_prefix,
    build_content_key,
    delete_object_async,
    get_object_url,
    get_presigned_download_url,
    put_object_async,
)

logger = logging.getLogger(__name__)

router = APIRouter()

QUEUE_UNAVAILABLE_TIP = "Processing failed: Processing queue unavailable. Please retry."
MARKDOWN_MIME = "text/markdown"
MAX_CONTENT_CHARS = 1_000_000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessAssetRequest(CamelModel):
    key: str = Field(min_length=1, max_length=1024)
    title: Optional[str] = Field(default=None, max_length=500)
    file_type: Optional[str] = Field(default=None, min_length=1, max_length=255)
    file_size: Optional[int] = Field(default=None, ge=0)
    source_url: Optional[str] = Field(default=None, max_length=2000)


class CreateFromContentRequest(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1, max_length=MAX_CONTENT_CHARS)
    funnel_stage: Optional[str] = None
    icp_targets: List[str] = Field(default_factory=list, max_length=20)
    product_line_ids: List[str] = Field(default_factory=list)
    source_url: Optional[str] = Field(default=None, max_length=2000)


class UpdateAssetRequest(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    asset_type: Optional[str] = None
    funnel_stage: Optional[str] = None
    icp_targets: Optional[List[str]] = None
    pain_clusters: Optional[List[str]] = Field(default=None, max_length=3)
    outreach_tip: Optional[str] = Field(default=None, max_length=500)
    applicable_industries: Optional[List[str]] = None
    status: Optional[str] = None
    product_line_ids: Optional[List[str]] = None


class AssetIdsRequest(CamelModel):
    asset_ids: List[str] = Field(min_length=1, max_length=500)


class BulkUpdateRequest(AssetIdsRequest):
    funnel_stage: Optional[str] = None
    icp_targets: Optional[List[str]] = None
    status: Optional[str] = None


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_asset(
    asset: Asset,
    product_line_ids: Optional[List[str]] = None,
    include_text: bool = False,
) -> Dict[str, Any]:
    snippets = asset.atomic_snippets_json if isinstance(asset.atomic_snippets_json, dict) else {}
    payload = {
        "id": asset.id,
        "accountId": asset.account_id,
        "key": asset.storage_key,
        "url": asset.storage_url,
        "title": asset.title,
        "fileType": asset.file_type,
        "fileSize": asset.file_size_bytes,
        "status": asset.status,
        "funnelStage": asset.funnel_stage,
        "assetType": asset.asset_type,
        "icpTargets": _list(asset.icp_targets_json),
        "painClusters": _list(asset.pain_clusters_json),
        "outreachTip": asset.outreach_tip,
        "atomicSnippets": _list(snippets.get("snippets")),
        "sourceUrl": snippets.get("source_url"),
        "contentQualityScore": asset.content_quality_score,
        "applicableIndustries": _list(asset.applicable_industries_json),
        "contentGaps": _list(asset.content_gaps_json),
        "dominantColor": asset.dominant_color,
        "expiryDate": _iso(asset.expiry_date),
        "aiModel": asset.ai_model,
        "promptVersion": asset.prompt_version,
        "analyzedAt": _iso(asset.analyzed_at),
        "aiConfidence": asset.ai_confidence,
        "productLineIds": product_line_ids or [],
        "createdAt": _iso(asset.created_at),
        "updatedAt": _iso(asset.updated_at),
    }
    if include_text:
        payload["extractedText"] = asset.extracted_text
    return payload


async def _product_line_ids(db: AsyncSession, asset_ids: List[str]) -> Dict[str, List[str]]:
    if not asset_ids:
        return {}
    result = await db.execute(select(AssetProductLine).where(AssetProductLine.asset_id.in_(asset_ids)))
    mapping: Dict[str, List[str]] = {}
    for link in result.scalars().all():
        mapping.setdefault(link.asset_id, []).append(link.product_line_id)
    return mapping


async def get_account_asset(db: AsyncSession, account_id: str, asset_id: str) -> Asset:
    result = await db.execute(select(Asset).where(Asset.id == asset_id, Asset.account_id == account_id))
    asset = result.scalar_one_or_none()
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


async def _get_owned_assets(db: AsyncSession, account_id: str, asset_ids: List[str]) -> List[Asset]:
    unique_ids = list(dict.fromkeys(asset_ids))
    result = await db.execute(
        select(Asset).where(Asset.id.in_(unique_ids), Asset.account_id == account_id)
    )
    assets = result.scalars().all()
    if len(assets) != len(unique_ids):
        raise HTTPException(
            status_code=403,
            detail="Some assets not found or do not belong to your account",
        )
    return list(assets)


async def _validate_product_lines(db: AsyncSession, account_id: str, product_line_ids: List[str]) -> List[str]:
    unique_ids = list(dict.fromkeys(product_line_ids))
    if not unique_ids:
        return []
    result = await db.execute(
        select(ProductLine.id).where(ProductLine.id.in_(unique_ids), ProductLine.account_id == account_id)
    )
    found = set(result.scalars().all())
    missing = [pid for pid in unique_ids if pid not in found]
    if missing:
        raise HTTPException(status_code=400, detail={"message": "Invalid product line ids", "details": missing})
    return unique_ids


def _check_user_status(asset: Asset, target: Optional[str]) -> None:
    if target is None:
        return
    if target not in AssetStatus.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown status: {target}")
    if not can_transition(asset.status, target, by_user=True):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change status from {asset.status} to {target}",
        )


def _check_funnel_stage(value: Optional[str]) -> None:
    if value is not None and value not in FunnelStage.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown funnel stage: {value}")


async def start_processing_run(db: AsyncSession, asset: Asset) -> bool:
    """Assign a fresh run id and enqueue it; returns False when the queue is unavailable."""
    run_id = str(uuid.uuid4())
    asset.processing_run_id = run_id
    await db.commit()
    try:
        queue_job = enqueue_asset_processing_job(asset.id, asset.storage_url, asset.file_type, run_id)
    except Exception as exc:
        logger.error("Could not enqueue asset %s: %s", asset.id, exc)
        asset.processing_run_id = None
        if asset.status == AssetStatus.PENDING:
            asset.status = AssetStatus.ERROR
            asset.outreach_tip = QUEUE_UNAVAILABLE_TIP
        await db.commit()
        return False
    asset.queue_job_id = queue_job.id
    await db.commit()
    return True


async def _delete_assets(db: AsyncSession, assets: List[Asset]) -> None:
    asset_ids = [asset.id for asset in assets]
    await db.execute(delete(TranscriptSegment).where(TranscriptSegment.asset_id.in_(asset_ids)))
    await db.execute(delete(TranscriptionJob).where(TranscriptionJob.asset_id.in_(asset_ids)))
    await db.execute(delete(AssetProductLine).where(AssetProductLine.asset_id.in_(asset_ids)))
    await db.execute(delete(Asset).where(Asset.id.in_(asset_ids)))
    await db.commit()
    for asset in assets:
        try:
            await delete_object_async(asset.storage_key)
        except Exception as exc:
            logger.warning("Could not delete storage object %s: %s", asset.storage_key, exc)


@router.post("/process")
async def process_asset(
    request: ProcessAssetRequest,
    _rate_limit: None = Depends(rate_limit("asset_process", limit=300, window_seconds=3600)),
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Create the asset row for an uploaded object and queue its processing."""
    key = request.key.strip()
    if not key.startswith(account_prefix(auth.account_id)):
        raise HTTPException(status_code=403, detail="Storage key does not belong to your account")

    title = (request.title or "").strip() or key.rsplit("/", 1)[-1]
    asset = Asset(
        id=str(uuid.uuid4()),
        account_id=auth.account_id,
        uploaded_by_id=auth.user_id,
        storage_key=key,
        storage_url=get_object_url(key),
        title=title,
        file_type=request.file_type,
        file_size_bytes=request.file_size,
        funnel_stage=FunnelStage.TOFU_AWARENESS,
        icp_targets_json=[],
        pain_clusters_json=[],
        applicable_industries_json=[],
        atomic_snippets_json={"source_url": request.source_url} if request.source_url else None,
        status=AssetStatus.PENDING,
    )
    db.add(asset)
    await db.commit()
    await db.refresh(asset)

    if not await start_processing_run(db, asset):
        raise HTTPException(
            status_code=503,
            detail="Processing queue unavailable. Check Redis/worker availability and retry.",
        )

    return {
        "success": True,
        "asset": {"id": asset.id, "key": asset.storage_key, "status": asset.status},
        "jobId": asset.queue_job_id,
        "status": asset.status,
        "message": "Asset queued for processing",
    }


@router.post("/from-content")
async def create_asset_from_content(
    request: CreateFromContentRequest,
    _rate_limit: None = Depends(rate_limit("asset_from_content", limit=120, window_seconds=3600)),
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Save written or imported text as a markdown asset and queue its analysis.

    The text is stored as the asset's extracted text, so the processing run
    goes straight to categorization without re-extracting the file.
    """
    _check_funnel_stage(request.funnel_stage)
    product_line_ids = await _validate_product_lines(db, auth.account_id, request.product_line_ids)

    title = request.title.strip()
    body = request.content.encode("utf-8")
    key = build_content_key(auth.account_id, title)
    try:
        await put_object_async(key, body, MARKDOWN_MIME)
    except Exception as exc:
        logger.error("Could not store content for account %s: %s", auth.account_id, exc)
        raise HTTPException(status_code=502, detail="Failed to upload content to storage") from exc

    icp_targets = list(dict.fromkeys(t.strip() for t in request.icp_targets if t and t.strip()))
    asset = Asset(
        id=str(uuid.uuid4()),
        account_id=auth.account_id,
        uploaded_by_id=auth.user_id,
        storage_key=key,
        storage_url=get_object_url(key),
        title=title,
        file_type=MARKDOWN_MIME,
        file_size_bytes=len(body),
        extracted_text=request.content,
        funnel_stage=request.funnel_stage or FunnelStage.TOFU_AWARENESS,
        icp_targets_json=icp_targets,
        pain_clusters_json=[],
        applicable_industries_json=[],
        atomic_snippets_json={"source_url": request.source_url} if request.source_url else None,
        status=AssetStatus.PENDING,
    )
    db.add(asset)
    await db.flush()
    db.add_all([AssetProductLine(asset_id=asset.id, product_line_id=pid) for pid in product_line_ids])
    await db.commit()
    await db.refresh(asset)

    if not await start_processing_run(db, asset):
        raise HTTPException(
            status_code=503,
            detail="Processing queue unavailable. Check Redis/worker availability and retry.",
        )

    return {
        "success": True,
        "asset": serialize_asset(asset, product_line_ids),
        "jobId": asset.queue_job_id,
        "status": asset.status,
        "message": f"\"{title}\" has been added to your asset library",
    }


@router.get("")
async def list_assets(
    status: Optional[str] = None,
    funnel_stage: Optional[str] = Query(default=None, alias="funnelStage"),
    limit: int = 100,
    offset: int = 0,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """List the account's assets, newest first."""
    query = select(Asset).where(Asset.account_id == auth.account_id)
    if status:
        query = query.where(Asset.status == status)
    if funnel_stage:
        query = query.where(Asset.funnel_stage == funnel_stage)
    query = query.order_by(Asset.created_at.desc(), Asset.id.desc()).offset(max(offset, 0)).limit(max(1, min(limit, 500)))
    result = await db.execute(query)
    assets = result.scalars().all()
    links = await _product_line_ids(db, [a.id for a in assets])
    return {"assets": [serialize_asset(a, links.get(a.id)) for a in assets]}


@router.post("/bulk-reanalyze")
async def bulk_reanalyze(
    request: AssetIdsRequest,
    _rate_limit: None = Depends(rate_limit("asset_bulk_reanalyze", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Queue a fresh processing run for every asset that is not already in flight."""
    assets = await _get_owned_assets(db, auth.account_id, request.asset_ids)
    analyzable = [a for a in assets if a.status in AssetStatus.ANALYZABLE]
    skipped = len(assets) - len(analyzable)

    queued = 0
    for asset in analyzable:
        if await start_processing_run(db, asset):
            queued += 1
    if analyzable and queued == 0:
        raise HTTPException(
            status_code=503,
            detail="Processing queue unavailable. Check Redis/worker availability and retry.",
        )
    skipped += len(analyzable) - queued

    message = f"Queued {queued} asset(s) for reanalysis"
    if skipped:
        message += f", skipped {skipped} already processing"
    return {
        "success": True,
        "queuedCount": queued,
        "skippedCount": skipped,
        "message": message,
    }


@router.post("/bulk-update")
async def bulk_update(
    request: BulkUpdateRequest,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Apply the same edit to several assets."""
    assets = await _get_owned_assets(db, auth.account_id, request.asset_ids)
    _check_funnel_stage(request.funnel_stage)
    for asset in assets:
        _check_user_status(asset, request.status)
    for asset in assets:
        if request.funnel_stage is not None:
            asset.funnel_stage = request.funnel_stage
        if request.icp_targets is not None:
            asset.icp_targets_json = request.icp_targets
        if request.status is not None:
            asset.status = request.status
    await db.commit()
    return {"success": True, "updatedCount": len(assets)}


@router.post("/bulk-delete")
async def bulk_delete(
    request: AssetIdsRequest,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Delete several assets and their stored files."""
    assets = await _get_owned_assets(db, auth.account_id, request.asset_ids)
    await _delete_assets(db, assets)
    return {"success": True, "deletedCount": len(assets)}


@router.get("/{asset_id}")
async def get_asset(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    asset = await get_account_asset(db, auth.account_id, asset_id)
    links = await _product_line_ids(db, [asset.id])
    return {"asset": serialize_asset(asset, links.get(asset.id), include_text=True)}


@router.patch("/{asset_id}")
async def update_asset(
    asset_id: str,
    request: UpdateAssetRequest,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Apply user edits (tags, approval, product lines) to one asset."""
    asset = await get_account_asset(db, auth.account_id, asset_id)
    _check_funnel_stage(request.funnel_stage)
    _check_user_status(asset, request.status)

    product_line_ids = None
    if request.product_line_ids is not None:
        product_line_ids = await _validate_product_lines(db, auth.account_id, request.product_line_ids)

    if request.title is not None:
        asset.title = request.title.strip()
    if request.asset_type is not None:
        asset.asset_type = request.asset_type
    if request.funnel_stage is not None:
        asset.funnel_stage = request.funnel_stage
    if request.icp_targets is not None:
        asset.icp_targets_json = request.icp_targets
    if request.pain_clusters is not None:
        asset.pain_clusters_json = request.pain_clusters
    if request.outreach_tip is not None:
        asset.outreach_tip = request.outreach_tip
    if request.applicable_industries is not None:
        asset.applicable_industries_json = request.applicable_industries
    if request.status is not None:
        asset.status = request.status

    if product_line_ids is not None:
        await db.execute(delete(AssetProductLine).where(AssetProductLine.asset_id == asset.id))
        db.add_all([AssetProductLine(asset_id=asset.id, product_line_id=pid) for pid in product_line_ids])

    await db.commit()
    await db.refresh(asset)
    links = await _product_line_ids(db, [asset.id])
    return {"asset": serialize_asset(asset, links.get(asset.id), include_text=True)}


@router.delete("/{asset_id}")
async def delete_asset(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    asset = await get_account_asset(db, auth.account_id, asset_id)
    await _delete_assets(db, [asset])
    return {"success": True}


@router.get("/{asset_id}/download")
async def download_asset(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Return a short-lived signed download URL."""
    asset = await get_account_asset(db, auth.account_id, asset_id)
    return {"url": get_presigned_download_url(asset.storage_key)}


@router.post("/{asset_id}/retry")
async def retry_asset(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Reanalyze one asset from scratch."""
    asset = await get_account_asset(db, auth.account_id, asset_id)
    if asset.status in AssetStatus.IN_FLIGHT:
        raise HTTPException(status_code=409, detail="Asset is already being processed")
    if not await start_processing_run(db, asset):
        raise HTTPException(
            status_code=503,
            detail="Processing queue unavailable. Check Redis/worker availability and retry.",
        )
    return {"success": True, "jobId": asset.queue_job_id, "status": asset.status}


@router.post("/{asset_id}/cancel")
async def cancel_asset(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Stop tracking an in-flight run and mark the asset failed."""
    asset = await get_account_asset(db, auth.account_id, asset_id)
    if asset.status != AssetStatus.PROCESSING:
        raise HTTPException(status_code=400, detail="Asset is not currently processing")
    asset.status = AssetStatus.ERROR
    asset.outreach_tip = "Processing failed: Cancelled by user"
    asset.processing_run_id = None
    await db.commit()
    return {"success": True, "status": asset.status}
