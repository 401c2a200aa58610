"""Asset model and its status vocabulary."""

import uuid

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from database import Base


class AssetStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    APPROVED = "APPROVED"
    ERROR = "ERROR"

    ALL = (PENDING, PROCESSING, PROCESSED, APPROVED, ERROR)
    IN_FLIGHT = (PENDING, PROCESSING)
    ANALYZABLE = (PROCESSED, APPROVED, ERROR)


class FunnelStage:
    TOFU_AWARENESS = "TOFU_AWARENESS"
    MOFU_CONSIDERATION = "MOFU_CONSIDERATION"
    BOFU_DECISION = "BOFU_DECISION"
    RETENTION = "RETENTION"

    ALL = (TOFU_AWARENESS, MOFU_CONSIDERATION, BOFU_DECISION, RETENTION)


# Transitions a processing run may make. A reanalysis re-enters PROCESSING.
PROCESSOR_TRANSITIONS = {
    AssetStatus.PENDING: {AssetStatus.PROCESSING, AssetStatus.ERROR},
    AssetStatus.PROCESSING: {AssetStatus.PROCESSED, AssetStatus.ERROR},
    AssetStatus.PROCESSED: {AssetStatus.PROCESSING},
    AssetStatus.APPROVED: {AssetStatus.PROCESSING},
    AssetStatus.ERROR: {AssetStatus.PROCESSING},
}

# Transitions a user may request through asset edits.
USER_TRANSITIONS = {
    AssetStatus.PROCESSED: {AssetStatus.APPROVED},
    AssetStatus.APPROVED: {AssetStatus.PROCESSED},
}


def can_transition(current: str, target: str, *, by_user: bool = False) -> bool:
    """Return whether an asset may move from ``current`` to ``target``."""
    if current == target:
        return True
    table = USER_TRANSITIONS if by_user else PROCESSOR_TRANSITIONS
    return target in table.get(current, set())


class Asset(Base):
    """One uploaded marketing file and its AI categorization."""

    __tablename__ = "assets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    storage_key = Column(String, nullable=False, index=True)
    storage_url = Column(String, nullable=False)
    title = Column(String, nullable=False)
    file_type = Column(String, nullable=True)
    file_size_bytes = Column(BigInteger, nullable=True)
    extracted_text = Column(Text, nullable=True)

    # AI categorization
    funnel_stage = Column(String, nullable=False, default=FunnelStage.TOFU_AWARENESS, index=True)
    asset_type = Column(String, nullable=True)
    icp_targets_json = Column(JSON, nullable=True)
    pain_clusters_json = Column(JSON, nullable=True)
    outreach_tip = Column(Text, nullable=True)
    atomic_snippets_json = Column(JSON, nullable=True)
    content_quality_score = Column(Integer, nullable=True)
    applicable_industries_json = Column(JSON, nullable=True)
    content_gaps_json = Column(JSON, nullable=True)
    dominant_color = Column(String, nullable=True)
    expiry_date = Column(DateTime(timezone=True), nullable=True)

    status = Column(String, nullable=False, default=AssetStatus.PENDING, index=True)

    # Traceability
    ai_model = Column(String, nullable=True)
    prompt_version = Column(String, nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)
    ai_confidence = Column(Float, nullable=True)

    # Single-writer guard for processing runs
    processing_run_id = Column(String, nullable=True)
    processing_attempts = Column(Integer, nullable=False, default=0)
    queue_job_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AssetProductLine(Base):
    """Link between an asset and a matched product line."""

    __tablename__ = "asset_product_lines"
    __table_args__ = (UniqueConstraint("asset_id", "product_line_id", name="uq_asset_product_lines_pair"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    asset_id = Column(String, ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    product_line_id = Column(String, ForeignKey("product_lines.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
