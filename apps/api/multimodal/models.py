from typing import List, Optional
from pydantic import BaseModel, Field

class AtomicSnippet(BaseModel):
    type: str       # ROI_STAT, CUSTOMER_QUOTE, VALUE_PROP, COMPETITIVE_WEDGE, DEFINITION
    content: str
    context: str = ""
    page_location: Optional[str] = None
    confidence_score: int = 50  # 1-100
    is_verbatim: bool = True

class AssetAnalysis(BaseModel):
    rationale: str = ""
    asset_type: Optional[str] = None
    funnel_stage: str = "TOFU_AWARENESS"
    icp_targets: List[str] = Field(default_factory=list)
    pain_clusters: List[str] = Field(default_factory=list)
    outreach_tip: str = ""
    content_gaps: List[str] = Field(default_factory=list)
    atomic_snippets: List[AtomicSnippet] = Field(default_factory=list)
    content_quality_score: int = 50  # 1-100
    suggested_expiry_date: Optional[str] = None  # YYYY-MM-DD
    applicable_industries: List[str] = Field(default_factory=list)
    matched_product_line_id: Optional[str] = None

class TranscriptSegmentData(BaseModel):
    text: str
    start: float
    end: float
    speaker: Optional[str] = None
    confidence: Optional[float] = None

class MediaSnippet(BaseModel):
    type: str       # QUOTE, STATISTIC, KEY_POINT, CALL_TO_ACTION
    content: str
    timestamp: Optional[str] = None
    speaker: Optional[str] = None

class MediaAnalysis(BaseModel):
    content_type: str = "other"
    transcript: str
    summary: str = ""
    speakers: List[str] = Field(default_factory=list)
    snippets: List[MediaSnippet] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    pain_points_mentioned: List[str] = Field(default_factory=list)
    suggested_asset_type: Optional[str] = None
    audio_quality_score: Optional[int] = None
    estimated_duration_minutes: float = 0.0
    segments: List[TranscriptSegmentData] = Field(default_factory=list)
