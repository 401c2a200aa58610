import base64
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from openai import OpenAI

from .models import AssetAnalysis, AtomicSnippet

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-2024-08-06"
PROMPT_VERSION = "2.0"
MAX_TEXT_CHARS = 300000

FUNNEL_STAGES = ("TOFU_AWARENESS", "MOFU_CONSIDERATION", "BOFU_DECISION", "RETENTION")
ASSET_TYPES = (
    "Case Study", "Whitepaper", "Blog Post", "Infographic", "Webinar Recording",
    "Sales Deck", "Product Demo", "Datasheet", "eBook", "Video", "Email Template",
    "Social Post", "One-Pager", "Other",
)
SNIPPET_TYPES = ("ROI_STAT", "CUSTOMER_QUOTE", "VALUE_PROP", "COMPETITIVE_WEDGE", "DEFINITION")

MAX_ICP_TARGETS = 5
MAX_ICP_LENGTH = 50
MAX_PAIN_CLUSTERS = 3
MAX_OUTREACH_TIP = 240
MAX_INDUSTRIES = 5
MAX_SNIPPETS = 8

ACRONYMS = {
    "ai", "api", "b2b", "b2c", "cfo", "cio", "cmo", "coo", "cro", "crm", "cto", "erp",
    "gdpr", "hipaa", "hr", "it", "kpi", "ml", "roi", "saas", "sdr", "seo", "sla", "soc",
    "sql", "ui", "ux", "vp",
}
SMALL_WORDS = {"a", "an", "and", "as", "at", "by", "for", "in", "of", "on", "or", "the", "to", "vs", "with"}
GENERIC_PAIN_WORDS = {"efficiency", "productivity", "quality", "performance"}


def get_openai_client(api_key: str) -> OpenAI:
    """Get OpenAI client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return OpenAI(api_key=api_key)


def dedupe(values: Iterable[Any]) -> List[str]:
    """Strip, drop empties and remove case-insensitive duplicates, keeping order."""
    seen = set()
    out: List[str] = []
    for value in values or []:
        text = str(value or "").strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        out.append(text)
    return out


def smart_title_case(value: str) -> str:
    words = re.split(r"\s+", value.strip())
    titled = []
    for idx, word in enumerate(words):
        lowered = word.lower()
        if lowered in ACRONYMS:
            titled.append(lowered.upper())
        elif idx > 0 and lowered in SMALL_WORDS:
            titled.append(lowered)
        else:
            titled.append(word[:1].upper() + word[1:].lower())
    return " ".join(titled)


def normalize_icp_targets(values: Iterable[Any]) -> List[str]:
    targets = [v for v in dedupe(values) if len(v) < MAX_ICP_LENGTH]
    return targets[:MAX_ICP_TARGETS]


def normalize_pain_clusters(values: Iterable[Any]) -> List[str]:
    clusters: List[str] = []
    for value in dedupe(values):
        words = value.split()
        if not 2 <= len(words) <= 5:
            continue
        if any(word.lower() in GENERIC_PAIN_WORDS for word in words) and len(words) == 2:
            continue
        clusters.append(smart_title_case(value))
    return dedupe(clusters)[:MAX_PAIN_CLUSTERS]


def normalize_snippets(values: Iterable[Any]) -> List[AtomicSnippet]:
    snippets: List[AtomicSnippet] = []
    for row in values or []:
        if not isinstance(row, dict):
            continue
        content = str(row.get("content") or "").strip()
        snippet_type = str(row.get("type") or "").strip().upper()
        if not content or snippet_type not in SNIPPET_TYPES:
            continue
        try:
            confidence = int(row.get("confidenceScore", row.get("confidence_score", 50)))
        except (TypeError, ValueError):
            confidence = 50
        snippets.append(AtomicSnippet(
            type=snippet_type,
            content=content,
            context=str(row.get("context") or ""),
            page_location=row.get("pageLocation") or row.get("page_location"),
            confidence_score=max(1, min(confidence, 100)),
            is_verbatim=bool(row.get("isVerbatim", row.get("is_verbatim", True))),
        ))
    return snippets[:MAX_SNIPPETS]


def _clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 50
    return max(1, min(score, 100))


def normalize_analysis(payload: Dict[str, Any], product_line_ids: Iterable[str]) -> AssetAnalysis:
    """Coerce raw model output (camelCase or snake_case keys) into a clean AssetAnalysis."""
    def pick(*keys: str, default: Any = None) -> Any:
        for key in keys:
            if key in payload and payload[key] is not None:
                return payload[key]
        return default

    funnel_stage = str(pick("funnelStage", "funnel_stage", default="TOFU_AWARENESS")).upper()
    if funnel_stage not in FUNNEL_STAGES:
        funnel_stage = "TOFU_AWARENESS"

    asset_type = pick("assetType", "asset_type")
    if asset_type not in ASSET_TYPES:
        asset_type = "Other" if asset_type else None

    matched = pick("matchedProductLineId", "matched_product_line_id")
    allowed = set(product_line_ids or [])
    if matched not in allowed:
        matched = None

    expiry = pick("suggestedExpiryDate", "suggested_expiry_date")
    if not (isinstance(expiry, str) and re.fullmatch(r"\d{4}-\d{2}-\d{2}", expiry)):
        expiry = None

    return AssetAnalysis(
        rationale=str(pick("rationale", default=""))[:200],
        asset_type=asset_type,
        funnel_stage=funnel_stage,
        icp_targets=normalize_icp_targets(pick("icpTargets", "icp_targets", default=[])),
        pain_clusters=normalize_pain_clusters(pick("painClusters", "pain_clusters", default=[])),
        outreach_tip=str(pick("outreachTip", "outreach_tip", default="")).strip()[:MAX_OUTREACH_TIP],
        content_gaps=dedupe(pick("contentGaps", "content_gaps", default=[])),
        atomic_snippets=normalize_snippets(pick("atomicSnippets", "atomic_snippets", default=[])),
        content_quality_score=_clamp_score(pick("contentQualityScore", "content_quality_score", default=50)),
        suggested_expiry_date=expiry,
        applicable_industries=dedupe(pick("applicableIndustries", "applicable_industries", default=[]))[:MAX_INDUSTRIES],
        matched_product_line_id=matched,
    )


def _fallback_analysis(text: Optional[str], title: str, mime_type: str) -> AssetAnalysis:
    """Deterministic local analysis used when no OpenAI key is configured."""
    body = (text or "").lower()
    if any(word in body for word in ("pricing", "roi", "contract", "implementation")):
        stage = "BOFU_DECISION"
    elif any(word in body for word in ("case study", "comparison", "versus", "webinar")):
        stage = "MOFU_CONSIDERATION"
    elif any(word in body for word in ("onboarding", "renewal", "customer success")):
        stage = "RETENTION"
    else:
        stage = "TOFU_AWARENESS"
    length = len(text or "")
    score = 40 if length < 500 else 60 if length < 5000 else 75
    asset_type = "Other"
    if mime_type.startswith("image/"):
        asset_type = "Infographic"
    elif mime_type.startswith("video/") or mime_type.startswith("audio/"):
        asset_type = "Video"
    return AssetAnalysis(
        rationale="Local fallback analysis based on keyword heuristics.",
        asset_type=asset_type,
        funnel_stage=stage,
        icp_targets=[],
        pain_clusters=[],
        outreach_tip=f"Share \"{title}\" with prospects researching this topic."[:MAX_OUTREACH_TIP],
        content_quality_score=score,
    )


def _build_system_prompt(brand_context: Dict[str, Any], product_lines: List[Dict[str, Any]]) -> str:
    playbook = str(brand_context.get("playbook") or "").strip()
    playbook_hint = (
        f"\nFollow this account playbook when choosing tags and tips:\n{playbook}\n" if playbook else ""
    )
    return f"""
    You are a B2B content strategist categorizing marketing assets for a sales team.

    Brand context (JSON):
    {json.dumps({k: v for k, v in brand_context.items() if k != "playbook"}, default=str)}

    Product lines (JSON, match at most one by id):
    {json.dumps(product_lines, default=str)}
    {playbook_hint}
    Return a strict JSON object with these keys:
    "rationale": why this categorization (max 200 chars),
    "assetType": one of {", ".join(ASSET_TYPES)},
    "funnelStage": one of {", ".join(FUNNEL_STAGES)},
    "icpTargets": up to 5 job titles or personas,
    "painClusters": up to 3 specific pain points of 2-5 words (avoid generic words like efficiency or productivity),
    "outreachTip": one sentence a rep can use in outreach (max 240 chars),
    "contentGaps": topics the asset should cover but does not,
    "atomicSnippets": up to 8 objects {{"type": one of {", ".join(SNIPPET_TYPES)}, "content": str, "context": str, "pageLocation": str|null, "confidenceScore": 1-100, "isVerbatim": bool}},
    "contentQualityScore": 1-100,
    "suggestedExpiryDate": "YYYY-MM-DD" or null,
    "applicableIndustries": up to 5 industries,
    "matchedProductLineId": a product line id from the list above or null
    """


def analyze_asset(
    text: Optional[str],
    mime_type: str,
    storage_url: str,
    title: str,
    brand_context: Dict[str, Any],
    product_lines: List[Dict[str, Any]],
    api_key: str,
    image_bytes: Optional[bytes] = None,
    model: str = DEFAULT_MODEL,
) -> AssetAnalysis:
    """
    Categorize an asset with the LLM.

    Args:
        text: Extracted plain text, or None when unavailable
        mime_type: Declared MIME type of the upload
        storage_url: Object URL of the upload (used for logging/context)
        title: Asset title
        brand_context: Account brand configuration
        product_lines: Account product lines as {"id", "name", "description"} dicts
        api_key: OpenAI API key
        image_bytes: Raw image data for image assets
    """
    mime = (mime_type or "").lower()
    is_image = mime.startswith("image/")
    has_text = bool(text and text.strip())

    if not has_text and not (is_image and image_bytes):
        if mime == "application/pdf":
            raise ValueError(
                "Cannot analyze PDF: no text could be extracted. "
                "The PDF may be image-based (scanned) or encrypted."
            )
        raise ValueError(f"Cannot analyze {mime_type or 'file'}: No text content found")

    product_line_ids = [str(p.get("id")) for p in product_lines if p.get("id")]
    client = get_openai_client(api_key)
    if client is None:
        logger.warning("Using MOCK asset analysis.")
        return _fallback_analysis(text, title, mime)

    user_content: List[Dict[str, Any]] = [
        {"type": "text", "text": f"Title: {title}\nFile type: {mime_type}\nSource: {storage_url}"}
    ]
    if has_text:
        body = text if len(text) <= MAX_TEXT_CHARS else text[:MAX_TEXT_CHARS] + "\n...(truncated)"
        user_content.append({"type": "text", "text": f"Content:\n{body}"})
    if is_image and image_bytes:
        encoded = base64.b64encode(image_bytes).decode("utf-8")
        user_content.append({
            "type": "image_url",
            "image_url": {"url": f"data:{mime};base64,{encoded}"},
        })

    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": _build_system_prompt(brand_context, product_lines)},
                {"role": "user", "content": user_content},
            ],
            response_format={"type": "json_object"},
            temperature=0.4,
            max_tokens=3000,
        )
        content = response.choices[0].message.content
        payload = json.loads(content or "{}")
    except Exception as e:
        logger.error(f"Error in LLM analysis: {e}")
        raise

    return normalize_analysis(payload, product_line_ids)
