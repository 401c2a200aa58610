"""Load account brand configuration for AI analysis."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.brand_context import BrandContext, ProductLine


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def serialize_brand_context(context: BrandContext | None) -> Dict[str, Any]:
    if context is None:
        return {
            "value_proposition": None,
            "brand_voice": [],
            "competitors": [],
            "target_industries": [],
            "pain_clusters": [],
            "icp_personas": [],
            "use_cases": [],
            "playbook": None,
        }
    return {
        "value_proposition": context.value_proposition,
        "brand_voice": _list(context.brand_voice_json),
        "competitors": _list(context.competitors_json),
        "target_industries": _list(context.target_industries_json),
        "pain_clusters": _list(context.pain_clusters_json),
        "icp_personas": _list(context.icp_personas_json),
        "use_cases": _list(context.use_cases_json),
        "playbook": context.playbook,
    }


def serialize_product_line(line: ProductLine) -> Dict[str, Any]:
    return {
        "id": line.id,
        "name": line.name,
        "description": line.description,
        "value_proposition": line.value_proposition,
        "specific_icp": _list(line.specific_icp_json),
    }


async def load_brand_context(db: AsyncSession, account_id: str) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Return (brand context dict, product line dicts) for an account."""
    context_result = await db.execute(select(BrandContext).where(BrandContext.account_id == account_id))
    context = context_result.scalar_one_or_none()
    lines_result = await db.execute(
        select(ProductLine).where(ProductLine.account_id == account_id).order_by(ProductLine.name.asc())
    )
    lines = lines_result.scalars().all()
    return serialize_brand_context(context), [serialize_product_line(line) for line in lines]
