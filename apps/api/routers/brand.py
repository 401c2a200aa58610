"""Brand context and product line router."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.asset import AssetProductLine
from models.brand_context import BrandContext, ProductLine
from routers.auth_scope import AuthContext, get_account_context, require_account_manager
from services.brand import load_brand_context, serialize_brand_context, serialize_product_line

router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BrandContextRequest(CamelModel):
    value_proposition: Optional[str] = Field(default=None, max_length=2000)
    brand_voice: List[str] = Field(default_factory=list, max_length=20)
    competitors: List[str] = Field(default_factory=list, max_length=50)
    target_industries: List[str] = Field(default_factory=list, max_length=50)
    pain_clusters: List[str] = Field(default_factory=list, max_length=50)
    icp_personas: List[str] = Field(default_factory=list, max_length=50)
    use_cases: List[str] = Field(default_factory=list, max_length=50)
    playbook: Optional[str] = Field(default=None, max_length=20000)


class ProductLineRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    value_proposition: Optional[str] = Field(default=None, max_length=2000)
    specific_icp: List[str] = Field(default_factory=list, max_length=20)


@router.get("/brand-context")
async def get_brand_context(
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    brand_context, product_lines = await load_brand_context(db, auth.account_id)
    return {"brandContext": brand_context, "productLines": product_lines}


@router.put("/brand-context")
async def update_brand_context(
    request: BrandContextRequest,
    auth: AuthContext = Depends(require_account_manager),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace the account's brand context."""
    result = await db.execute(select(BrandContext).where(BrandContext.account_id == auth.account_id))
    context = result.scalar_one_or_none()
    if context is None:
        context = BrandContext(account_id=auth.account_id)
        db.add(context)
    context.value_proposition = request.value_proposition
    context.brand_voice_json = request.brand_voice
    context.competitors_json = request.competitors
    context.target_industries_json = request.target_industries
    context.pain_clusters_json = request.pain_clusters
    context.icp_personas_json = request.icp_personas
    context.use_cases_json = request.use_cases
    context.playbook = request.playbook
    await db.commit()
    await db.refresh(context)
    return {"brandContext": serialize_brand_context(context)}


@router.get("/product-lines")
async def list_product_lines(
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    _, product_lines = await load_brand_context(db, auth.account_id)
    return {"productLines": product_lines}


@router.post("/product-lines")
async def create_product_line(
    request: ProductLineRequest,
    auth: AuthContext = Depends(require_account_manager),
    db: AsyncSession = Depends(get_db),
):
    line = ProductLine(
        account_id=auth.account_id,
        name=request.name.strip(),
        description=request.description,
        value_proposition=request.value_proposition,
        specific_icp_json=request.specific_icp,
    )
    db.add(line)
    await db.commit()
    await db.refresh(line)
    return {"productLine": serialize_product_line(line)}


@router.delete("/product-lines/{product_line_id}")
async def delete_product_line(
    product_line_id: str,
    auth: AuthContext = Depends(require_account_manager),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ProductLine).where(
            ProductLine.id == product_line_id,
            ProductLine.account_id == auth.account_id,
        )
    )
    line = result.scalar_one_or_none()
    if not line:
        raise HTTPException(status_code=404, detail="Product line not found")
    await db.execute(delete(AssetProductLine).where(AssetProductLine.product_line_id == line.id))
    await db.delete(line)
    await db.commit()
    return {"success": True}
