"""Brand context and product line models used to steer AI analysis."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


class BrandContext(Base):
    """Per-account brand configuration passed to the categorization prompt."""

    __tablename__ = "brand_contexts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    value_proposition = Column(Text, nullable=True)
    brand_voice_json = Column(JSON, nullable=True)
    competitors_json = Column(JSON, nullable=True)
    target_industries_json = Column(JSON, nullable=True)
    pain_clusters_json = Column(JSON, nullable=True)
    icp_personas_json = Column(JSON, nullable=True)
    use_cases_json = Column(JSON, nullable=True)
    playbook = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProductLine(Base):
    """Product line an asset can be matched to."""

    __tablename__ = "product_lines"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    value_proposition = Column(Text, nullable=True)
    specific_icp_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
