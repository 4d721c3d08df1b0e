from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from schemas.enums import ReviewAction, RiskRating


class ReviewRequest(BaseModel):
    action: ReviewAction
    comment: Optional[str] = None
    risk_rating: Optional[RiskRating] = Field(None, alias="riskRating")
    compliance_score: Optional[int] = Field(None, alias="complianceScore", ge=0, le=100)

    model_config = {"populate_by_name": True}
