from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor, get_expected_version
from api.responses import application_to_response, review_to_response
from database import get_db
from schemas.review import ReviewRequest
from services import application_store as store
from services.access_control import ActorContext
from services.review_pipeline import perform_review

router = APIRouter(prefix="/applications/{application_id}", tags=["reviews"])


@router.post("/review")
async def review_application(
    application_id: str,
    body: ReviewRequest,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    outcome = await perform_review(
        db,
        application_id,
        actor,
        body.action,
        comment=body.comment,
        risk_rating=body.risk_rating,
        compliance_score=body.compliance_score,
        expected_version=expected_version,
    )
    response.headers["ETag"] = f'"{outcome.application.version}"'
    return {
        "application": application_to_response(outcome.application),
        "review": review_to_response(outcome.decision),
    }


@router.get("/reviews")
async def list_reviews(
    application_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return [review_to_response(r) for r in await store.list_reviews(db, application_id, actor)]
