from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor
from api.responses import comment_to_response
from database import get_db
from schemas.comment import CommentCreate
from services import application_store as store
from services.access_control import ActorContext

router = APIRouter(prefix="/applications/{application_id}/comments", tags=["comments"])


@router.get("")
async def list_comments(
    application_id: str,
    section: Optional[int] = Query(None, ge=1),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    comments = await store.list_comments(db, application_id, actor, section_number=section)
    return [comment_to_response(c) for c in comments]


@router.post("", status_code=201)
async def post_comment(
    application_id: str,
    body: CommentCreate,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    comment = await store.post_comment(
        db,
        application_id,
        actor,
        body.content,
        section_number=body.section_number,
        is_internal=body.is_internal,
        addressed_to=body.addressed_to,
    )
    return comment_to_response(comment)
