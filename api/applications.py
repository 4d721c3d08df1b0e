from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor, get_expected_version
from api.responses import application_to_response
from database import get_db
from schemas.application import AdvisorAssignment, ApplicationCreate, ApplicationUpdate, QueryResponse
from schemas.enums import ApplicationStatus
from services import application_store as store
from services import workflow
from services.access_control import ActorContext

router = APIRouter(prefix="/applications", tags=["applications"])


def _etag(response: Response, version: int) -> None:
    response.headers["ETag"] = f'"{version}"'


@router.get("")
async def list_applications(
    status: Optional[ApplicationStatus] = None,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    apps = await store.list_applications(db, actor, status)
    return [application_to_response(a) for a in apps]


@router.post("", status_code=201)
async def create_application(
    body: ApplicationCreate,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    app = await store.create_application(db, actor, target_amount=body.target_amount, priority=body.priority)
    sections = await store.list_sections(db, app.id)
    _etag(response, app.version)
    return application_to_response(app, sections)


@router.get("/{application_id}")
async def get_application(
    application_id: str,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    app = await store.get_application_for(db, application_id, actor)
    sections = await store.list_sections(db, app.id)
    _etag(response, app.version)
    return application_to_response(app, sections)


@router.patch("/{application_id}")
async def update_application(
    application_id: str,
    body: ApplicationUpdate,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    app = await store.update_application(db, application_id, actor, body.changes(), expected_version)
    _etag(response, app.version)
    return application_to_response(app)


@router.post("/{application_id}/submit")
async def submit_application(
    application_id: str,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    app = await workflow.submit(db, application_id, actor, expected_version)
    _etag(response, app.version)
    return application_to_response(app)


@router.post("/{application_id}/respond")
async def respond_to_query(
    application_id: str,
    body: QueryResponse,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    app = await workflow.respond_to_query(db, application_id, actor, body.comment, expected_version)
    _etag(response, app.version)
    return application_to_response(app)


@router.post("/{application_id}/recalculate-completion")
async def recalculate_completion(
    application_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    app = await store.get_application_for(db, application_id, actor)
    completion = await store.recompute_completion(db, app.id)
    return {"id": app.id, "completionPercentage": completion}


@router.post("/{application_id}/assign-ib")
async def assign_advisor(
    application_id: str,
    body: AdvisorAssignment,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    app = await store.assign_advisor(db, application_id, actor, body.ib_advisor_id, expected_version)
    _etag(response, app.version)
    return application_to_response(app)


@router.delete("/{application_id}/assign-ib")
async def unassign_advisor(
    application_id: str,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    app = await store.unassign_advisor(db, application_id, actor, expected_version)
    _etag(response, app.version)
    return application_to_response(app)
