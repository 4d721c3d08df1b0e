from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor, get_autosave, get_expected_version
from api.responses import section_summary, section_to_response
from database import get_db
from models import Section
from schemas.section import SectionFieldUpdate
from services import application_store as store
from services import section_tracker
from services.access_control import ActorContext, require_section_write
from services.autosave import AutoSaveCoordinator
from utils.field_paths import normalize_value, split_path

router = APIRouter(prefix="/applications/{application_id}/sections", tags=["sections"])


async def _load_section(
    db: AsyncSession,
    application_id: str,
    section_number: int,
    actor: ActorContext,
    fresh: bool = False,
) -> Section:
    app = await store.get_application_for(db, application_id, actor)
    return await store.get_section(db, app.id, section_number, fresh=fresh)


def _with_pending(section: Section, autosave: AutoSaveCoordinator) -> dict:
    autosave.load(section.id, section.data)
    return section_to_response(
        section,
        data=autosave.view(section.id),
        pending_fields=autosave.pending_fields(section.id),
    )


@router.get("")
async def list_sections(
    application_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    app = await store.get_application_for(db, application_id, actor)
    return [section_summary(s) for s in await store.list_sections(db, app.id)]


@router.get("/{section_number}")
async def get_section(
    application_id: str,
    section_number: int,
    response: Response,
    actor: ActorContext = Depends(get_actor),
    autosave: AutoSaveCoordinator = Depends(get_autosave),
    db: AsyncSession = Depends(get_db),
):
    section = await _load_section(db, application_id, section_number, actor)
    response.headers["ETag"] = f'"{section.version}"'
    return _with_pending(section, autosave)


@router.patch("/{section_number}")
async def update_section_field(
    application_id: str,
    section_number: int,
    body: SectionFieldUpdate,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    autosave: AutoSaveCoordinator = Depends(get_autosave),
    db: AsyncSession = Depends(get_db),
):
    """
    Merge one field into the section. ``immediate`` writes now and answers 200
    with the stored section; a typing event is staged, debounced and answered
    202 with the optimistic view.
    """
    app = await store.get_application_for(db, application_id, actor)
    section = await store.get_section(db, app.id, section_number)
    require_section_write(actor, app)
    section_tracker.require_editable(app)
    split_path(body.field_path)
    value = normalize_value(body.value)
    version = body.expected_version if body.expected_version is not None else expected_version

    autosave.load(section.id, section.data)
    if not body.immediate:
        view = autosave.edit(section.id, body.field_path, value, actor, version)
        return JSONResponse(
            status_code=202,
            content=section_to_response(section, data=view, pending_fields=autosave.pending_fields(section.id)),
        )

    await autosave.save_now(section.id, body.field_path, value, actor, version)
    section = await store.get_section(db, app.id, section_number, fresh=True)
    return JSONResponse(
        content=_with_pending(section, autosave),
        headers={"ETag": f'"{section.version}"'},
    )


@router.post("/{section_number}/flush")
async def flush_section(
    application_id: str,
    section_number: int,
    field_path: Optional[str] = Query(None, alias="fieldPath"),
    actor: ActorContext = Depends(get_actor),
    autosave: AutoSaveCoordinator = Depends(get_autosave),
    db: AsyncSession = Depends(get_db),
):
    section = await _load_section(db, application_id, section_number, actor)
    signals = await autosave.flush(section.id, field_path)
    section = await store.get_section_by_id(db, section.id, fresh=True)
    return {
        "signals": [s.to_dict() for s in signals],
        "section": _with_pending(section, autosave),
    }


@router.get("/{section_number}/autosave")
async def autosave_signals(
    application_id: str,
    section_number: int,
    actor: ActorContext = Depends(get_actor),
    autosave: AutoSaveCoordinator = Depends(get_autosave),
    db: AsyncSession = Depends(get_db),
):
    section = await _load_section(db, application_id, section_number, actor)
    return [s.to_dict() for s in autosave.signals_for(section.id)]


@router.post("/{section_number}/complete")
async def complete_section(
    application_id: str,
    section_number: int,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    autosave: AutoSaveCoordinator = Depends(get_autosave),
    db: AsyncSession = Depends(get_db),
):
    section = await _load_section(db, application_id, section_number, actor)
    # Queued typing edits land before the completion gate is checked.
    if autosave.pending_fields(section.id):
        await autosave.flush(section.id)
        section = await store.get_section_by_id(db, section.id, fresh=True)
    section = await section_tracker.complete_section(db, section.id, actor, expected_version)
    return section_to_response(section)


@router.post("/{section_number}/review")
async def review_section(
    application_id: str,
    section_number: int,
    actor: ActorContext = Depends(get_actor),
    expected_version: Optional[int] = Depends(get_expected_version),
    db: AsyncSession = Depends(get_db),
):
    section = await _load_section(db, application_id, section_number, actor)
    section = await section_tracker.mark_reviewed(db, section.id, actor, expected_version)
    return section_to_response(section)
