"""
Persistence for applications, their ten sections, and the append-only comment
and review logs. This is the only module that issues SQL.

Row writes use compare-and-set on the ``version`` column: the UPDATE matches
only the version the writer last observed, and a miss raises
ConcurrencyConflictError carrying the current version.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import AccessDeniedError, ConcurrencyConflictError, NotFoundError, ValidationError
from models import Application, ApplicationNumberCounter, Comment, ReviewDecision, Section
from schemas.enums import (
    SECTION_COUNT,
    SECTION_TITLES,
    ApplicationPhase,
    ApplicationStatus,
    Priority,
    Role,
    SectionStatus,
)
from services.access_control import (
    REGULATOR_POOL_STATUSES,
    ActorContext,
    Capability,
    can_access_application,
    can_interact,
    can_view_internal_comments,
    has_capability,
    is_issuer_party,
    require_application_access,
    require_capability,
)
from utils.field_paths import round_half_up

logger = logging.getLogger(__name__)

MAX_TARGET_AMOUNT = 1_000_000_000_000
TERMINAL_STATUSES = frozenset({ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value})


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Row primitives
# ---------------------------------------------------------------------------


async def compare_and_set(
    session: AsyncSession,
    model: Any,
    row_id: str,
    expected_version: int,
    values: dict[str, Any],
) -> int:
    """Apply ``values`` to one row iff its version still equals ``expected_version``. Returns the new version."""
    stmt = (
        update(model)
        .where(model.id == row_id, model.version == expected_version)
        .values(**values, version=expected_version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 1:
        return expected_version + 1
    current = await session.scalar(select(model.version).where(model.id == row_id))
    if current is None:
        raise NotFoundError(f"{model.__name__} not found")
    raise ConcurrencyConflictError(
        f"{model.__name__} {row_id} was modified (expected version {expected_version}, found {current})",
        current_version=current,
    )


async def get_application(session: AsyncSession, application_id: str, fresh: bool = False) -> Application:
    stmt = select(Application).where(Application.id == application_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    app = (await session.execute(stmt)).scalar_one_or_none()
    if app is None:
        raise NotFoundError("Application not found")
    return app


async def get_application_for(session: AsyncSession, application_id: str, actor: ActorContext) -> Application:
    app = await get_application(session, application_id)
    require_application_access(actor, app)
    return app


async def get_section(
    session: AsyncSession,
    application_id: str,
    section_number: int,
    fresh: bool = False,
) -> Section:
    if not 1 <= section_number <= SECTION_COUNT:
        raise NotFoundError("Section not found")
    stmt = select(Section).where(
        Section.application_id == application_id,
        Section.section_number == section_number,
    )
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    section = (await session.execute(stmt)).scalar_one_or_none()
    if section is None:
        raise NotFoundError("Section not found")
    return section


async def get_section_by_id(session: AsyncSession, section_id: str, fresh: bool = False) -> Section:
    stmt = select(Section).where(Section.id == section_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    section = (await session.execute(stmt)).scalar_one_or_none()
    if section is None:
        raise NotFoundError("Section not found")
    return section


async def list_sections(session: AsyncSession, application_id: str) -> list[Section]:
    result = await session.execute(
        select(Section)
        .where(Section.application_id == application_id)
        .order_by(Section.section_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def aggregate_completion(percentages: list[int]) -> int:
    """Application completion: the mean of the ten section percentages, rounded half up."""
    values = list(percentages)
    if len(values) != SECTION_COUNT:
        raise ValidationError(f"Expected {SECTION_COUNT} sections, found {len(values)}")
    return round_half_up(sum(values) / SECTION_COUNT)


async def recompute_completion(session: AsyncSession, application_id: str) -> int:
    """
    Recompute the aggregate from the ten section rows and store it.
    Does not bump the application version.
    """
    result = await session.execute(
        select(Section.completion_percentage).where(Section.application_id == application_id)
    )
    completion = aggregate_completion(result.scalars().all())
    await session.execute(
        update(Application)
        .where(Application.id == application_id)
        .values(completion_percentage=completion)
        .execution_options(synchronize_session=False)
    )
    return completion


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


def _validate_target_amount(amount: Optional[int]) -> None:
    if amount is not None and not 0 < amount <= MAX_TARGET_AMOUNT:
        raise ValidationError("targetAmount must be greater than 0 and at most 1 trillion")


async def create_application(
    session: AsyncSession,
    actor: ActorContext,
    target_amount: Optional[int] = None,
    priority: Priority = Priority.MEDIUM,
) -> Application:
    """Create a DRAFT application together with its ten empty sections in one transaction."""
    require_capability(actor, Capability.SUBMIT_INTENT)
    if not actor.company_id:
        raise ValidationError("No company associated with user")
    _validate_target_amount(target_amount)

    now = utcnow()
    app = Application(
        id=new_id("app"),
        company_id=actor.company_id,
        status=ApplicationStatus.DRAFT.value,
        current_phase=ApplicationPhase.DATA_COLLECTION.value,
        completion_percentage=0,
        target_amount=target_amount,
        priority=priority.value,
        created_by=actor.user_id,
        version=1,
        created_at=now,
        updated_at=now,
    )
    sections = [
        Section(
            id=new_id("sec"),
            application_id=app.id,
            section_number=number,
            title=SECTION_TITLES[number],
            status=SectionStatus.NOT_STARTED.value,
            data={},
            observed_fields=[],
            completion_percentage=0,
            validation_errors=[],
            version=1,
            created_at=now,
            updated_at=now,
        )
        for number in range(1, SECTION_COUNT + 1)
    ]
    session.add(app)
    session.add_all(sections)
    await session.flush()
    logger.info("Application %s created for company %s by %s", app.id, app.company_id, actor.user_id)
    return app


async def list_applications(
    session: AsyncSession,
    actor: ActorContext,
    status: Optional[ApplicationStatus] = None,
) -> list[Application]:
    stmt = select(Application)
    if actor.role is Role.ISSUER:
        if not actor.company_id:
            return []
        stmt = stmt.where(Application.company_id == actor.company_id)
    elif actor.role is Role.IB_ADVISOR:
        stmt = stmt.where(Application.assigned_advisor_id == actor.user_id)
    elif actor.role is Role.CMA_REGULATOR:
        stmt = stmt.where(
            or_(
                Application.assigned_regulator_id == actor.user_id,
                Application.status.in_(REGULATOR_POOL_STATUSES),
            )
        )
    if status is not None:
        stmt = stmt.where(Application.status == status.value)
    result = await session.execute(stmt.order_by(Application.updated_at.desc()))
    return [
        a for a in result.scalars().all()
        if can_access_application(actor.role, actor.user_id, actor.company_id, a)
    ]


async def update_application(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    changes: dict[str, Any],
    expected_version: Optional[int] = None,
) -> Application:
    """Patch top-level fields: target_amount, priority, assigned_regulator_id."""
    app = await get_application_for(session, application_id, actor)
    if app.status in TERMINAL_STATUSES:
        raise ValidationError(f"Application is closed ({app.status})")

    values: dict[str, Any] = {}
    if "target_amount" in changes:
        if not is_issuer_party(actor, app):
            raise AccessDeniedError("Only the issuer side can change the target amount")
        if app.status not in (ApplicationStatus.DRAFT.value, ApplicationStatus.QUERY_ISSUED.value):
            raise ValidationError(f"Target amount is locked while the application is {app.status}")
        _validate_target_amount(changes["target_amount"])
        values["target_amount"] = changes["target_amount"]
    if "priority" in changes:
        if not (is_issuer_party(actor, app) or actor.role is Role.CMA_ADMIN):
            raise AccessDeniedError("Only the issuer side or a CMA administrator can change priority")
        if changes["priority"] is None:
            raise ValidationError("priority cannot be cleared")
        values["priority"] = Priority(changes["priority"]).value
    if "assigned_regulator_id" in changes:
        if actor.role is not Role.CMA_ADMIN:
            raise AccessDeniedError("Only a CMA administrator can assign a regulator")
        values["assigned_regulator_id"] = changes["assigned_regulator_id"]
    if not values:
        raise ValidationError("No updatable fields supplied")

    await compare_and_set(session, Application, app.id, _version(app, expected_version), values)
    return await get_application(session, app.id, fresh=True)


async def assign_advisor(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    advisor_id: str,
    expected_version: Optional[int] = None,
) -> Application:
    app = await get_application(session, application_id)
    require_capability(actor, Capability.ASSIGN)
    if actor.role is Role.ISSUER:
        if app.company_id != actor.company_id:
            raise AccessDeniedError("Only the owning issuer can assign an IB advisor")
    elif actor.role is not Role.CMA_ADMIN:
        raise AccessDeniedError("Only the owning issuer or a CMA administrator can assign an IB advisor")
    if not advisor_id or not advisor_id.strip():
        raise ValidationError("IB Advisor ID is required")
    if app.status in TERMINAL_STATUSES:
        raise ValidationError(f"Application is closed ({app.status})")

    await compare_and_set(
        session, Application, app.id, _version(app, expected_version),
        {"assigned_advisor_id": advisor_id.strip()},
    )
    logger.info("Application %s: IB advisor %s assigned by %s", app.id, advisor_id, actor.user_id)
    return await get_application(session, app.id, fresh=True)


async def unassign_advisor(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    expected_version: Optional[int] = None,
) -> Application:
    app = await get_application(session, application_id)
    require_capability(actor, Capability.ASSIGN)
    allowed = (
        (actor.role is Role.ISSUER and app.company_id == actor.company_id)
        or actor.role is Role.CMA_ADMIN
        or (actor.role is Role.IB_ADVISOR and app.assigned_advisor_id == actor.user_id)
    )
    if not allowed:
        raise AccessDeniedError("Not allowed to remove the IB advisor from this application")
    if app.assigned_advisor_id is None:
        raise ValidationError("No IB advisor is assigned")

    await compare_and_set(
        session, Application, app.id, _version(app, expected_version),
        {"assigned_advisor_id": None},
    )
    logger.info("Application %s: IB advisor removed by %s", app.id, actor.user_id)
    return await get_application(session, app.id, fresh=True)


async def next_application_number(session: AsyncSession, year: int) -> str:
    """
    Draw the next ``IPO-YYYY-NNNN`` from the per-year counter row. The
    increment write-locks the row until the caller's transaction ends, so
    concurrent submits are serialized on it and never share a number.
    """
    bumped = await session.execute(
        update(ApplicationNumberCounter)
        .where(ApplicationNumberCounter.year == year)
        .values(last_number=ApplicationNumberCounter.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount == 0:
        session.add(ApplicationNumberCounter(year=year, last_number=1))
        try:
            await session.flush()
        except IntegrityError as exc:
            # Another transaction opened the year first
            raise ConcurrencyConflictError(f"Application number sequence for {year} changed; retry") from exc
    number = await session.scalar(
        select(ApplicationNumberCounter.last_number).where(ApplicationNumberCounter.year == year)
    )
    return f"IPO-{year}-{number:04d}"


def _version(app: Application, expected_version: Optional[int]) -> int:
    return app.version if expected_version is None else expected_version


# ---------------------------------------------------------------------------
# Append-only logs
# ---------------------------------------------------------------------------


async def append_comment(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    content: str,
    section_id: Optional[str] = None,
    is_internal: bool = False,
    addressed_to: Optional[Role] = None,
) -> Comment:
    comment = Comment(
        id=new_id("cmt"),
        application_id=application_id,
        section_id=section_id,
        author_id=actor.user_id,
        author_role=actor.role.value,
        addressed_to=addressed_to.value if addressed_to else None,
        content=content,
        is_internal=is_internal,
        created_at=utcnow(),
    )
    session.add(comment)
    await session.flush()
    return comment


async def post_comment(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    content: str,
    section_number: Optional[int] = None,
    is_internal: bool = False,
    addressed_to: Optional[Role] = None,
) -> Comment:
    app = await get_application_for(session, application_id, actor)
    require_capability(actor, Capability.COMMENT)
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content is required")
    if is_internal and not has_capability(actor.role, Capability.POST_INTERNAL_COMMENT):
        raise AccessDeniedError("Only advisors and CMA staff can post internal comments")
    if addressed_to is not None and not can_interact(actor.role, addressed_to):
        raise AccessDeniedError(f"{actor.role.value} cannot address {addressed_to.value} directly")
    section_id = None
    if section_number is not None:
        section_id = (await get_section(session, app.id, section_number)).id
    return await append_comment(session, app.id, actor, text, section_id, is_internal, addressed_to)


async def list_comments(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    section_number: Optional[int] = None,
) -> list[Comment]:
    app = await get_application_for(session, application_id, actor)
    stmt = select(Comment).where(Comment.application_id == app.id)
    if section_number is not None:
        section = await get_section(session, app.id, section_number)
        stmt = stmt.where(Comment.section_id == section.id)
    if not can_view_internal_comments(actor.role):
        stmt = stmt.where(Comment.is_internal.is_(False))
    result = await session.execute(stmt.order_by(Comment.created_at, Comment.id))
    return list(result.scalars().all())


async def append_review_decision(
    session: AsyncSession,
    application_id: str,
    action: str,
    reviewer_id: str,
    from_status: str,
    to_status: str,
    comment: Optional[str],
    risk_rating: Optional[str],
    compliance_score: Optional[int],
) -> ReviewDecision:
    decision = ReviewDecision(
        id=new_id("rev"),
        application_id=application_id,
        action=action,
        reviewer_id=reviewer_id,
        from_status=from_status,
        to_status=to_status,
        comment=comment,
        risk_rating=risk_rating,
        compliance_score=compliance_score,
        created_at=utcnow(),
    )
    session.add(decision)
    await session.flush()
    return decision


async def list_reviews(session: AsyncSession, application_id: str, actor: ActorContext) -> list[ReviewDecision]:
    app = await get_application_for(session, application_id, actor)
    result = await session.execute(
        select(ReviewDecision)
        .where(ReviewDecision.application_id == app.id)
        .order_by(ReviewDecision.created_at, ReviewDecision.id)
    )
    return list(result.scalars().all())
