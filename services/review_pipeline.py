"""
Regulator actions on a submitted application. Each action writes one
ReviewDecision row in the same transaction as its status transition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import AccessDeniedError, ValidationError
from models import Application, ReviewDecision
from schemas.enums import ApplicationStatus, ReviewAction, RiskRating, Role
from services import application_store as store
from services.access_control import ActorContext, Capability, require_reviewer
from services.workflow import TransitionGuard, check_transition, transition

logger = logging.getLogger(__name__)

S = ApplicationStatus

REVIEW_WINDOWS: dict[ReviewAction, frozenset[ApplicationStatus]] = {
    ReviewAction.START_REVIEW: frozenset({S.SUBMITTED}),
    ReviewAction.ISSUE_QUERY: frozenset({S.SUBMITTED, S.UNDER_REVIEW}),
    ReviewAction.APPROVE: frozenset({S.SUBMITTED, S.UNDER_REVIEW, S.QUERY_ISSUED}),
    ReviewAction.REJECT: frozenset({S.SUBMITTED, S.UNDER_REVIEW, S.QUERY_ISSUED}),
}

REVIEW_TARGETS: dict[ReviewAction, ApplicationStatus] = {
    ReviewAction.START_REVIEW: S.UNDER_REVIEW,
    ReviewAction.ISSUE_QUERY: S.QUERY_ISSUED,
    ReviewAction.APPROVE: S.APPROVED,
    ReviewAction.REJECT: S.REJECTED,
}

REVIEW_CAPABILITIES: dict[ReviewAction, Capability] = {
    ReviewAction.START_REVIEW: Capability.START_REVIEW,
    ReviewAction.ISSUE_QUERY: Capability.QUERY,
    ReviewAction.APPROVE: Capability.APPROVE,
    ReviewAction.REJECT: Capability.REJECT,
}

COMMENT_REQUIRED = frozenset({ReviewAction.ISSUE_QUERY, ReviewAction.APPROVE, ReviewAction.REJECT})

REVIEWER_ROLES = frozenset({Role.CMA_REGULATOR, Role.CMA_ADMIN})


@dataclass
class ReviewOutcome:
    application: Application
    decision: ReviewDecision


async def perform_review(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    action: ReviewAction,
    comment: Optional[str] = None,
    risk_rating: Optional[RiskRating] = None,
    compliance_score: Optional[int] = None,
    expected_version: Optional[int] = None,
) -> ReviewOutcome:
    application = await store.get_application(session, application_id)
    if actor.role not in REVIEWER_ROLES:
        raise AccessDeniedError("Only CMA regulators can review applications")
    require_reviewer(actor, application, REVIEW_CAPABILITIES[action])

    text = (comment or "").strip()
    if action in COMMENT_REQUIRED and not text:
        raise ValidationError(f"A comment is required to {action.value.replace('_', ' ').lower()}")
    if compliance_score is not None and not 0 <= compliance_score <= 100:
        raise ValidationError("complianceScore must be between 0 and 100")

    from_status = ApplicationStatus(application.status)
    target = REVIEW_TARGETS[action]
    window = REVIEW_WINDOWS[action]
    check_transition(from_status, target, window)

    extra = {}
    if (
        action is ReviewAction.START_REVIEW
        and application.assigned_regulator_id is None
        and actor.role is Role.CMA_REGULATOR
    ):
        extra["assigned_regulator_id"] = actor.user_id

    updated = await transition(
        session,
        application,
        target,
        TransitionGuard(actor=actor, expected_version=expected_version, allowed_from=window, extra_values=extra),
    )
    decision = await store.append_review_decision(
        session,
        application_id=updated.id,
        action=action.value,
        reviewer_id=actor.user_id,
        from_status=from_status.value,
        to_status=target.value,
        comment=text or None,
        risk_rating=risk_rating.value if risk_rating else None,
        compliance_score=compliance_score,
    )
    if text:
        await store.append_comment(
            session, updated.id, actor, text, is_internal=action is ReviewAction.START_REVIEW
        )
    logger.info("Review %s recorded on %s by %s", action.value, updated.id, actor.user_id)
    return ReviewOutcome(application=updated, decision=decision)


async def start_review(session: AsyncSession, application_id: str, actor: ActorContext, **kwargs) -> ReviewOutcome:
    return await perform_review(session, application_id, actor, ReviewAction.START_REVIEW, **kwargs)


async def issue_query(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    comment: str,
    risk_rating: Optional[RiskRating] = None,
    compliance_score: Optional[int] = None,
    **kwargs,
) -> ReviewOutcome:
    return await perform_review(
        session, application_id, actor, ReviewAction.ISSUE_QUERY,
        comment=comment, risk_rating=risk_rating, compliance_score=compliance_score, **kwargs,
    )


async def approve(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    comment: str,
    risk_rating: Optional[RiskRating] = None,
    compliance_score: Optional[int] = None,
    **kwargs,
) -> ReviewOutcome:
    return await perform_review(
        session, application_id, actor, ReviewAction.APPROVE,
        comment=comment, risk_rating=risk_rating, compliance_score=compliance_score, **kwargs,
    )


async def reject(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    comment: str,
    risk_rating: Optional[RiskRating] = None,
    compliance_score: Optional[int] = None,
    **kwargs,
) -> ReviewOutcome:
    return await perform_review(
        session, application_id, actor, ReviewAction.REJECT,
        comment=comment, risk_rating=risk_rating, compliance_score=compliance_score, **kwargs,
    )
