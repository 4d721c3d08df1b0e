"""
Application lifecycle state machine.

    DRAFT -> SUBMITTED -> UNDER_REVIEW <-> QUERY_ISSUED
                  |             |               |
                  +-------------+---------------+--> APPROVED | REJECTED

APPROVED and REJECTED are terminal. Every transition goes through
``transition``, which checks the table before writing and bumps the row version.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import StateTransitionError, ValidationError
from models import Application
from schemas.enums import ApplicationPhase, ApplicationStatus
from services import application_store as store
from services.access_control import ActorContext, Capability, require_issuer_party

logger = logging.getLogger(__name__)

S = ApplicationStatus

TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.QUERY_ISSUED, S.APPROVED, S.REJECTED}),
    S.UNDER_REVIEW: frozenset({S.QUERY_ISSUED, S.APPROVED, S.REJECTED}),
    S.QUERY_ISSUED: frozenset({S.UNDER_REVIEW, S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

PHASE_FOR_STATUS: dict[ApplicationStatus, ApplicationPhase] = {
    S.DRAFT: ApplicationPhase.DATA_COLLECTION,
    S.SUBMITTED: ApplicationPhase.CMA_REVIEW,
    S.UNDER_REVIEW: ApplicationPhase.CMA_REVIEW,
    S.QUERY_ISSUED: ApplicationPhase.QUERY_RESPONSE,
    S.APPROVED: ApplicationPhase.DECISION,
    S.REJECTED: ApplicationPhase.DECISION,
}


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(
    current: ApplicationStatus,
    target: ApplicationStatus,
    allowed_from: Optional[frozenset[ApplicationStatus]] = None,
) -> None:
    if allowed_from is not None and current not in allowed_from:
        raise StateTransitionError(
            f"Cannot move to {target.value} while application is {current.value}",
            current_status=current.value,
            target_status=target.value,
        )
    if not can_transition(current, target):
        raise StateTransitionError(
            f"Illegal transition {current.value} -> {target.value}",
            current_status=current.value,
            target_status=target.value,
        )


@dataclass
class TransitionGuard:
    """Caller context for a transition: who, which version they saw, and the action's window."""

    actor: ActorContext
    expected_version: Optional[int] = None
    allowed_from: Optional[frozenset[ApplicationStatus]] = None
    extra_values: dict[str, Any] = field(default_factory=dict)


async def transition(
    session: AsyncSession,
    application: Application,
    target: ApplicationStatus,
    guard: TransitionGuard,
) -> Application:
    current = ApplicationStatus(application.status)
    check_transition(current, target, guard.allowed_from)
    version = application.version if guard.expected_version is None else guard.expected_version
    values = {
        "status": target.value,
        "current_phase": PHASE_FOR_STATUS[target].value,
        **guard.extra_values,
    }
    await store.compare_and_set(session, Application, application.id, version, values)
    logger.info(
        "Application %s: %s -> %s by %s (%s)",
        application.id, current.value, target.value, guard.actor.user_id, guard.actor.role.value,
    )
    return await store.get_application(session, application.id, fresh=True)


async def submit(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    expected_version: Optional[int] = None,
    threshold: Optional[int] = None,
) -> Application:
    """DRAFT -> SUBMITTED, for the owning issuer or assigned advisor, above the completion threshold."""
    application = await store.get_application(session, application_id)
    require_issuer_party(actor, application, Capability.SUBMIT)
    check_transition(ApplicationStatus(application.status), S.SUBMITTED, frozenset({S.DRAFT}))

    required = settings.submission_completion_threshold if threshold is None else threshold
    completion = await store.recompute_completion(session, application.id)
    if completion < required:
        raise ValidationError(
            f"Application is {completion}% complete; {required}% is required to submit"
        )

    now = store.utcnow()
    return await transition(
        session,
        application,
        S.SUBMITTED,
        TransitionGuard(
            actor=actor,
            expected_version=expected_version,
            extra_values={
                "submitted_at": now,
                "application_number": await store.next_application_number(session, now.year),
            },
        ),
    )


async def respond_to_query(
    session: AsyncSession,
    application_id: str,
    actor: ActorContext,
    comment: str,
    expected_version: Optional[int] = None,
) -> Application:
    """QUERY_ISSUED -> UNDER_REVIEW once the issuer side has answered the regulator's query."""
    application = await store.get_application(session, application_id)
    require_issuer_party(actor, application, Capability.RESPOND_TO_QUERY)
    text = (comment or "").strip()
    if not text:
        raise ValidationError("A response comment is required")

    updated = await transition(
        session,
        application,
        S.UNDER_REVIEW,
        TransitionGuard(actor=actor, expected_version=expected_version, allowed_from=frozenset({S.QUERY_ISSUED})),
    )
    await store.append_comment(session, updated.id, actor, text)
    return updated
