"""
Role model for the filing workflow: capabilities, hierarchy, interaction matrix
and ownership predicates.

Predicates are evaluated against the application row passed in on every call;
assignment and status change over an application's life, so nothing here is cached.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from exceptions import AccessDeniedError
from schemas.enums import ApplicationStatus, Role


class Capability(str, Enum):
    SUBMIT_INTENT = "submit_intent"
    RESPOND_TO_QUERY = "respond_to_query"
    MANAGE_SECTIONS = "manage_sections"
    SUBMIT = "submit"
    ASSIGN = "assign"
    COMMENT = "comment"
    POST_INTERNAL_COMMENT = "post_internal_comment"
    VIEW_INTERNAL_COMMENTS = "view_internal_comments"
    START_REVIEW = "start_review"
    QUERY = "query"
    APPROVE = "approve"
    REJECT = "reject"
    REVIEW_SECTIONS = "review_sections"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ISSUER: frozenset({
        Capability.SUBMIT_INTENT,
        Capability.RESPOND_TO_QUERY,
        Capability.MANAGE_SECTIONS,
        Capability.SUBMIT,
        Capability.ASSIGN,
        Capability.COMMENT,
    }),
    Role.IB_ADVISOR: frozenset({
        Capability.RESPOND_TO_QUERY,
        Capability.MANAGE_SECTIONS,
        Capability.SUBMIT,
        Capability.ASSIGN,
        Capability.COMMENT,
        Capability.POST_INTERNAL_COMMENT,
        Capability.VIEW_INTERNAL_COMMENTS,
    }),
    Role.CMA_REGULATOR: frozenset({
        Capability.START_REVIEW,
        Capability.QUERY,
        Capability.APPROVE,
        Capability.REJECT,
        Capability.REVIEW_SECTIONS,
        Capability.COMMENT,
        Capability.POST_INTERNAL_COMMENT,
        Capability.VIEW_INTERNAL_COMMENTS,
    }),
    Role.CMA_ADMIN: frozenset(Capability),
}

# 0 = highest authority. Used only for relative-authority checks, never ownership.
ROLE_HIERARCHY: dict[Role, int] = {
    Role.CMA_ADMIN: 0,
    Role.CMA_REGULATOR: 1,
    Role.IB_ADVISOR: 2,
    Role.ISSUER: 3,
}

# Which role may address which other role directly.
INTERACTION_MATRIX: dict[Role, frozenset[Role]] = {
    Role.ISSUER: frozenset({Role.IB_ADVISOR}),
    Role.IB_ADVISOR: frozenset({Role.ISSUER, Role.CMA_REGULATOR}),
    Role.CMA_REGULATOR: frozenset({Role.IB_ADVISOR, Role.CMA_ADMIN}),
    Role.CMA_ADMIN: frozenset(Role),
}

# Statuses in which an unassigned regulator may see an application.
REGULATOR_POOL_STATUSES = frozenset({
    ApplicationStatus.SUBMITTED.value,
    ApplicationStatus.UNDER_REVIEW.value,
    ApplicationStatus.QUERY_ISSUED.value,
})


@dataclass(frozen=True)
class ActorContext:
    """Request-scoped identity threaded into every access decision."""

    user_id: str
    role: Role
    company_id: Optional[str] = None


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES[role]


def require_capability(actor: ActorContext, capability: Capability) -> None:
    if not has_capability(actor.role, capability):
        raise AccessDeniedError(f"Role {actor.role.value} may not {capability.value.replace('_', ' ')}")


def outranks(role: Role, other: Role) -> bool:
    """True if ``role`` has strictly higher authority than ``other``."""
    return ROLE_HIERARCHY[role] < ROLE_HIERARCHY[other]


def can_interact(from_role: Role, to_role: Role) -> bool:
    return to_role in INTERACTION_MATRIX[from_role]


def can_access_application(
    role: Role,
    user_id: str,
    company_id: Optional[str],
    application: Any,
) -> bool:
    if role is Role.CMA_ADMIN:
        return True
    if role is Role.ISSUER:
        return company_id is not None and application.company_id == company_id
    if role is Role.IB_ADVISOR:
        return application.assigned_advisor_id is not None and application.assigned_advisor_id == user_id
    if role is Role.CMA_REGULATOR:
        if application.assigned_regulator_id is not None and application.assigned_regulator_id == user_id:
            return True
        return application.status in REGULATOR_POOL_STATUSES
    return False


def require_application_access(actor: ActorContext, application: Any) -> None:
    if not can_access_application(actor.role, actor.user_id, actor.company_id, application):
        raise AccessDeniedError("Access denied")


def is_issuer_party(actor: ActorContext, application: Any) -> bool:
    """Owning-company issuer or the application's assigned advisor."""
    if actor.role is Role.ISSUER:
        return actor.company_id is not None and application.company_id == actor.company_id
    if actor.role is Role.IB_ADVISOR:
        return application.assigned_advisor_id is not None and application.assigned_advisor_id == actor.user_id
    return False


def can_write_section(actor: ActorContext, application: Any) -> bool:
    return has_capability(actor.role, Capability.MANAGE_SECTIONS) and is_issuer_party(actor, application)


def require_section_write(actor: ActorContext, application: Any) -> None:
    if not can_write_section(actor, application):
        raise AccessDeniedError("Only the owning issuer or the assigned IB advisor can edit sections")


def require_issuer_party(actor: ActorContext, application: Any, capability: Capability) -> None:
    require_capability(actor, capability)
    if not is_issuer_party(actor, application):
        raise AccessDeniedError("Only the owning issuer or the assigned IB advisor can perform this action")


def require_reviewer(actor: ActorContext, application: Any, capability: Capability) -> None:
    """Regulator actions: capability, visibility, and not someone else's assigned file."""
    require_capability(actor, capability)
    require_application_access(actor, application)
    if actor.role is Role.CMA_REGULATOR:
        assigned = application.assigned_regulator_id
        if assigned is not None and assigned != actor.user_id:
            raise AccessDeniedError("Application is assigned to another regulator")


def can_view_internal_comments(role: Role) -> bool:
    return has_capability(role, Capability.VIEW_INTERNAL_COMMENTS)
