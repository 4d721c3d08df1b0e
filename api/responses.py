"""Row -> camelCase dict serializers shared by the routers."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from models import Application, Comment, ReviewDecision, Section
from utils.case import dict_keys_to_camel, row_to_camel


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def application_to_response(app: Application, sections: Optional[list[Section]] = None) -> dict[str, Any]:
    out = {
        "id": app.id,
        "companyId": app.company_id,
        "applicationNumber": app.application_number,
        "status": app.status,
        "currentPhase": app.current_phase,
        "completionPercentage": app.completion_percentage,
        "targetAmount": app.target_amount,
        "priority": app.priority,
        "assignedIbAdvisorId": app.assigned_advisor_id,
        "assignedRegulatorId": app.assigned_regulator_id,
        "createdBy": app.created_by,
        "version": app.version,
        "createdAt": _iso(app.created_at),
        "updatedAt": _iso(app.updated_at),
        "submittedAt": _iso(app.submitted_at),
    }
    if sections is not None:
        out["sections"] = [section_summary(s) for s in sections]
    return out


def section_summary(section: Section) -> dict[str, Any]:
    return {
        "id": section.id,
        "sectionNumber": section.section_number,
        "title": section.title,
        "status": section.status,
        "completionPercentage": section.completion_percentage,
        "version": section.version,
    }


def section_to_response(
    section: Section,
    data: Optional[dict[str, Any]] = None,
    pending_fields: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Field names inside ``data`` belong to the filer and are returned as stored."""
    out = section_summary(section)
    out.update({
        "applicationId": section.application_id,
        "data": section.data if data is None else data,
        "validationErrors": dict_keys_to_camel(section.validation_errors or []),
        "completedBy": section.completed_by,
        "completedAt": _iso(section.completed_at),
        "reviewedBy": section.reviewed_by,
        "reviewedAt": _iso(section.reviewed_at),
        "updatedAt": _iso(section.updated_at),
    })
    if pending_fields is not None:
        out["pendingFields"] = pending_fields
    return out


COMMENT_COLUMNS = (
    "id",
    "application_id",
    "section_id",
    "author_id",
    "author_role",
    "addressed_to",
    "content",
    "is_internal",
    "created_at",
)

REVIEW_COLUMNS = (
    "id",
    "application_id",
    "action",
    "reviewer_id",
    "from_status",
    "to_status",
    "comment",
    "risk_rating",
    "compliance_score",
    "created_at",
)


def comment_to_response(comment: Comment) -> dict[str, Any]:
    return row_to_camel(comment, COMMENT_COLUMNS)


def review_to_response(decision: ReviewDecision) -> dict[str, Any]:
    return row_to_camel(decision, REVIEW_COLUMNS)
