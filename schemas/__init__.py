from schemas.application import AdvisorAssignment, ApplicationCreate, ApplicationUpdate, QueryResponse
from schemas.comment import CommentCreate
from schemas.enums import (
    SECTION_COUNT,
    SECTION_TITLES,
    ApplicationPhase,
    ApplicationStatus,
    Priority,
    ReviewAction,
    RiskRating,
    Role,
    SectionStatus,
)
from schemas.review import ReviewRequest
from schemas.section import SectionFieldUpdate

__all__ = [
    "AdvisorAssignment",
    "ApplicationCreate",
    "ApplicationPhase",
    "ApplicationStatus",
    "ApplicationUpdate",
    "CommentCreate",
    "Priority",
    "QueryResponse",
    "ReviewAction",
    "ReviewRequest",
    "RiskRating",
    "Role",
    "SECTION_COUNT",
    "SECTION_TITLES",
    "SectionFieldUpdate",
    "SectionStatus",
]
