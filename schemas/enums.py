from enum import Enum


class Role(str, Enum):
    ISSUER = "ISSUER"
    IB_ADVISOR = "IB_ADVISOR"
    CMA_REGULATOR = "CMA_REGULATOR"
    CMA_ADMIN = "CMA_ADMIN"


class ApplicationStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    QUERY_ISSUED = "QUERY_ISSUED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApplicationPhase(str, Enum):
    DATA_COLLECTION = "DATA_COLLECTION"
    CMA_REVIEW = "CMA_REVIEW"
    QUERY_RESPONSE = "QUERY_RESPONSE"
    DECISION = "DECISION"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SectionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ReviewAction(str, Enum):
    START_REVIEW = "START_REVIEW"
    ISSUE_QUERY = "ISSUE_QUERY"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class RiskRating(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


SECTION_COUNT = 10

SECTION_TITLES = {
    1: "Company Identity & Legal Form",
    2: "Capitalization & Financial Strength",
    3: "Share Ownership & Distribution",
    4: "Governance & Management",
    5: "Legal & Regulatory Compliance",
    6: "Offer Details (IPO Information)",
    7: "Prospectus & Disclosure Checklist",
    8: "Publication & Advertisement",
    9: "Post-Approval Undertakings",
    10: "Declarations & Contacts",
}
