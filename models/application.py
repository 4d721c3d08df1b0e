from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from database import Base


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(64), primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    application_number = Column(String(32), nullable=True, unique=True)
    status = Column(String(32), nullable=False, default="DRAFT", index=True)
    current_phase = Column(String(32), nullable=False, default="DATA_COLLECTION")
    # Derived: round(mean(section completion)); never written by clients
    completion_percentage = Column(Integer, nullable=False, default=0)
    target_amount = Column(BigInteger, nullable=True)
    priority = Column(String(16), nullable=False, default="MEDIUM")
    assigned_advisor_id = Column(String(64), nullable=True, index=True)
    assigned_regulator_id = Column(String(64), nullable=True, index=True)
    created_by = Column(String(64), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sections = relationship(
        "Section",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="Section.section_number",
    )
    comments = relationship("Comment", back_populates="application", cascade="all, delete-orphan")
    reviews = relationship("ReviewDecision", back_populates="application", cascade="all, delete-orphan")


class Section(Base):
    __tablename__ = "application_sections"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(
        String(64), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section_number = Column(Integer, nullable=False)
    title = Column(String(256), nullable=False)
    status = Column(String(32), nullable=False, default="NOT_STARTED")
    # Nested key -> value map of the section's form fields
    data = Column(JSON, nullable=False, default=dict)
    # Every leaf path ever observed in ``data``; shrinks only on a shape change
    observed_fields = Column(JSON, nullable=False, default=list)
    completion_percentage = Column(Integer, nullable=False, default=0)
    validation_errors = Column(JSON, nullable=False, default=list)
    completed_by = Column(String(64), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("Application", back_populates="sections")

    __table_args__ = (UniqueConstraint("application_id", "section_number", name="uq_section_number"),)


class ApplicationNumberCounter(Base):
    """Last ``IPO-YYYY-NNNN`` sequence number handed out per submission year."""

    __tablename__ = "application_number_counters"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_number = Column(Integer, nullable=False, default=0)
