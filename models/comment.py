from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class Comment(Base):
    """Append-only discussion entry. Rows are never updated or deleted."""

    __tablename__ = "comments"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(
        String(64), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section_id = Column(
        String(64), ForeignKey("application_sections.id", ondelete="CASCADE"), nullable=True, index=True
    )
    author_id = Column(String(64), nullable=False)
    author_role = Column(String(32), nullable=False)
    addressed_to = Column(String(32), nullable=True)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("Application", back_populates="comments")
