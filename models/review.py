from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class ReviewDecision(Base):
    """Immutable audit record of a regulator action."""

    __tablename__ = "review_decisions"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(
        String(64), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action = Column(String(32), nullable=False)
    reviewer_id = Column(String(64), nullable=False)
    from_status = Column(String(32), nullable=False)
    to_status = Column(String(32), nullable=False)
    comment = Column(Text, nullable=True)
    risk_rating = Column(String(16), nullable=True)
    compliance_score = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("Application", back_populates="reviews")
