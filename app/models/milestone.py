"""Milestone model: dated goals attached to a project."""

from datetime import UTC, datetime
import enum
import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.config.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MilestoneStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Milestone(Base):
    """Milestone mapped to `milestones` table."""

    __tablename__ = "milestones"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    target_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=MilestoneStatus.NOT_STARTED.value)
    percent_complete = Column(Integer, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    project = relationship("Project", backref="milestones")

    __table_args__ = (
        Index("idx_milestones_target_date", "target_date"),
    )

    def __repr__(self):
        return f"<Milestone {self.name} ({self.status})>"
