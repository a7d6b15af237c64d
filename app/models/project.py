"""Project model backing the command center dashboard."""

from datetime import UTC, datetime
import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from app.config.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProjectStatus(str, enum.Enum):
    """Lifecycle states; completed and archived are terminal for scoring."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ProjectPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Project(Base):
    """Tracked project mapped to `projects` table."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    github_repo = Column(String(300), nullable=True)
    live_url = Column(String(500), nullable=True)
    domain = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=ProjectStatus.ACTIVE.value)
    priority = Column(String(20), nullable=False, default=ProjectPriority.MEDIUM.value)
    tags = Column(JSON, nullable=True)

    # Last synced health score; baseline for degradation alerts
    health_score = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_projects_status", "status"),
        Index("idx_projects_updated_at", "updated_at"),
    )

    def __repr__(self):
        return f"<Project {self.name} ({self.status})>"
