"""Alert model: persisted notifications produced by health scans."""

from datetime import UTC, datetime
import enum
import uuid

from sqlalchemy import Column, DateTime, Index, String, Text, text

from app.config.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AlertLevel(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCategory(str, enum.Enum):
    """Rule engine categories plus the default for manually created alerts."""

    HEALTH_DEGRADED = "health_degraded"
    DEPLOY_FAILED = "deploy_failed"
    MILESTONE_OVERDUE = "milestone_overdue"
    PROJECT_INACTIVE = "project_inactive"
    MANUAL = "manual"


class AlertStatus(str, enum.Enum):
    UNREAD = "unread"
    READ = "read"
    RESOLVED = "resolved"


OPEN_ALERT_STATUSES = (AlertStatus.UNREAD.value, AlertStatus.READ.value)

_OPEN_PREDICATE = text("status IN ('unread', 'read')")


class Alert(Base):
    """Alert row mapped to `alerts` table."""

    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    level = Column(String(20), nullable=False, default=AlertLevel.INFO.value)
    category = Column(String(50), nullable=False)
    title = Column(String(300), nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(String(36), nullable=True)
    related_type = Column(String(50), nullable=True)
    action_required = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=AlertStatus.UNREAD.value)
    read_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_alerts_status_created", "status", "created_at"),
        # At most one open alert per (category, related entity)
        Index(
            "uq_alerts_open_condition",
            "category",
            "related_id",
            "related_type",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
    )

    def __repr__(self):
        return f"<Alert {self.category}:{self.related_id} ({self.status})>"
