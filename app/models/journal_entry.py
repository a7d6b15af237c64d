"""Journal entry model: free-form progress notes per project."""

from datetime import UTC, datetime
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from app.config.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JournalEntry(Base):
    """Journal entry mapped to `journal_entries` table."""

    __tablename__ = "journal_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    entry_type = Column(String(50), nullable=False, default="note")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    project = relationship("Project", backref="journal_entries")

    __table_args__ = (
        Index("idx_journal_entries_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<JournalEntry {self.project_id}:{self.entry_type}>"
