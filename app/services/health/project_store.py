"""Read/write boundary for projects, milestones and journal entries."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Mapping

from app.models.journal_entry import JournalEntry
from app.models.milestone import Milestone
from app.models.project import Project
from app.services.health.timeutils import ensure_utc

logger = logging.getLogger(__name__)


class ProjectStore:
    """SQLAlchemy-backed reads of the entities the health scan consumes."""

    def load_projects(self, db: Any) -> list[Project]:
        return db.query(Project).order_by(Project.updated_at.desc()).all()

    def load_milestones(self, db: Any) -> list[tuple[Milestone, str | None]]:
        """Milestones paired with their project's display name, earliest due first."""
        rows = (
            db.query(Milestone, Project.name)
            .outerjoin(Project, Milestone.project_id == Project.id)
            .order_by(Milestone.target_date.asc())
            .all()
        )
        return [(milestone, project_name) for milestone, project_name in rows]

    def load_journal_timestamps(self, db: Any, *, limit: int) -> dict[str, list[datetime]]:
        """Most recent `limit` journal timestamps grouped by project id."""
        rows = (
            db.query(JournalEntry.project_id, JournalEntry.created_at)
            .order_by(JournalEntry.created_at.desc())
            .limit(limit)
            .all()
        )
        grouped: dict[str, list[datetime]] = {}
        for project_id, created_at in rows:
            grouped.setdefault(str(project_id), []).append(ensure_utc(created_at))
        return grouped

    def update_health_scores(self, db: Any, scores: Mapping[str, int]) -> int:
        """Persist fresh scores without bumping `updated_at` (it drives freshness)."""
        if not scores:
            return 0

        updated = 0
        for project_id, score in scores.items():
            updated += (
                db.query(Project)
                .filter(Project.id == project_id)
                .update(
                    {Project.health_score: score, Project.updated_at: Project.updated_at},
                    synchronize_session=False,
                )
            )
        db.commit()
        logger.info(f"Stored health scores for {updated} projects")
        return updated
