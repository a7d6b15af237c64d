"""Mapping helpers between ORM rows and scoring value types."""

from __future__ import annotations

from typing import Any, Optional

from app.services.health.timeutils import ensure_utc
from app.services.health.types import CandidateAlert, MilestoneSnapshot, ProjectSnapshot


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_project_snapshot(row: Any) -> ProjectSnapshot:
    """Build a ProjectSnapshot from a `Project` row (or any duck-typed object)."""
    health_score = getattr(row, "health_score", None)
    return ProjectSnapshot(
        id=str(row.id),
        name=row.name,
        status=row.status,
        priority=getattr(row, "priority", None) or "medium",
        github_repo=_clean(getattr(row, "github_repo", None)),
        live_url=_clean(getattr(row, "live_url", None)),
        domain=_clean(getattr(row, "domain", None)),
        updated_at=ensure_utc(row.updated_at),
        health_score=int(health_score) if health_score is not None else None,
    )


def to_milestone_snapshot(row: Any, project_name: Optional[str] = None) -> MilestoneSnapshot:
    return MilestoneSnapshot(
        id=str(row.id),
        project_id=str(row.project_id),
        name=row.name,
        status=row.status,
        target_date=row.target_date,
        percent_complete=int(row.percent_complete or 0),
        project_name=project_name,
    )


def candidate_to_row(candidate: CandidateAlert) -> dict[str, Any]:
    """Column payload for a new `alerts` row; the fingerprint stays behind."""
    return {
        "level": candidate.level,
        "category": candidate.category,
        "title": candidate.title,
        "message": candidate.message,
        "related_id": candidate.related_id,
        "related_type": candidate.related_type,
        "action_required": candidate.action_required,
        "status": "unread",
    }
