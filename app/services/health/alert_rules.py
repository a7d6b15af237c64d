"""Alert rule engine: turns scored projects and milestones into candidate alerts."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Iterable, Mapping, Optional, Sequence

from app.services.health.timeutils import date_start_utc, days_between, ensure_utc, utcnow
from app.services.health.types import CandidateAlert, MilestoneSnapshot, ScoredProject

logger = logging.getLogger(__name__)

DEGRADATION_THRESHOLD = 10
DEGRADED_CRITICAL_BELOW = 40
CRITICAL_WITHOUT_BASELINE_AT_OR_BELOW = 30
INACTIVE_WARNING_DAYS = 14
INACTIVE_INFO_DAYS = 7
MILESTONE_CRITICAL_OVERDUE_DAYS = 14


def health_degraded_fingerprint(project_id: str) -> str:
    return f"health_degraded:{project_id}"


def health_critical_fingerprint(project_id: str) -> str:
    return f"health_critical:{project_id}"


def deploy_failed_fingerprint(project_id: str) -> str:
    return f"deploy_failed:{project_id}"


def inactive_fingerprint(project_id: str) -> str:
    return f"inactive:{project_id}"


def milestone_overdue_fingerprint(milestone_id: str) -> str:
    return f"milestone_overdue:{milestone_id}"


def latest_journal_timestamps(
    entries: Iterable[tuple[str, datetime]],
) -> dict[str, datetime]:
    """Collapse `(project_id, created_at)` pairs to the newest timestamp per project."""
    latest: dict[str, datetime] = {}
    for project_id, created_at in entries:
        created_at = ensure_utc(created_at)
        current = latest.get(project_id)
        if current is None or created_at > current:
            latest[project_id] = created_at
    return latest


def generate_alerts(
    scored_projects: Sequence[ScoredProject],
    milestones: Sequence[MilestoneSnapshot],
    journal_timestamps: Optional[Mapping[str, Sequence[datetime]]] = None,
    *,
    now: Optional[datetime] = None,
) -> list[CandidateAlert]:
    """Evaluate every alert rule and return candidates in rule order.

    Project rules (health degraded, health critical without baseline, deploy
    failed, inactivity) only apply to active projects. Milestone rules apply to
    every non-completed milestone with a target date regardless of its
    project's status. Nothing is persisted or deduplicated here.
    """
    now = now or utcnow()
    latest_journal = latest_journal_timestamps(
        (project_id, created_at)
        for project_id, timestamps in (journal_timestamps or {}).items()
        for created_at in timestamps
    )

    alerts: list[CandidateAlert] = []
    for scored in scored_projects:
        if scored.project.status != "active":
            continue
        alerts.extend(_project_alerts(scored, latest_journal.get(scored.project.id), now))

    for milestone in milestones:
        alert = _milestone_overdue_alert(milestone, now)
        if alert is not None:
            alerts.append(alert)

    logger.debug(f"Generated {len(alerts)} candidate alerts from {len(scored_projects)} projects")
    return alerts


def _project_alerts(
    scored: ScoredProject,
    latest_journal_at: Optional[datetime],
    now: datetime,
) -> list[CandidateAlert]:
    project = scored.project
    health = scored.health
    reasons = ". ".join(health.alerts)
    alerts: list[CandidateAlert] = []

    previous = project.health_score
    current = health.score
    if previous is not None and current < previous - DEGRADATION_THRESHOLD:
        alerts.append(
            CandidateAlert(
                level="critical" if current < DEGRADED_CRITICAL_BELOW else "warning",
                category="health_degraded",
                title=f"{project.name} health dropped",
                message=f"Health score fell from {previous} to {current}. {reasons}".rstrip(),
                related_id=project.id,
                related_type="project",
                action_required="Review project health factors and address issues",
                fingerprint=health_degraded_fingerprint(project.id),
            )
        )
    if previous is None and current <= CRITICAL_WITHOUT_BASELINE_AT_OR_BELOW:
        alerts.append(
            CandidateAlert(
                level="critical",
                category="health_degraded",
                title=f"{project.name} health is critical",
                message=f"Health score is {current}. {reasons}".rstrip(),
                related_id=project.id,
                related_type="project",
                action_required="Immediate attention needed",
                fingerprint=health_critical_fingerprint(project.id),
            )
        )

    deploy = scored.deploy_status
    if deploy is not None and deploy.status == "failed":
        suffix = f" at {deploy.timestamp}" if deploy.timestamp else ""
        alerts.append(
            CandidateAlert(
                level="critical",
                category="deploy_failed",
                title=f"{project.name} deploy failed",
                message=f"Most recent deployment failed{suffix}",
                related_id=project.id,
                related_type="project",
                action_required="Check deploy logs and fix the build",
                fingerprint=deploy_failed_fingerprint(project.id),
            )
        )

    last_activity = ensure_utc(project.updated_at)
    if latest_journal_at is not None and latest_journal_at > last_activity:
        last_activity = latest_journal_at
    days_since = days_between(now, last_activity)
    if days_since >= INACTIVE_WARNING_DAYS:
        alerts.append(
            CandidateAlert(
                level="warning",
                category="project_inactive",
                title=f"{project.name} inactive for {days_since}d",
                message=f"No journal entries or updates in {days_since} days",
                related_id=project.id,
                related_type="project",
                action_required="Consider updating status or adding a journal entry",
                fingerprint=inactive_fingerprint(project.id),
            )
        )
    elif days_since >= INACTIVE_INFO_DAYS:
        alerts.append(
            CandidateAlert(
                level="info",
                category="project_inactive",
                title=f"{project.name} quiet for {days_since}d",
                message="No activity in the last week",
                related_id=project.id,
                related_type="project",
                action_required=None,
                fingerprint=inactive_fingerprint(project.id),
            )
        )

    return alerts


def _milestone_overdue_alert(milestone: MilestoneSnapshot, now: datetime) -> Optional[CandidateAlert]:
    if milestone.status == "completed" or milestone.target_date is None:
        return None

    days_overdue = days_between(now, date_start_utc(milestone.target_date))
    if days_overdue <= 0:
        return None

    critical = days_overdue > MILESTONE_CRITICAL_OVERDUE_DAYS
    project_name = milestone.project_name or "Unknown project"
    return CandidateAlert(
        level="critical" if critical else "warning",
        category="milestone_overdue",
        title=f'"{milestone.name}" is {days_overdue}d overdue',
        message=(
            f"Milestone for {project_name} was due {milestone.target_date.isoformat()} "
            f"({milestone.percent_complete}% complete)"
        ),
        related_id=milestone.id,
        related_type="milestone",
        action_required="Reassess deadline or escalate" if critical else "Update progress or adjust deadline",
        fingerprint=milestone_overdue_fingerprint(milestone.id),
    )
