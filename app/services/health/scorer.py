"""Project health scoring"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional

from app.services.health.timeutils import days_between, utcnow
from app.services.health.types import (
    ActivitySnapshot,
    HealthFactors,
    HealthResult,
    HealthTier,
    ProjectSnapshot,
)

logger = logging.getLogger(__name__)

# Factor ceilings: 30 + 25 + 25 + 15 + 5 = 100
MAX_COMMIT_ACTIVITY = 30
MAX_DEPLOYMENT_STATUS = 25
MAX_ISSUE_HEALTH = 25
MAX_CI_STATUS = 15
MAX_FRESHNESS = 5

ARCHIVED_SCORE = 50
COMPLETED_SCORE = 100

_NON_PRODUCTION_MARKERS = ("localhost", "staging", "dev.")


def classify_tier(score: int) -> HealthTier:
    """Bucket a numeric score into a health tier"""
    if score >= 85:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    if score >= 30:
        return "poor"
    return "critical"


class HealthScorer:
    """Turns a project and its repository activity into a 0-100 health score"""

    @staticmethod
    def score(
        project: ProjectSnapshot,
        activity: Optional[ActivitySnapshot] = None,
        *,
        now: Optional[datetime] = None,
    ) -> HealthResult:
        """
        Calculate the health of a single project

        Factors (in evaluation order, which is also the order of `alerts`):
        - Commit activity (30): recency of the last commit
        - Deployment status (25): live URL, custom domain, HTTPS, production host
        - Issue health (25): open issue count
        - CI status (15): latest workflow conclusion
        - Freshness (5): recency of the project's own `updated_at`

        Archived and completed projects are not scored on activity and
        get fixed results (50/fair and 100/excellent).

        Args:
            project: Project to score
            activity: Repository snapshot, or None when unavailable
            now: Reference time (defaults to current UTC time)

        Returns:
            HealthResult whose factor sum equals its score
        """
        if project.status == "archived":
            return HealthResult(score=ARCHIVED_SCORE, factors=HealthFactors(), status="fair")
        if project.status == "completed":
            return HealthResult(score=COMPLETED_SCORE, factors=HealthFactors(), status="excellent")

        now = now or utcnow()
        alerts: list[str] = []

        factors = HealthFactors(
            commit_activity=HealthScorer._commit_activity(project, activity, now, alerts),
            deployment_status=HealthScorer._deployment_status(project, alerts),
            issue_health=HealthScorer._issue_health(project, activity, alerts),
            ci_status=HealthScorer._ci_status(activity, alerts),
            freshness=HealthScorer._freshness(project, now, alerts),
        )
        score = factors.total

        logger.debug(
            f"Scored '{project.name}': commits={factors.commit_activity}, "
            f"deploy={factors.deployment_status}, issues={factors.issue_health}, "
            f"ci={factors.ci_status}, freshness={factors.freshness}, final={score}"
        )

        return HealthResult(score=score, factors=factors, status=classify_tier(score), alerts=tuple(alerts))

    @staticmethod
    def _commit_activity(
        project: ProjectSnapshot,
        activity: Optional[ActivitySnapshot],
        now: datetime,
        alerts: list[str],
    ) -> int:
        """
        Score commit recency

        - 0-1 days: 30
        - 2-3 days: 25
        - 4-7 days: 20
        - 8-14 days: 15
        - 15-30 days: 8
        - 31-60 days: 5
        - 60+ days: 2

        A linked repo without commit data scores 5; projects without a repo
        are neutral (18) since not every project is code.
        """
        if activity is not None and activity.last_commit_at is not None:
            days = days_between(now, activity.last_commit_at)
            if days <= 1:
                return 30
            if days <= 3:
                return 25
            if days <= 7:
                return 20
            if days <= 14:
                return 15
            if days <= 30:
                alerts.append("No commits in 2+ weeks")
                return 8
            if days <= 60:
                alerts.append("Stale: no commits in 30+ days")
                return 5
            alerts.append("Very stale: no commits in 60+ days")
            return 2

        if project.github_repo:
            alerts.append("Could not fetch commit data")
            return 5

        return 18

    @staticmethod
    def _deployment_status(project: ProjectSnapshot, alerts: list[str]) -> int:
        if not project.live_url:
            if project.status == "active":
                alerts.append("No live deployment")
                return 5
            return 12

        url = project.live_url.strip()
        deploy = 15
        if project.domain:
            deploy += 5
        if url.lower().startswith("https://"):
            deploy += 3
        if not any(marker in url.lower() for marker in _NON_PRODUCTION_MARKERS):
            deploy += 2
        return min(MAX_DEPLOYMENT_STATUS, deploy)

    @staticmethod
    def _issue_health(
        project: ProjectSnapshot,
        activity: Optional[ActivitySnapshot],
        alerts: list[str],
    ) -> int:
        if activity is not None and activity.open_issues is not None:
            issues = activity.open_issues
            if issues == 0:
                return 25
            if issues <= 3:
                return 20
            if issues <= 10:
                alerts.append(f"{issues} open issues")
                return 15
            alerts.append(f"{issues} open issues need attention")
            return 10

        if project.github_repo:
            return 15

        # No repo means no issue tracker to fall behind on
        return 20

    @staticmethod
    def _ci_status(activity: Optional[ActivitySnapshot], alerts: list[str]) -> int:
        ci_status = activity.ci_status if activity is not None else "unknown"
        if ci_status == "success":
            return 15
        if ci_status == "failure":
            alerts.append("CI/CD pipeline failing")
            return 3
        return 10

    @staticmethod
    def _freshness(project: ProjectSnapshot, now: datetime, alerts: list[str]) -> int:
        days = days_between(now, project.updated_at)
        if days <= 1:
            return 5
        if days <= 7:
            return 4
        if days <= 30:
            return 3
        if days <= 90:
            return 2
        if project.status == "active":
            alerts.append("No project activity in 90+ days")
        return 1


def calculate_project_health(
    project: ProjectSnapshot,
    activity: Optional[ActivitySnapshot] = None,
    *,
    now: Optional[datetime] = None,
) -> HealthResult:
    """Module-level shortcut for `HealthScorer.score`."""
    return HealthScorer.score(project, activity, now=now)
