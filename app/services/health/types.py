"""Value types shared by the health scorer, alert rules and insight generator.

All types are plain dataclasses so the scoring core can be exercised without a
database session or network access. ORM rows are converted by
`app.services.health.project_mapper`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional

ProjectStatusValue = Literal["active", "paused", "completed", "archived"]
PriorityValue = Literal["high", "medium", "low"]
CIStatusValue = Literal["success", "failure", "unknown"]
ActivityLabel = Literal["Hot", "Warm", "Cold", "Frozen", "Unknown"]
HealthTier = Literal["excellent", "good", "fair", "poor", "critical"]
AlertLevelValue = Literal["info", "warning", "critical"]
AlertCategoryValue = Literal["health_degraded", "deploy_failed", "milestone_overdue", "project_inactive"]
InsightType = Literal["stale", "active", "completion", "suggestion", "alert"]


@dataclass(frozen=True, slots=True)
class ProjectSnapshot:
    """Read-only view of a project row."""

    id: str
    name: str
    status: ProjectStatusValue
    updated_at: datetime
    priority: PriorityValue = "medium"
    github_repo: Optional[str] = None
    live_url: Optional[str] = None
    domain: Optional[str] = None
    health_score: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ActivitySnapshot:
    """Point-in-time repository state supplied by the GitHub collaborator."""

    last_commit_at: Optional[datetime] = None
    open_issues: Optional[int] = None
    ci_status: CIStatusValue = "unknown"
    activity_label: ActivityLabel = "Unknown"
    last_commit_message: Optional[str] = None
    repo_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeployStatus:
    """Latest deployment outcome (`success`, `failed`, `pending`, `unknown`)."""

    status: str
    timestamp: Optional[str] = None


@dataclass(frozen=True, slots=True)
class HealthFactors:
    commit_activity: int = 0
    deployment_status: int = 0
    issue_health: int = 0
    ci_status: int = 0
    freshness: int = 0

    @property
    def total(self) -> int:
        return self.commit_activity + self.deployment_status + self.issue_health + self.ci_status + self.freshness

    def as_dict(self) -> dict[str, int]:
        return {
            "commitActivity": self.commit_activity,
            "deploymentStatus": self.deployment_status,
            "issueHealth": self.issue_health,
            "ciStatus": self.ci_status,
            "freshness": self.freshness,
        }


@dataclass(frozen=True, slots=True)
class HealthResult:
    score: int
    factors: HealthFactors
    status: HealthTier
    alerts: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "score": self.score,
            "factors": self.factors.as_dict(),
            "status": self.status,
            "alerts": list(self.alerts),
        }


@dataclass(frozen=True, slots=True)
class ScoredProject:
    """A project with its (optional) enrichment and freshly computed health."""

    project: ProjectSnapshot
    health: HealthResult
    activity: Optional[ActivitySnapshot] = None
    deploy_status: Optional[DeployStatus] = None


@dataclass(frozen=True, slots=True)
class MilestoneSnapshot:
    id: str
    project_id: str
    name: str
    status: str = "not_started"
    target_date: Optional[date] = None
    percent_complete: int = 0
    project_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CommitSummary:
    project_name: str
    date: datetime
    message: str = ""
    repo: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CandidateAlert:
    """Alert the rule engine wants to exist; `fingerprint` is never persisted."""

    level: AlertLevelValue
    category: AlertCategoryValue
    title: str
    message: str
    fingerprint: str
    related_id: Optional[str] = None
    related_type: Optional[str] = None
    action_required: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SmartInsight:
    id: str
    type: InsightType
    title: str
    description: str
    priority: PriorityValue
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    action_label: Optional[str] = None
    action_url: Optional[str] = None
