"""Ranked, advisory insights derived from scored projects and recent commits."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from app.services.health.timeutils import days_between, utcnow
from app.services.health.types import CommitSummary, ScoredProject, SmartInsight

DEFAULT_INSIGHT_LIMIT = 8
STALE_DAYS = 7
STALE_HIGH_PRIORITY_ABOVE = 3
MANY_ISSUES_ABOVE = 5

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def generate_insights(
    scored_projects: Sequence[ScoredProject],
    recent_commits: Sequence[CommitSummary] = (),
    *,
    now: Optional[datetime] = None,
    limit: int = DEFAULT_INSIGHT_LIMIT,
) -> list[SmartInsight]:
    """Build the insight list, highest priority first, capped at `limit`.

    Ordering within a priority follows emission order: stale cluster, most
    active today, hot projects, CI failures, then projects with many issues.
    """
    now = now or utcnow()
    active = [scored for scored in scored_projects if scored.project.status == "active"]

    insights: list[SmartInsight] = []
    stale = _stale_cluster(active, now)
    if stale is not None:
        insights.append(stale)

    most_active = _most_active_today(recent_commits, now)
    if most_active is not None:
        insights.append(most_active)

    for scored in active:
        if scored.activity is not None and scored.activity.activity_label == "Hot":
            project = scored.project
            insights.append(
                SmartInsight(
                    id=f"hot-project-{project.id}",
                    type="active",
                    title=f"{project.name} is hot! \N{FIRE}",
                    description="Recent high commit activity",
                    priority="low",
                    project_id=project.id,
                    project_name=project.name,
                )
            )

    for scored in active:
        if scored.activity is not None and scored.activity.ci_status == "failure":
            project = scored.project
            insights.append(
                SmartInsight(
                    id=f"ci-failure-{project.id}",
                    type="alert",
                    title=f"{project.name} CI failing",
                    description="Build or tests are broken",
                    priority="high",
                    project_id=project.id,
                    project_name=project.name,
                    action_label="View GitHub Actions",
                    action_url=f"{_repo_url(scored)}/actions",
                )
            )

    for scored in active:
        open_issues = scored.activity.open_issues if scored.activity is not None else None
        if (open_issues or 0) > MANY_ISSUES_ABOVE:
            project = scored.project
            insights.append(
                SmartInsight(
                    id=f"issues-{project.id}",
                    type="suggestion",
                    title=f"{project.name} has {open_issues} open issues",
                    description="Consider triaging or closing stale issues",
                    priority="medium",
                    project_id=project.id,
                    project_name=project.name,
                    action_label="View Issues",
                    action_url=f"{_repo_url(scored)}/issues",
                )
            )

    # sorted() is stable, so ties keep emission order
    insights = sorted(insights, key=lambda insight: _PRIORITY_ORDER[insight.priority])
    return insights[:limit]


def _repo_url(scored: ScoredProject) -> str:
    if scored.activity is not None and scored.activity.repo_url:
        return scored.activity.repo_url
    return f"https://github.com/{scored.project.github_repo}"


def _stale_cluster(active: Sequence[ScoredProject], now: datetime) -> Optional[SmartInsight]:
    stale_names: list[str] = []
    for scored in active:
        last_activity = scored.project.updated_at
        if scored.activity is not None and scored.activity.last_commit_at is not None:
            last_activity = scored.activity.last_commit_at
        if days_between(now, last_activity) >= STALE_DAYS:
            stale_names.append(scored.project.name)

    if not stale_names:
        return None

    count = len(stale_names)
    return SmartInsight(
        id="stale-projects",
        type="stale",
        title=f"{count} project{'s' if count > 1 else ''} need{'s' if count == 1 else ''} attention",
        description=", ".join(stale_names),
        priority="high" if count > STALE_HIGH_PRIORITY_ABOVE else "medium",
    )


def _most_active_today(recent_commits: Sequence[CommitSummary], now: datetime) -> Optional[SmartInsight]:
    counts: dict[str, int] = {}
    for commit in recent_commits:
        if days_between(now, commit.date) == 0:
            counts[commit.project_name] = counts.get(commit.project_name, 0) + 1

    if not counts:
        return None

    # max() keeps the first-seen project on ties
    project_name, commits = max(counts.items(), key=lambda item: item[1])
    if commits <= 1:
        return None

    return SmartInsight(
        id="most-active-today",
        type="active",
        title=f"{project_name} is on fire today \N{FIRE}",
        description=f"{commits} commits today, most active project",
        priority="low",
    )
