from __future__ import annotations

from datetime import UTC, datetime, timedelta

from app.services.health.insights import generate_insights
from app.services.health.types import (
    ActivitySnapshot,
    CommitSummary,
    HealthFactors,
    HealthResult,
    ProjectSnapshot,
    ScoredProject,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)
_HEALTH = HealthResult(score=70, factors=HealthFactors(), status="good")


def _scored(project_id: str, *, status: str = "active", updated_days: int = 0, activity=None) -> ScoredProject:
    project = ProjectSnapshot(
        id=project_id,
        name=project_id.title(),
        status=status,
        updated_at=NOW - timedelta(days=updated_days),
        github_repo=f"acme/{project_id}",
    )
    return ScoredProject(project=project, health=_HEALTH, activity=activity)


def test_stale_cluster_counts_active_projects_only() -> None:
    scored = [
        _scored("alpha", updated_days=10),
        _scored("beta", updated_days=1),
        _scored("gamma", status="paused", updated_days=40),
    ]

    insights = generate_insights(scored, now=NOW)

    assert len(insights) == 1
    assert insights[0].id == "stale-projects"
    assert insights[0].title == "1 project needs attention"
    assert insights[0].description == "Alpha"
    assert insights[0].priority == "medium"


def test_stale_cluster_prefers_commit_date_and_escalates_priority() -> None:
    fresh_commit = ActivitySnapshot(last_commit_at=NOW - timedelta(days=1), activity_label="Hot")
    scored = [_scored(name, updated_days=30) for name in ("a", "b", "c", "d")]
    scored.append(_scored("e", updated_days=30, activity=fresh_commit))

    insights = generate_insights(scored, now=NOW)
    stale = next(insight for insight in insights if insight.id == "stale-projects")

    assert stale.title == "4 projects need attention"
    assert stale.priority == "high"
    assert "E" not in stale.description.split(", ")


def test_most_active_today_requires_more_than_one_commit() -> None:
    commits = [
        CommitSummary(project_name="Alpha", date=NOW - timedelta(hours=1)),
        CommitSummary(project_name="Beta", date=NOW - timedelta(hours=2)),
        CommitSummary(project_name="Beta", date=NOW - timedelta(hours=3)),
        CommitSummary(project_name="Alpha", date=NOW - timedelta(hours=4)),
        CommitSummary(project_name="Gamma", date=NOW - timedelta(days=2)),
    ]

    insights = generate_insights([], commits, now=NOW)
    single = generate_insights([], commits[:2], now=NOW)

    assert [(insight.id, insight.title) for insight in insights] == [
        ("most-active-today", "Alpha is on fire today \N{FIRE}"),
    ]
    assert insights[0].description == "2 commits today, most active project"
    assert single == []


def test_per_project_insights_and_priority_order() -> None:
    failing = ActivitySnapshot(ci_status="failure", open_issues=9, activity_label="Hot",
                               last_commit_at=NOW - timedelta(hours=5))
    hot = ActivitySnapshot(activity_label="Hot", open_issues=2, last_commit_at=NOW - timedelta(hours=6))
    scored = [_scored("alpha", activity=hot), _scored("beta", activity=failing)]

    insights = generate_insights(scored, now=NOW)

    assert [insight.id for insight in insights] == [
        "ci-failure-beta",
        "issues-beta",
        "hot-project-alpha",
        "hot-project-beta",
    ]
    assert insights[0].action_url == "https://github.com/acme/beta/actions"
    assert insights[1].title == "Beta has 9 open issues"
    assert insights[1].action_url == "https://github.com/acme/beta/issues"
    assert insights[2].title == "Alpha is hot! \N{FIRE}"


def test_insights_are_truncated_after_sorting() -> None:
    failing = ActivitySnapshot(ci_status="failure", activity_label="Hot", last_commit_at=NOW)
    scored = [_scored(f"p{index}", activity=failing) for index in range(6)]

    insights = generate_insights(scored, now=NOW, limit=3)

    assert len(insights) == 3
    assert all(insight.priority == "high" for insight in insights)
    assert [insight.id for insight in insights] == ["ci-failure-p0", "ci-failure-p1", "ci-failure-p2"]


def test_deep_links_use_normalized_repo_url() -> None:
    activity = ActivitySnapshot(
        ci_status="failure",
        open_issues=8,
        last_commit_at=NOW,
        repo_url="https://github.com/acme/atlas",
    )
    project = ProjectSnapshot(
        id="atlas",
        name="Atlas",
        status="active",
        updated_at=NOW,
        github_repo="https://github.com/acme/atlas",
    )
    scored = ScoredProject(project=project, health=_HEALTH, activity=activity)

    insights = generate_insights([scored], now=NOW)

    assert [insight.action_url for insight in insights] == [
        "https://github.com/acme/atlas/actions",
        "https://github.com/acme/atlas/issues",
    ]
