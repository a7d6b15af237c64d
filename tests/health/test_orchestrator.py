from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime, timedelta
from types import SimpleNamespace

import pytest

from app.orchestrator import HealthScanOrchestrator, recent_commit_summaries
from app.services.health.types import ActivitySnapshot, DeployStatus

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


class FakeSession:
    def __init__(self) -> None:
        self.closed = False
        self.rolled_back = False

    def rollback(self) -> None:
        self.rolled_back = True

    def close(self) -> None:
        self.closed = True


class FakeProjectStore:
    def __init__(self, projects, milestones=(), journal=None) -> None:
        self.projects = list(projects)
        self.milestones = list(milestones)
        self.journal = journal or {}
        self.saved_scores: dict[str, int] = {}

    def load_projects(self, _db):
        return self.projects

    def load_milestones(self, _db):
        return self.milestones

    def load_journal_timestamps(self, _db, *, limit):
        return self.journal

    def update_health_scores(self, _db, scores):
        self.saved_scores.update(scores)
        return len(scores)


class FakeAlertStore:
    def __init__(self) -> None:
        self.open_keys: list[tuple] = []
        self.inserted: list = []

    def list_open_keys(self, _db):
        return list(self.open_keys)

    def insert_alerts(self, _db, candidates):
        for candidate in candidates:
            self.inserted.append(candidate)
            self.open_keys.append((candidate.category, candidate.related_id, candidate.related_type))
        return len(candidates)


class FakeGitHubClient:
    def __init__(self, activity=None, deploy=None, failing=()) -> None:
        self.activity = activity or {}
        self.deploy = deploy or {}
        self.failing = set(failing)
        self.opened = 0

    def __call__(self):
        return self

    async def __aenter__(self):
        self.opened += 1
        return self

    async def __aexit__(self, *_exc):
        return None

    async def fetch_activity(self, repo, *, now=None):
        if repo in self.failing:
            raise RuntimeError("connection reset")
        return self.activity.get(repo)

    async def fetch_deploy_status(self, repo):
        return self.deploy.get(repo)


def _row(project_id: str, *, repo: str | None = None, status: str = "active", updated_days: int = 0,
         health_score: int | None = None):
    return SimpleNamespace(
        id=project_id,
        name=project_id.title(),
        status=status,
        priority="medium",
        github_repo=repo,
        live_url="https://example.com",
        domain="example.com",
        updated_at=NOW - timedelta(days=updated_days),
        health_score=health_score,
    )


def _orchestrator(project_store, github=None, alert_store=None) -> HealthScanOrchestrator:
    sessions: list[FakeSession] = []

    def session_factory():
        session = FakeSession()
        sessions.append(session)
        return session

    orchestrator = HealthScanOrchestrator(
        session_factory=session_factory,
        github_client_factory=github or FakeGitHubClient(),
        project_store=project_store,
        alert_store=alert_store or FakeAlertStore(),
        now_provider=lambda: NOW,
    )
    orchestrator.sessions = sessions
    return orchestrator


def test_alert_scan_creates_alerts_once() -> None:
    milestone = SimpleNamespace(
        id="m-1", project_id="atlas", name="Launch", status="in_progress",
        target_date=date(2026, 2, 20), percent_complete=50,
    )
    project_store = FakeProjectStore(
        [_row("atlas", updated_days=9), _row("beacon", status="paused", updated_days=40)],
        milestones=[(milestone, "Atlas")],
    )
    alert_store = FakeAlertStore()
    orchestrator = _orchestrator(project_store, alert_store=alert_store)

    first = asyncio.run(orchestrator.run_alert_scan())
    second = asyncio.run(orchestrator.run_alert_scan())

    assert first["success"] is True
    assert first["projects_scanned"] == 1
    assert first["alerts_created"] == 2
    assert second["alerts_created"] == 0
    assert [(alert.category, alert.level) for alert in alert_store.inserted] == [
        ("project_inactive", "info"),
        ("milestone_overdue", "critical"),
    ]
    assert all(session.closed for session in orchestrator.sessions)


def test_alert_scan_uses_github_enrichment_and_deploy_status() -> None:
    github = FakeGitHubClient(
        activity={"acme/atlas": ActivitySnapshot(last_commit_at=NOW, open_issues=0, ci_status="success")},
        deploy={"acme/atlas": DeployStatus(status="failed", timestamp="2026-03-15T09:00:00Z")},
    )
    alert_store = FakeAlertStore()
    orchestrator = _orchestrator(FakeProjectStore([_row("atlas", repo="acme/atlas")]), github, alert_store)

    stats = asyncio.run(orchestrator.run_alert_scan())

    assert stats["alerts_created"] == 1
    assert alert_store.inserted[0].category == "deploy_failed"
    assert github.opened == 1


def test_one_failing_repo_does_not_affect_others() -> None:
    github = FakeGitHubClient(
        activity={"acme/beacon": ActivitySnapshot(last_commit_at=NOW, open_issues=0, ci_status="success")},
        failing={"acme/atlas"},
    )
    orchestrator = _orchestrator(
        FakeProjectStore([_row("atlas", repo="acme/atlas"), _row("beacon", repo="acme/beacon")]),
        github,
    )

    scored = {item.project.id: item for item in asyncio.run(orchestrator.score_all_projects())}

    assert scored["atlas"].activity is None
    assert "Could not fetch commit data" in scored["atlas"].health.alerts
    assert scored["beacon"].health.score == 100


def test_github_client_not_opened_without_linked_repos() -> None:
    github = FakeGitHubClient()
    orchestrator = _orchestrator(FakeProjectStore([_row("atlas")]), github)

    asyncio.run(orchestrator.score_all_projects())

    assert github.opened == 0


def test_alert_scan_reports_failure() -> None:
    class BrokenStore(FakeProjectStore):
        def load_projects(self, _db):
            raise RuntimeError("database unavailable")

    orchestrator = _orchestrator(BrokenStore([]))

    stats = asyncio.run(orchestrator.run_alert_scan())

    assert stats["success"] is False
    assert "database unavailable" in stats["error"]
    assert orchestrator.sessions[0].rolled_back is True
    assert orchestrator.sessions[0].closed is True


def test_health_sync_stores_only_changed_scores() -> None:
    # No repo, https + domain, updated today: 18 + 25 + 20 + 10 + 5
    project_store = FakeProjectStore(
        [_row("atlas", health_score=78), _row("beacon", health_score=50), _row("comet", status="archived",
                                                                              health_score=50)]
    )
    orchestrator = _orchestrator(project_store)

    stats = asyncio.run(orchestrator.run_health_sync())

    assert stats["success"] is True
    assert stats["projects"] == 3
    assert stats["updated"] == 1
    assert stats["unchanged"] == 2
    assert project_store.saved_scores == {"beacon": 78}
    assert stats["changes"] == [{"project": "Beacon", "previous": 50, "current": 78}]


def test_build_insights_uses_recent_commits() -> None:
    github = FakeGitHubClient(
        activity={
            "acme/atlas": ActivitySnapshot(last_commit_at=NOW - timedelta(hours=1), ci_status="failure",
                                           activity_label="Hot"),
        }
    )
    orchestrator = _orchestrator(FakeProjectStore([_row("atlas", repo="acme/atlas")]), github)

    insights = asyncio.run(orchestrator.build_insights())

    assert [insight.id for insight in insights] == ["ci-failure-atlas", "hot-project-atlas"]


def test_run_job_rejects_unknown_job() -> None:
    orchestrator = _orchestrator(FakeProjectStore([]))

    with pytest.raises(ValueError):
        asyncio.run(orchestrator.run_job("reindex"))


def test_recent_commit_summaries_newest_first() -> None:
    github = FakeGitHubClient(
        activity={
            "acme/a": ActivitySnapshot(last_commit_at=NOW - timedelta(hours=5), last_commit_message="older"),
            "acme/b": ActivitySnapshot(last_commit_at=NOW - timedelta(hours=1), last_commit_message="newer"),
            "acme/c": ActivitySnapshot(last_commit_at=NOW - timedelta(days=3)),
        }
    )
    scored = asyncio.run(
        _orchestrator(
            FakeProjectStore([_row("a", repo="acme/a"), _row("b", repo="acme/b"), _row("c", repo="acme/c")]),
            github,
        ).score_all_projects()
    )

    commits = recent_commit_summaries(scored, since=NOW - timedelta(hours=24))

    assert [(commit.project_name, commit.message) for commit in commits] == [("B", "newer"), ("A", "older")]
