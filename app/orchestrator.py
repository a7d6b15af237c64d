"""Health scan orchestrator: loads entities, enriches them from GitHub, runs the scoring core."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Optional, Sequence

from app.config.database import SessionLocal
from app.config.settings import settings
from app.crawlers.github.client import GitHubActivityClient, sanitize_for_log, sanitize_log_extra
from app.services.health.alert_rules import generate_alerts
from app.services.health.alert_store import AlertStore
from app.services.health.deduplicator import AlertDeduplicator
from app.services.health.insights import generate_insights
from app.services.health.project_mapper import to_milestone_snapshot, to_project_snapshot
from app.services.health.project_store import ProjectStore
from app.services.health.scorer import HealthScorer
from app.services.health.timeutils import ensure_utc, utcnow
from app.services.health.types import (
    ActivitySnapshot,
    CommitSummary,
    DeployStatus,
    ProjectSnapshot,
    ScoredProject,
    SmartInsight,
)

logger = logging.getLogger(__name__)

JOB_ALERT_SCAN = "alert_scan"
JOB_HEALTH_SYNC = "health_sync"
ALL_JOBS = (JOB_ALERT_SCAN, JOB_HEALTH_SYNC)


class HealthScanOrchestrator:
    """Coordinates data loading, GitHub enrichment, scoring and alert persistence."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Any] = SessionLocal,
        github_client_factory: Callable[[], Any] = GitHubActivityClient,
        project_store: Any | None = None,
        alert_store: Any | None = None,
        now_provider: Callable[[], datetime] = utcnow,
        concurrency: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._github_client_factory = github_client_factory
        self._project_store = project_store or ProjectStore()
        self._alert_store = alert_store or AlertStore()
        self._now_provider = now_provider
        self._concurrency = max(1, concurrency or settings.GITHUB_CONCURRENCY)

    async def run_job(self, job: str) -> dict[str, Any]:
        runners = {
            JOB_ALERT_SCAN: self.run_alert_scan,
            JOB_HEALTH_SYNC: self.run_health_sync,
        }
        runner = runners.get(job)
        if runner is None:
            raise ValueError(f"Unknown job: {job}")
        return await runner()

    async def run_alert_scan(self) -> dict[str, Any]:
        """Score active projects, evaluate alert rules and insert new alerts."""
        now = self._now_provider()
        stats: dict[str, Any] = {
            "job": JOB_ALERT_SCAN,
            "started_at": now.isoformat(),
            "projects_scanned": 0,
            "candidates": 0,
            "alerts_created": 0,
        }
        logger.info("Alert scan started")

        db = self._session_factory()
        try:
            projects = [to_project_snapshot(row) for row in self._project_store.load_projects(db)]
            milestones = [
                to_milestone_snapshot(row, project_name)
                for row, project_name in self._project_store.load_milestones(db)
            ]
            journal = self._project_store.load_journal_timestamps(db, limit=settings.JOURNAL_LOOKBACK_LIMIT)

            active = [project for project in projects if project.status == "active"]
            scored = await self._score_projects(active, now=now, include_deploy_status=True)
            candidates = generate_alerts(scored, milestones, journal, now=now)

            created = AlertDeduplicator(self._alert_store).persist(db, candidates)

            stats.update(
                {
                    "success": True,
                    "projects_scanned": len(scored),
                    "candidates": len(candidates),
                    "alerts_created": created,
                }
            )
        except Exception as exc:
            db.rollback()
            sanitized_error = sanitize_for_log(str(exc), key="error")
            logger.exception("Alert scan failed", extra=sanitize_log_extra(error=sanitized_error))
            stats.update({"success": False, "error": sanitized_error})
        finally:
            db.close()

        completed_at = self._now_provider().isoformat()
        stats["completed_at"] = completed_at
        stats["timestamp"] = completed_at
        logger.info(
            "Alert scan completed",
            extra=sanitize_log_extra(
                success=stats["success"],
                projects=stats["projects_scanned"],
                candidates=stats["candidates"],
                created=stats["alerts_created"],
            ),
        )
        return stats

    async def run_health_sync(self) -> dict[str, Any]:
        """Recompute every project's score and store it as the next degradation baseline."""
        now = self._now_provider()
        stats: dict[str, Any] = {
            "job": JOB_HEALTH_SYNC,
            "started_at": now.isoformat(),
            "projects": 0,
            "updated": 0,
            "unchanged": 0,
            "changes": [],
        }

        db = self._session_factory()
        try:
            projects = [to_project_snapshot(row) for row in self._project_store.load_projects(db)]
            scored = await self._score_projects(projects, now=now, include_deploy_status=False)

            changed: dict[str, int] = {}
            for item in scored:
                previous = item.project.health_score
                if previous == item.health.score:
                    continue
                changed[item.project.id] = item.health.score
                stats["changes"].append(
                    {"project": item.project.name, "previous": previous, "current": item.health.score}
                )

            stats["projects"] = len(scored)
            stats["updated"] = self._project_store.update_health_scores(db, changed)
            stats["unchanged"] = len(scored) - len(changed)
            stats["success"] = True
        except Exception as exc:
            db.rollback()
            sanitized_error = sanitize_for_log(str(exc), key="error")
            logger.exception("Health sync failed", extra=sanitize_log_extra(error=sanitized_error))
            stats.update({"success": False, "error": sanitized_error})
        finally:
            db.close()

        stats["completed_at"] = self._now_provider().isoformat()
        logger.info(
            "Health sync completed",
            extra=sanitize_log_extra(success=stats["success"], projects=stats["projects"], updated=stats["updated"]),
        )
        return stats

    async def score_all_projects(self) -> list[ScoredProject]:
        """Fresh scores for every project without persisting anything."""
        return await self._score_all(now=self._now_provider())

    async def build_insights(self, *, limit: int | None = None) -> list[SmartInsight]:
        """Score every project and derive the advisory insight list."""
        now = self._now_provider()
        scored = await self._score_all(now=now)
        commits = recent_commit_summaries(
            scored,
            since=now - timedelta(hours=settings.RECENT_COMMIT_WINDOW_HOURS),
        )
        return generate_insights(scored, commits, now=now, limit=limit or settings.INSIGHT_LIMIT)

    async def _score_all(self, *, now: datetime) -> list[ScoredProject]:
        db = self._session_factory()
        try:
            projects = [to_project_snapshot(row) for row in self._project_store.load_projects(db)]
        finally:
            db.close()
        return await self._score_projects(projects, now=now, include_deploy_status=False)

    async def _score_projects(
        self,
        projects: Sequence[ProjectSnapshot],
        *,
        now: datetime,
        include_deploy_status: bool,
    ) -> list[ScoredProject]:
        enrichment = await self._enrich(projects, now=now, include_deploy_status=include_deploy_status)
        scored: list[ScoredProject] = []
        for project in projects:
            activity, deploy_status = enrichment.get(project.id, (None, None))
            scored.append(
                ScoredProject(
                    project=project,
                    health=HealthScorer.score(project, activity, now=now),
                    activity=activity,
                    deploy_status=deploy_status,
                )
            )
        return scored

    async def _enrich(
        self,
        projects: Sequence[ProjectSnapshot],
        *,
        now: datetime,
        include_deploy_status: bool,
    ) -> dict[str, tuple[Optional[ActivitySnapshot], Optional[DeployStatus]]]:
        """Fetch GitHub data per project; one project's failure never affects another."""
        linked = [project for project in projects if project.github_repo]
        if not linked:
            return {}

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _fetch(client: Any, project: ProjectSnapshot):
            async with semaphore:
                try:
                    if include_deploy_status:
                        activity, deploy_status = await asyncio.gather(
                            client.fetch_activity(project.github_repo, now=now),
                            client.fetch_deploy_status(project.github_repo),
                        )
                    else:
                        activity = await client.fetch_activity(project.github_repo, now=now)
                        deploy_status = None
                except Exception as exc:
                    logger.warning(
                        "GitHub enrichment failed for project",
                        extra=sanitize_log_extra(project=project.name, error=str(exc)),
                    )
                    return project.id, (None, None)
                return project.id, (activity, deploy_status)

        async with self._github_client_factory() as client:
            results = await asyncio.gather(*(_fetch(client, project) for project in linked))
        return dict(results)


def recent_commit_summaries(
    scored_projects: Sequence[ScoredProject],
    *,
    since: datetime,
) -> list[CommitSummary]:
    """Latest commit per project when it landed after `since`, newest first."""
    commits: list[CommitSummary] = []
    for scored in scored_projects:
        activity = scored.activity
        if activity is None or activity.last_commit_at is None:
            continue
        if ensure_utc(activity.last_commit_at) < ensure_utc(since):
            continue
        commits.append(
            CommitSummary(
                project_name=scored.project.name,
                date=activity.last_commit_at,
                message=activity.last_commit_message or "",
                repo=scored.project.github_repo,
            )
        )
    commits.sort(key=lambda commit: ensure_utc(commit.date), reverse=True)
    return commits
