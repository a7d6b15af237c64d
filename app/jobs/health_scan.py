"""Scheduled entrypoints for alert scans and health score sync."""

from __future__ import annotations

from typing import Any, Sequence

from app.orchestrator import ALL_JOBS, JOB_ALERT_SCAN, HealthScanOrchestrator


def normalize_job_selector(jobs: str | Sequence[str] | None, *, default: Sequence[str] = (JOB_ALERT_SCAN,)) -> list[str]:
    """Normalize job selector input into deterministic job order."""
    if jobs is None:
        return list(default)

    if isinstance(jobs, str):
        requested = [part.strip() for part in jobs.split(",") if part.strip()]
    else:
        requested = [str(part).strip() for part in jobs if str(part).strip()]

    if not requested:
        return list(default)

    allowed = set(ALL_JOBS)
    deduped: list[str] = []
    seen: set[str] = set()
    for job in requested:
        if job not in allowed or job in seen:
            continue
        seen.add(job)
        deduped.append(job)
    return deduped or list(default)


async def run_alert_scan(*, orchestrator: HealthScanOrchestrator | None = None) -> dict[str, Any]:
    """Run one alert scan and report how many alerts were created."""
    job_orchestrator = orchestrator or HealthScanOrchestrator()
    return await job_orchestrator.run_alert_scan()


async def run_health_sync(*, orchestrator: HealthScanOrchestrator | None = None) -> dict[str, Any]:
    """Refresh stored health scores used as the degradation baseline."""
    job_orchestrator = orchestrator or HealthScanOrchestrator()
    return await job_orchestrator.run_health_sync()


async def run_jobs(
    jobs: str | Sequence[str] | None = None,
    *,
    orchestrator: HealthScanOrchestrator | None = None,
) -> dict[str, Any]:
    """Run the selected jobs in order; one job's failure does not stop the next."""
    job_orchestrator = orchestrator or HealthScanOrchestrator()
    results: dict[str, Any] = {}
    for job in normalize_job_selector(jobs):
        try:
            results[job] = await job_orchestrator.run_job(job)
        except Exception as exc:
            results[job] = {"success": False, "error": str(exc)}
    return {
        "success": all(result.get("success", False) for result in results.values()),
        "jobs": results,
    }
