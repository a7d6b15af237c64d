"""FastAPI application entry point"""

from datetime import UTC, datetime
import asyncio
import hmac
import json
import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import settings
from app.jobs.health_scan import run_jobs
from app.orchestrator import HealthScanOrchestrator
from app.schemas.alerts import (
    AlertCreateRequest,
    AlertListResponse,
    AlertOut,
    AlertStatusResponse,
    AlertStatusUpdate,
    InsightListResponse,
    InsightOut,
    ManualAlertResponse,
    ScanResponse,
    SkippedAlert,
)
from app.services.health.alert_store import AlertStatusError, AlertStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Project health scoring, alerting and insights for the command center",
    version=settings.APP_VERSION,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-API-KEY"],
)

# Global orchestrator instance
orchestrator = HealthScanOrchestrator()
alert_store = AlertStore()

# Last background health sync result (in-memory, for simple deployment)
last_stats: Dict[str, Any] = {}


def get_orchestrator() -> HealthScanOrchestrator:
    return orchestrator


def get_alert_store() -> AlertStore:
    return alert_store


def verify_api_key(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> None:
    """Require DASHBOARD_API_KEY when one is configured"""
    expected = settings.DASHBOARD_API_KEY
    if not expected:
        return

    token = None
    if authorization:
        token = authorization.strip()
        if token.lower().startswith("bearer "):
            token = token[len("bearer "):].strip()
    elif x_api_key:
        token = x_api_key.strip()

    if not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _now() -> datetime:
    return datetime.now(UTC)


async def read_alert_request(request: Request) -> Optional[AlertCreateRequest]:
    """Parse the POST body; an empty or unparsable body means "run a scan"."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.info("Alert POST body is not JSON, treating it as a scan trigger")
        return None
    if not isinstance(data, dict):
        return None
    try:
        return AlertCreateRequest.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False))


async def _scan_or_fail(scan_orchestrator: HealthScanOrchestrator) -> Dict[str, Any]:
    stats = await scan_orchestrator.run_alert_scan()
    if not stats.get("success"):
        raise HTTPException(status_code=500, detail=stats.get("error", "Alert scan failed"))
    return stats


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "alerts": "GET /api/alerts?status=active&limit=100&scan=false",
            "scan": "POST /api/alerts",
            "update_alerts": "PATCH /api/alerts",
            "insights": "GET /api/insights",
            "health_scores": "GET /api/health-scores",
            "health_sync": "POST /api/health-sync",
        },
    }


@app.get("/api/health")
async def health_check():
    """Liveness endpoint for serverless platforms"""
    return {
        "status": "healthy",
        "service": "command-center-health",
        "version": settings.APP_VERSION,
    }


@app.get("/api/alerts", response_model=AlertListResponse, dependencies=[Depends(verify_api_key)])
async def list_alerts(
    status: str = Query("active"),
    limit: int = Query(settings.ALERT_LIST_DEFAULT_LIMIT),
    scan: bool = Query(False),
    db: Session = Depends(get_db),
    store: AlertStore = Depends(get_alert_store),
    scan_orchestrator: HealthScanOrchestrator = Depends(get_orchestrator),
):
    """
    List alerts, newest first

    Query params:
        status: active (unread + read), all, unread, read or resolved
        limit: Max rows, clamped to ALERT_LIST_MAX_LIMIT
        scan: Run an alert scan before listing
    """
    if scan:
        await _scan_or_fail(scan_orchestrator)

    limit = max(1, min(limit, settings.ALERT_LIST_MAX_LIMIT))
    try:
        alerts = store.list_alerts(db, status=status, limit=limit)
    except AlertStatusError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return AlertListResponse(alerts=[AlertOut.model_validate(alert) for alert in alerts], timestamp=_now())


@app.post("/api/alerts", dependencies=[Depends(verify_api_key)])
async def create_alerts(
    payload: Optional[AlertCreateRequest] = Depends(read_alert_request),
    db: Session = Depends(get_db),
    store: AlertStore = Depends(get_alert_store),
    scan_orchestrator: HealthScanOrchestrator = Depends(get_orchestrator),
):
    """Run an alert scan (empty body) or create a manual alert (title + message)"""
    if payload is not None and payload.is_manual_alert:
        alert = store.create_manual_alert(
            db,
            title=payload.title,
            message=payload.message,
            level=payload.level,
            category=payload.category,
            related_id=payload.related_id,
            related_type=payload.related_type,
            action_required=payload.action_required,
        )
        logger.info(f"Manual alert created: {alert.id}")
        return ManualAlertResponse(success=True, alert=AlertOut.model_validate(alert))

    logger.info("Alert scan triggered")
    stats = await _scan_or_fail(scan_orchestrator)
    return ScanResponse(success=True, scanned=True, alerts_created=stats["alerts_created"], timestamp=_now())


@app.patch("/api/alerts", response_model=AlertStatusResponse, dependencies=[Depends(verify_api_key)])
async def update_alerts(
    payload: AlertStatusUpdate,
    db: Session = Depends(get_db),
    store: AlertStore = Depends(get_alert_store),
):
    """Mark alerts read or resolved. Body: { id | ids, status }"""
    ids = payload.target_ids()
    if not ids or not payload.status:
        raise HTTPException(status_code=400, detail="Missing id(s) and status")

    try:
        updated, skipped = store.update_status(db, ids, payload.status)
    except AlertStatusError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return AlertStatusResponse(
        success=True,
        updated=[AlertOut.model_validate(alert) for alert in updated],
        skipped=[SkippedAlert(**entry) for entry in skipped],
    )


@app.get("/api/insights", response_model=InsightListResponse, dependencies=[Depends(verify_api_key)])
async def list_insights(scan_orchestrator: HealthScanOrchestrator = Depends(get_orchestrator)):
    """Ranked advisory insights, recomputed on every call"""
    insights = await scan_orchestrator.build_insights()
    return InsightListResponse(insights=[InsightOut.from_insight(insight) for insight in insights], timestamp=_now())


@app.get("/api/health-scores", dependencies=[Depends(verify_api_key)])
async def list_health_scores(scan_orchestrator: HealthScanOrchestrator = Depends(get_orchestrator)):
    """Fresh health score breakdown for every project"""
    scored = await scan_orchestrator.score_all_projects()
    return {
        "projects": [
            {
                "project_id": item.project.id,
                "name": item.project.name,
                "previous_score": item.project.health_score,
                **item.health.as_dict(),
            }
            for item in scored
        ],
        "timestamp": _now(),
    }


@app.post("/api/health-sync", dependencies=[Depends(verify_api_key)])
async def health_sync(
    background_tasks: BackgroundTasks,
    scan_orchestrator: HealthScanOrchestrator = Depends(get_orchestrator),
):
    """Recalculate and store every project's health score in the background"""
    logger.info("Health sync triggered")

    async def run_sync():
        try:
            stats = await scan_orchestrator.run_health_sync()
            last_stats["health_sync"] = stats
            logger.info(f"Health sync completed: {stats.get('updated', 0)} projects updated")
        except Exception as e:
            logger.error(f"Health sync failed: {e}", exc_info=True)

    background_tasks.add_task(run_sync)
    return {
        "status": "started",
        "message": "Health sync started in background",
        "last_run": last_stats.get("health_sync"),
    }


# AWS Lambda handler
def lambda_handler(event: Dict[str, Any], context: Any):
    """
    AWS Lambda handler for scheduled events and HTTP requests

    Scheduled event format:
    {
        "source": "alert_scan" | "health_sync"
    }
    """
    if "source" in event:
        source = event["source"]
        logger.info(f"Scheduled run for source: {source}")
        try:
            result = asyncio.run(run_jobs(source, orchestrator=orchestrator))
            return {
                "statusCode": 200 if result["success"] else 500,
                "body": result,
            }
        except Exception as e:
            logger.error(f"Scheduled run failed: {e}", exc_info=True)
            return {
                "statusCode": 500,
                "body": f"Scheduled run failed: {str(e)}",
            }

    # Otherwise, handle as HTTP request
    from mangum import Mangum
    handler = Mangum(app)
    return handler(event, context)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
