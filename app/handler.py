"""
AWS Lambda entrypoint for scheduled health scans

Pure event-driven Lambda handler triggered by EventBridge Scheduler.
No FastAPI or HTTP server logic - just direct function invocation.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from app.jobs.health_scan import run_jobs
from app.orchestrator import HealthScanOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Instantiate orchestrator once per Lambda execution environment
orchestrator = HealthScanOrchestrator()


def lambda_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entrypoint for the health engine.

    Expected event payloads:
    - {"source": "alert_scan"}
    - {"source": "health_sync"}
    - {"source": "health_sync,alert_scan"}

    Default is "alert_scan" if no source is provided.

    Args:
        event: Event payload from EventBridge or other AWS service
        context: Lambda context object

    Returns:
        Dictionary with statusCode, source, and result
    """
    source = (event or {}).get("source", "alert_scan")
    logger.info(f"Lambda invoked with source: {source}")

    try:
        result = asyncio.run(run_jobs(source, orchestrator=orchestrator))
        logger.info(f"Health jobs finished: success={result['success']}")
        return {
            "statusCode": 200 if result["success"] else 500,
            "source": source,
            "result": result,
        }
    except Exception as e:
        logger.error(f"Lambda execution failed: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "source": source,
            "error": str(e),
        }
