"""Health scoring, alert rules and insight generation."""

from app.services.health.alert_rules import generate_alerts
from app.services.health.deduplicator import AlertDeduplicator, alert_fingerprint
from app.services.health.insights import generate_insights
from app.services.health.scorer import HealthScorer, calculate_project_health, classify_tier

__all__ = [
    "AlertDeduplicator",
    "HealthScorer",
    "alert_fingerprint",
    "calculate_project_health",
    "classify_tier",
    "generate_alerts",
    "generate_insights",
]
