"""Alert persistence: open-key reads, inserts, listing and lifecycle updates."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.models.alert import OPEN_ALERT_STATUSES, Alert, AlertCategory, AlertLevel, AlertStatus
from app.services.health.project_mapper import candidate_to_row
from app.services.health.timeutils import utcnow
from app.services.health.types import CandidateAlert

logger = logging.getLogger(__name__)

STATUS_FILTER_ACTIVE = "active"
STATUS_FILTER_ALL = "all"
STATUS_FILTERS = (STATUS_FILTER_ACTIVE, STATUS_FILTER_ALL, *(status.value for status in AlertStatus))

# resolved is terminal
_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AlertStatus.UNREAD.value: frozenset({AlertStatus.READ.value, AlertStatus.RESOLVED.value}),
    AlertStatus.READ.value: frozenset({AlertStatus.RESOLVED.value}),
    AlertStatus.RESOLVED.value: frozenset(),
}


class AlertStatusError(ValueError):
    """Raised for unknown status filters or update targets."""


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


class AlertStore:
    """SQLAlchemy-backed alert table access."""

    def list_open_keys(self, db: Any) -> list[tuple[str, Optional[str], Optional[str]]]:
        rows = (
            db.query(Alert.category, Alert.related_id, Alert.related_type)
            .filter(Alert.status.in_(OPEN_ALERT_STATUSES))
            .all()
        )
        return [(category, related_id, related_type) for category, related_id, related_type in rows]

    def insert_alerts(self, db: Any, candidates: Sequence[CandidateAlert]) -> int:
        """Insert rows one commit at a time so a failed row never undoes the others."""
        inserted = 0
        for candidate in candidates:
            try:
                db.add(Alert(**candidate_to_row(candidate)))
                db.commit()
                inserted += 1
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning(
                    "Alert insert failed",
                    extra={"fingerprint": candidate.fingerprint, "error": str(exc)},
                )
        return inserted

    def list_alerts(self, db: Any, *, status: str = STATUS_FILTER_ACTIVE, limit: int = 100) -> list[Alert]:
        """Newest-first listing; `active` means unread or read."""
        if status not in STATUS_FILTERS:
            raise AlertStatusError(f"Unknown status filter: {status}")

        query = db.query(Alert)
        if status == STATUS_FILTER_ACTIVE:
            query = query.filter(Alert.status.in_(OPEN_ALERT_STATUSES))
        elif status != STATUS_FILTER_ALL:
            query = query.filter(Alert.status == status)
        return query.order_by(Alert.created_at.desc()).limit(limit).all()

    def create_manual_alert(
        self,
        db: Any,
        *,
        title: str,
        message: str,
        level: Optional[str] = None,
        category: Optional[str] = None,
        related_id: Optional[str] = None,
        related_type: Optional[str] = None,
        action_required: Optional[str] = None,
    ) -> Alert:
        alert = Alert(
            level=level or AlertLevel.INFO.value,
            category=category or AlertCategory.MANUAL.value,
            title=title,
            message=message,
            related_id=related_id,
            related_type=related_type,
            action_required=action_required,
            status=AlertStatus.UNREAD.value,
        )
        db.add(alert)
        db.commit()
        db.refresh(alert)
        return alert

    def update_status(
        self,
        db: Any,
        ids: Sequence[str],
        status: str,
        *,
        now: Optional[datetime] = None,
    ) -> tuple[list[Alert], list[dict[str, str]]]:
        """
        Move alerts to `read` or `resolved`

        Returns:
            (updated rows, skipped entries with id and reason)
        """
        if status not in (AlertStatus.READ.value, AlertStatus.RESOLVED.value):
            raise AlertStatusError(f"Unsupported target status: {status}")

        now = now or utcnow()
        rows = {alert.id: alert for alert in db.query(Alert).filter(Alert.id.in_(list(ids))).all()}

        updated: list[Alert] = []
        skipped: list[dict[str, str]] = []
        for alert_id in ids:
            alert = rows.get(alert_id)
            if alert is None:
                skipped.append({"id": alert_id, "reason": "not found"})
                continue
            if not can_transition(alert.status, status):
                skipped.append({"id": alert_id, "reason": f"cannot move from {alert.status} to {status}"})
                continue

            alert.status = status
            if status == AlertStatus.READ.value:
                alert.read_at = now
            else:
                alert.resolved_at = now
            updated.append(alert)

        db.commit()
        for alert in updated:
            db.refresh(alert)
        return updated, skipped
