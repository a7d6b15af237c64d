"""Alert and insight request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.services.health.types import SmartInsight


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    level: str
    category: str
    title: str
    message: str
    related_id: str | None = None
    related_type: str | None = None
    action_required: str | None = None
    status: str
    read_at: datetime | None = None
    resolved_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime


class AlertListResponse(BaseModel):
    alerts: list[AlertOut]
    timestamp: datetime


class AlertCreateRequest(BaseModel):
    """POST body; without title and message it is a scan trigger."""

    title: str | None = None
    message: str | None = None
    level: Literal["info", "warning", "critical"] | None = None
    category: str | None = None
    related_id: str | None = None
    related_type: str | None = None
    action_required: str | None = None

    @property
    def is_manual_alert(self) -> bool:
        return bool(self.title and self.message)


class ScanResponse(BaseModel):
    success: bool
    scanned: bool = True
    alerts_created: int
    timestamp: datetime


class ManualAlertResponse(BaseModel):
    success: bool
    alert: AlertOut


class AlertStatusUpdate(BaseModel):
    id: str | None = None
    ids: list[str] = Field(default_factory=list)
    status: Literal["read", "resolved"] | None = None

    def target_ids(self) -> list[str]:
        if self.ids:
            return list(dict.fromkeys(self.ids))
        return [self.id] if self.id else []


class SkippedAlert(BaseModel):
    id: str
    reason: str


class AlertStatusResponse(BaseModel):
    success: bool
    updated: list[AlertOut]
    skipped: list[SkippedAlert] = Field(default_factory=list)


class InsightOut(BaseModel):
    id: str
    type: str
    title: str
    description: str
    priority: str
    project_id: str | None = None
    project_name: str | None = None
    action_label: str | None = None
    action_url: str | None = None

    @classmethod
    def from_insight(cls, insight: SmartInsight) -> "InsightOut":
        return cls(
            id=insight.id,
            type=insight.type,
            title=insight.title,
            description=insight.description,
            priority=insight.priority,
            project_id=insight.project_id,
            project_name=insight.project_name,
            action_label=insight.action_label,
            action_url=insight.action_url,
        )


class InsightListResponse(BaseModel):
    insights: list[InsightOut]
    timestamp: datetime
