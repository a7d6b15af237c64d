"""Database models"""

from app.models.alert import OPEN_ALERT_STATUSES, Alert, AlertCategory, AlertLevel, AlertStatus
from app.models.journal_entry import JournalEntry
from app.models.milestone import Milestone, MilestoneStatus
from app.models.project import Project, ProjectPriority, ProjectStatus

__all__ = [
    "Alert",
    "AlertCategory",
    "AlertLevel",
    "AlertStatus",
    "OPEN_ALERT_STATUSES",
    "JournalEntry",
    "Milestone",
    "MilestoneStatus",
    "Project",
    "ProjectPriority",
    "ProjectStatus",
]
