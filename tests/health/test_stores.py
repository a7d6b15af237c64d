from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config.database import Base
from app.models import Alert, JournalEntry, Milestone, Project
from app.services.health.alert_store import AlertStatusError, AlertStore, can_transition
from app.services.health.project_store import ProjectStore
from app.services.health.types import CandidateAlert

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _candidate(related_id: str = "p-1", category: str = "project_inactive") -> CandidateAlert:
    return CandidateAlert(
        level="warning",
        category=category,
        title=f"{related_id} inactive for 20d",
        message="No journal entries or updates in 20 days",
        related_id=related_id,
        related_type="project",
        fingerprint=f"inactive:{related_id}",
    )


def _alert(db, *, status: str = "unread", created_at: datetime = NOW, related_id: str = "p-1") -> Alert:
    alert = Alert(
        level="info",
        category="project_inactive",
        title="Atlas quiet for 8d",
        message="No activity in the last week",
        related_id=related_id,
        related_type="project",
        status=status,
        created_at=created_at,
    )
    db.add(alert)
    db.commit()
    return alert


def test_insert_alerts_and_open_keys(db) -> None:
    store = AlertStore()

    inserted = store.insert_alerts(db, [_candidate("p-1"), _candidate("p-2")])

    assert inserted == 2
    assert sorted(store.list_open_keys(db)) == [
        ("project_inactive", "p-1", "project"),
        ("project_inactive", "p-2", "project"),
    ]
    assert {alert.status for alert in db.query(Alert).all()} == {"unread"}


def test_open_condition_index_rejects_only_the_duplicate_row(db) -> None:
    store = AlertStore()
    _alert(db, related_id="p-1")

    inserted = store.insert_alerts(db, [_candidate("p-1"), _candidate("p-2")])

    assert inserted == 1
    assert db.query(Alert).count() == 2


def test_resolved_alerts_are_not_open(db) -> None:
    store = AlertStore()
    _alert(db, status="resolved")

    assert store.list_open_keys(db) == []
    assert store.insert_alerts(db, [_candidate("p-1")]) == 1


def test_list_alerts_filters_and_orders(db) -> None:
    store = AlertStore()
    _alert(db, status="resolved", created_at=NOW - timedelta(hours=3), related_id="p-1")
    _alert(db, status="read", created_at=NOW - timedelta(hours=2), related_id="p-2")
    _alert(db, status="unread", created_at=NOW - timedelta(hours=1), related_id="p-3")

    active = store.list_alerts(db)
    everything = store.list_alerts(db, status="all")
    resolved = store.list_alerts(db, status="resolved")
    limited = store.list_alerts(db, status="all", limit=1)

    assert [alert.related_id for alert in active] == ["p-3", "p-2"]
    assert [alert.related_id for alert in everything] == ["p-3", "p-2", "p-1"]
    assert [alert.related_id for alert in resolved] == ["p-1"]
    assert [alert.related_id for alert in limited] == ["p-3"]

    with pytest.raises(AlertStatusError):
        store.list_alerts(db, status="bogus")


def test_create_manual_alert_defaults(db) -> None:
    alert = AlertStore().create_manual_alert(db, title="Renew domain", message="Expires next week")

    assert alert.id
    assert (alert.level, alert.category, alert.status) == ("info", "manual", "unread")


def test_update_status_applies_lifecycle(db) -> None:
    store = AlertStore()
    unread = _alert(db, related_id="p-1")
    resolved = _alert(db, status="resolved", related_id="p-2")

    updated, skipped = store.update_status(db, [unread.id, resolved.id, "missing"], "read", now=NOW)

    assert [alert.id for alert in updated] == [unread.id]
    assert updated[0].status == "read"
    assert updated[0].read_at is not None
    assert skipped == [
        {"id": resolved.id, "reason": "cannot move from resolved to read"},
        {"id": "missing", "reason": "not found"},
    ]

    updated, skipped = store.update_status(db, [unread.id], "resolved", now=NOW)

    assert updated[0].status == "resolved"
    assert updated[0].resolved_at is not None
    assert skipped == []


def test_update_status_rejects_unread_target(db) -> None:
    with pytest.raises(AlertStatusError):
        AlertStore().update_status(db, ["a-1"], "unread")


def test_can_transition() -> None:
    assert can_transition("unread", "read")
    assert can_transition("unread", "resolved")
    assert can_transition("read", "resolved")
    assert not can_transition("read", "read")
    assert not can_transition("read", "unread")
    assert not can_transition("resolved", "read")


def test_project_store_reads(db) -> None:
    older = Project(id="p-1", name="Atlas", status="active", updated_at=NOW - timedelta(days=3))
    newer = Project(id="p-2", name="Beacon", status="paused", updated_at=NOW - timedelta(days=1))
    db.add_all([older, newer])
    db.add_all(
        [
            Milestone(id="m-2", project_id="p-1", name="Beta", target_date=date(2026, 4, 1)),
            Milestone(id="m-1", project_id="p-2", name="Alpha", target_date=date(2026, 3, 1)),
            JournalEntry(project_id="p-1", content="shipped", created_at=NOW - timedelta(days=2)),
            JournalEntry(project_id="p-1", content="planned", created_at=NOW - timedelta(days=5)),
            JournalEntry(project_id="p-2", content="paused", created_at=NOW - timedelta(days=4)),
        ]
    )
    db.commit()
    store = ProjectStore()

    projects = store.load_projects(db)
    milestones = store.load_milestones(db)
    journal = store.load_journal_timestamps(db, limit=2)

    assert [project.id for project in projects] == ["p-2", "p-1"]
    assert [(milestone.id, name) for milestone, name in milestones] == [("m-1", "Beacon"), ("m-2", "Atlas")]
    assert list(journal) == ["p-1", "p-2"]
    assert len(journal["p-1"]) == 1
    assert all(value.tzinfo is not None for values in journal.values() for value in values)


def test_update_health_scores_keeps_updated_at(db) -> None:
    stamp = NOW - timedelta(days=10)
    db.add(Project(id="p-1", name="Atlas", status="active", updated_at=stamp))
    db.commit()

    updated = ProjectStore().update_health_scores(db, {"p-1": 64})
    db.expire_all()
    project = db.get(Project, "p-1")

    assert updated == 1
    assert project.health_score == 64
    assert project.updated_at.replace(tzinfo=UTC) == stamp
    assert ProjectStore().update_health_scores(db, {}) == 0
