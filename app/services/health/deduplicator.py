"""Deduplication gate between candidate alerts and the alert store"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol, Sequence

from app.services.health.types import CandidateAlert

logger = logging.getLogger(__name__)


class OpenAlertStore(Protocol):
    def list_open_keys(self, db: Any) -> list[tuple[str, Optional[str], Optional[str]]]: ...

    def insert_alerts(self, db: Any, candidates: Sequence[CandidateAlert]) -> int: ...


def alert_fingerprint(category: str, related_id: Optional[str], related_type: Optional[str]) -> str:
    """Composite key identifying one alert condition instance"""
    return f"{category}:{related_id or ''}:{related_type or ''}"


def candidate_fingerprint(candidate: CandidateAlert) -> str:
    return alert_fingerprint(candidate.category, candidate.related_id, candidate.related_type)


class AlertDeduplicator:
    """Keeps at most one open alert per (category, related entity)"""

    def __init__(self, store: OpenAlertStore):
        self.store = store

    @staticmethod
    def filter_new(
        candidates: Iterable[CandidateAlert],
        existing_fingerprints: set[str],
    ) -> list[CandidateAlert]:
        """
        Drop candidates that match an open alert or repeat within the batch

        Args:
            candidates: Candidate alerts in rule order
            existing_fingerprints: Fingerprints of unread/read alerts

        Returns:
            Candidates that should be inserted, order preserved
        """
        candidates = list(candidates)
        novel: list[CandidateAlert] = []
        seen_keys = set(existing_fingerprints)
        seen_rule_fingerprints: set[str] = set()

        for candidate in candidates:
            key = candidate_fingerprint(candidate)
            if key in seen_keys:
                logger.debug(f"Open alert already exists: {key}")
                continue
            if candidate.fingerprint in seen_rule_fingerprints:
                logger.debug(f"Duplicate in batch: {candidate.fingerprint}")
                continue

            novel.append(candidate)
            seen_keys.add(key)
            seen_rule_fingerprints.add(candidate.fingerprint)

        logger.info(f"Filtered {len(candidates)} candidate alerts -> {len(novel)} new")
        return novel

    def persist(self, db: Any, candidates: Sequence[CandidateAlert]) -> int:
        """
        Insert the candidates that are not already open

        Returns:
            Number of alert rows actually inserted
        """
        if not candidates:
            return 0

        existing = {
            alert_fingerprint(category, related_id, related_type)
            for category, related_id, related_type in self.store.list_open_keys(db)
        }
        to_insert = self.filter_new(candidates, existing)
        if not to_insert:
            return 0

        inserted = self.store.insert_alerts(db, to_insert)
        if inserted < len(to_insert):
            logger.warning(f"Inserted {inserted} of {len(to_insert)} new alerts")
        return inserted
