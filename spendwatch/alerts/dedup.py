"""Deduplication gate for candidate alerts."""

from datetime import datetime
from enum import Enum
import logging

from spendwatch.alerts.base import CandidateAlert
from spendwatch.alerts.rules import AlertRule
from spendwatch.store.interfaces import NotificationStore

logger = logging.getLogger(__name__)


class DedupQueryFailure(Exception):
    """Raised when notification history could not be queried."""
    pass


class GateDecision(Enum):
    APPROVED = "approved"
    SUPPRESSED = "suppressed"
    QUERY_FAILED = "query_failed"


class DeduplicationGate:
    """
    Approves a candidate only if no notification of the same type and subject
    exists inside the type's window. Fails closed: a history query error
    suppresses the candidate.

    The check and the later insert are separate steps; the store's
    uniqueness constraint on the window bucket closes the race between them.
    """

    def __init__(self, store: NotificationStore, rules: dict):
        self.store = store
        self.rules = rules

    def _find_existing(self, rule: AlertRule, candidate: CandidateAlert, since: datetime) -> bool:
        try:
            existing = self.store.query_notifications(rule.alert_type.value, candidate.subject_key, since)
        except Exception as e:
            raise DedupQueryFailure(
                f"Could not query {rule.alert_type.value} history for {candidate.subject_key}: {e}"
            ) from e
        return len(existing) > 0

    def decide(self, candidate: CandidateAlert, now: datetime) -> GateDecision:
        rule = self.rules[candidate.alert_type]
        if not rule.gated:
            return GateDecision.APPROVED

        window = rule.window(now)
        try:
            if self._find_existing(rule, candidate, window.since):
                logger.debug(f"Suppressed {rule.alert_type.value} for {candidate.subject_key}: "
                             f"already notified since {window.since}")
                return GateDecision.SUPPRESSED
        except DedupQueryFailure as e:
            logger.error(f"{e}; suppressing")
            return GateDecision.QUERY_FAILED

        return GateDecision.APPROVED
