"""Persists approved alerts and signals the delivery surface."""

from datetime import datetime
from typing import Callable, Optional
import logging

from spendwatch.alerts.base import CandidateAlert
from spendwatch.ledger.models import NotificationRecord
from spendwatch.store.interfaces import DuplicateNotification, NotificationStore

logger = logging.getLogger(__name__)

Listener = Callable[[str, list[NotificationRecord]], None]


class PersistenceFailure(Exception):
    """Raised when an approved alert could not be written."""
    pass


class NotificationEmitter:
    """Formats approved candidates from the rule table and writes them to the store."""

    def __init__(self, store: NotificationStore, rules: dict,
                 listeners: Optional[list[Listener]] = None):
        self.store = store
        self.rules = rules
        self.listeners: list[Listener] = list(listeners or [])

    def subscribe(self, listener: Listener) -> None:
        """Register a callback run with (user_id, new_records) after a cycle emits."""
        self.listeners.append(listener)

    def emit(self, user_id: str, candidate: CandidateAlert, now: datetime) -> Optional[NotificationRecord]:
        """
        Persist one approved candidate.

        Returns None when a concurrent cycle already inserted the same
        (type, subject, window bucket); raises PersistenceFailure on any
        other store error.
        """
        rule = self.rules[candidate.alert_type]
        window = rule.window(now)
        try:
            record = self.store.create_notification(
                user_id=user_id,
                alert_type=rule.alert_type.value,
                subject_key=candidate.subject_key,
                window_bucket=window.bucket,
                title=rule.title,
                message=rule.message(candidate.payload),
                payload=candidate.payload,
                created_at=now,
            )
        except DuplicateNotification as e:
            logger.info(f"Dropped racing duplicate: {e}")
            return None
        except Exception as e:
            raise PersistenceFailure(
                f"Failed to save {rule.alert_type.value} for {candidate.subject_key}: {e}"
            ) from e

        logger.info(f"Notified {user_id}: {record.title} ({candidate.subject_key})")
        return record

    def notify_listeners(self, user_id: str, records: list[NotificationRecord]) -> None:
        """Tell the delivery surface that new notifications exist."""
        for listener in self.listeners:
            try:
                listener(user_id, records)
            except Exception as e:
                logger.error(f"Notification listener {listener!r} failed: {e}")
