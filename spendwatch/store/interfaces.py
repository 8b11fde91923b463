"""Read/write boundaries the alert pipeline depends on."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from spendwatch.ledger.models import (
    Budget, ExpenseRecord, NotificationRecord, SavingsGoal, Subscription, WalletSnapshot,
)


class DataUnavailable(Exception):
    """Raised when the ledger could not be read for an evaluation cycle."""
    pass


class NotificationStoreError(Exception):
    """Raised when the notification store could not be read or written."""
    pass


class DuplicateNotification(NotificationStoreError):
    """Raised when a notification for the same (type, subject, window bucket) already exists."""

    def __init__(self, alert_type: str, subject_key: str, window_bucket: str):
        self.alert_type = alert_type
        self.subject_key = subject_key
        self.window_bucket = window_bucket
        super().__init__(f"{alert_type} already recorded for {subject_key} in {window_bucket}")


class LedgerReader(ABC):
    """Read-only access to one user's financial records."""

    @abstractmethod
    def get_expenses(self, user_id: str, period_start: datetime,
                     period_end: datetime) -> list[ExpenseRecord]:
        pass

    @abstractmethod
    def get_budgets(self, user_id: str, month: int, year: int) -> list[Budget]:
        pass

    @abstractmethod
    def get_subscriptions(self, user_id: str) -> list[Subscription]:
        pass

    @abstractmethod
    def get_wallet(self, user_id: str) -> Optional[WalletSnapshot]:
        pass

    @abstractmethod
    def get_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        pass


class UserDirectory(ABC):
    """Optional reader capability used by sweeps over every user."""

    @abstractmethod
    def get_user_ids(self) -> list[str]:
        """List users with ledger records."""
        pass


class NotificationStore(ABC):
    """
    Notification history plus the goal completion flag.

    Implementations that set ``enforces_uniqueness`` must reject a second
    notification with the same (type, subject_key, window_bucket) by raising
    DuplicateNotification. Without it, concurrent cycles can double-fire.
    """

    enforces_uniqueness: bool = False

    @abstractmethod
    def query_notifications(self, alert_type: str, subject_key: str,
                            since: datetime) -> list[NotificationRecord]:
        pass

    @abstractmethod
    def create_notification(self, user_id: str, alert_type: str, subject_key: str,
                            window_bucket: str, title: str, message: str,
                            payload: Optional[dict[str, Any]], created_at: datetime) -> NotificationRecord:
        pass

    @abstractmethod
    def mark_goal_completed(self, goal_id: str) -> bool:
        """Flip is_completed to True. Returns True only for the call that performed the flip."""
        pass
