"""Pytest fixtures for spendwatch tests."""

import pytest
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

from spendwatch.alerts import AlertPipeline, Snapshot
from spendwatch.ledger.aggregation import summarize_budgets
from spendwatch.ledger.models import Budget, NotificationRecord
from spendwatch.store.database import Database
from spendwatch.store.interfaces import (
    DuplicateNotification, LedgerReader, NotificationStore, NotificationStoreError,
)
from spendwatch.utils.config import AppConfig, PipelineConfig


NOW = datetime(2026, 10, 19, 12, 0, 0)


class FakeClock:
    """Settable clock so dedup windows can be crossed deterministically."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FlakyReader(LedgerReader):
    """Delegates to a real reader but raises from the named methods."""

    def __init__(self, inner: LedgerReader, fail_on: tuple = ()):
        self.inner = inner
        self.fail_on = set(fail_on)

    def _call(self, name, *args):
        if name in self.fail_on:
            raise ConnectionError(f"{name} unavailable")
        return getattr(self.inner, name)(*args)

    def get_expenses(self, user_id, period_start, period_end):
        return self._call("get_expenses", user_id, period_start, period_end)

    def get_budgets(self, user_id, month, year):
        return self._call("get_budgets", user_id, month, year)

    def get_subscriptions(self, user_id):
        return self._call("get_subscriptions", user_id)

    def get_wallet(self, user_id):
        return self._call("get_wallet", user_id)

    def get_savings_goals(self, user_id):
        return self._call("get_savings_goals", user_id)


class FlakyStore(NotificationStore):
    """Delegates to a real store; can fail queries or inserts for chosen alert types."""

    enforces_uniqueness = True

    def __init__(self, inner: NotificationStore, fail_query: bool = False,
                 fail_create_types: tuple = ()):
        self.inner = inner
        self.fail_query = fail_query
        self.fail_create_types = set(fail_create_types)

    def query_notifications(self, alert_type, subject_key, since):
        if self.fail_query:
            raise NotificationStoreError("history unavailable")
        return self.inner.query_notifications(alert_type, subject_key, since)

    def create_notification(self, user_id, alert_type, subject_key, window_bucket,
                            title, message, payload, created_at):
        if alert_type in self.fail_create_types:
            raise NotificationStoreError("disk full")
        return self.inner.create_notification(user_id, alert_type, subject_key, window_bucket,
                                              title, message, payload, created_at)

    def mark_goal_completed(self, goal_id):
        return self.inner.mark_goal_completed(goal_id)


class InMemoryNotificationStore(NotificationStore):
    """Notification history kept in a list, optionally without a uniqueness guarantee."""

    def __init__(self, enforces_uniqueness: bool = False):
        self.enforces_uniqueness = enforces_uniqueness
        self.records: list[NotificationRecord] = []
        self.completed_goals: set[str] = set()

    def query_notifications(self, alert_type, subject_key, since):
        return [
            r for r in self.records
            if r.type == alert_type and r.subject_key == subject_key
            and (since is None or r.created_at >= since)
        ]

    def create_notification(self, user_id, alert_type, subject_key, window_bucket,
                            title, message, payload, created_at):
        if self.enforces_uniqueness and any(
            r.type == alert_type and r.subject_key == subject_key and r.window_bucket == window_bucket
            for r in self.records
        ):
            raise DuplicateNotification(alert_type, subject_key, window_bucket)
        record = NotificationRecord(
            id=len(self.records) + 1, user_id=user_id, type=alert_type, subject_key=subject_key,
            window_bucket=window_bucket, title=title, message=message, payload=payload,
            created_at=created_at,
        )
        self.records.append(record)
        return record

    def mark_goal_completed(self, goal_id):
        if goal_id in self.completed_goals:
            return False
        self.completed_goals.add(goal_id)
        return True


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db = Database(db_path)
        yield db


@pytest.fixture
def clock():
    """Clock fixed at mid-day on a known date."""
    return FakeClock(NOW)


@pytest.fixture
def sample_user_id():
    """Sample user ID for testing."""
    return "user-123"


@pytest.fixture
def app_config():
    """Configuration with a generous evaluator timeout."""
    return AppConfig(pipeline=PipelineConfig(evaluator_timeout_seconds=10.0))


@pytest.fixture
def pipeline(temp_db, clock, app_config):
    """Pipeline reading from and writing to the temporary database."""
    with AlertPipeline(temp_db, temp_db, config=app_config, clock=clock) as pipeline:
        yield pipeline


@pytest.fixture
def make_budget(sample_user_id):
    """Factory for in-memory budgets."""
    def factory(**overrides):
        data = {
            'id': 'budget-food',
            'user_id': sample_user_id,
            'category': 'Food',
            'monthly_limit': 200.0,
            'alert_threshold': 80.0,
            'enable_alerts': True,
            'month': NOW.month,
            'year': NOW.year,
        }
        data.update(overrides)
        return Budget(**data)
    return factory


@pytest.fixture
def make_snapshot(sample_user_id):
    """Factory for snapshots built from in-memory records."""
    def factory(expenses=(), budgets=(), subscriptions=(), wallet=None, savings_goals=(), now=NOW):
        return Snapshot(
            user_id=sample_user_id,
            month=now.month,
            year=now.year,
            now=now,
            budget_summary=summarize_budgets(expenses, budgets),
            subscriptions=list(subscriptions),
            wallet=wallet,
            savings_goals=list(savings_goals),
        )
    return factory
