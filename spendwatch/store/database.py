"""SQLite-backed ledger and notification store."""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from spendwatch.ledger.models import (
    Budget, ExpenseRecord, NotificationRecord, SavingsGoal, Subscription, WalletSnapshot,
)
from spendwatch.store.interfaces import (
    DuplicateNotification, LedgerReader, NotificationStore, NotificationStoreError, UserDirectory,
)
from spendwatch.utils.config import default_db_path
from spendwatch.utils.formatters import to_timestamp


SCHEMA = """
-- Monthly category budgets
CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    category TEXT NOT NULL,
    monthly_limit REAL NOT NULL CHECK (monthly_limit > 0),
    alert_threshold REAL NOT NULL DEFAULT 80,
    enable_alerts INTEGER NOT NULL DEFAULT 1,
    month INTEGER NOT NULL,
    year INTEGER NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    is_active INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP,
    UNIQUE (user_id, category, month, year)
);

-- Expenses
CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    category TEXT,
    amount REAL NOT NULL CHECK (amount > 0),
    date TEXT NOT NULL
);

-- Subscriptions
CREATE TABLE IF NOT EXISTS subscriptions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    price REAL NOT NULL,
    next_billing_date TEXT NOT NULL
);

-- One wallet per user
CREATE TABLE IF NOT EXISTS wallets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL UNIQUE,
    balance REAL NOT NULL DEFAULT 0,
    monthly_budget REAL,
    currency TEXT NOT NULL DEFAULT 'USD'
);

-- Savings goals
CREATE TABLE IF NOT EXISTS savings_goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    current_amount REAL NOT NULL DEFAULT 0,
    target_amount REAL,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_completed INTEGER NOT NULL DEFAULT 0,
    completed_at TIMESTAMP
);

-- Notification history
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    subject_key TEXT NOT NULL,
    window_bucket TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    payload TEXT,
    created_at TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    UNIQUE (type, subject_key, window_bucket)
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses(user_id, date);
CREATE INDEX IF NOT EXISTS idx_budgets_user_period ON budgets(user_id, year, month);
CREATE INDEX IF NOT EXISTS idx_notifications_subject ON notifications(type, subject_key, created_at);
CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read, created_at);
"""


def _new_id() -> str:
    return uuid.uuid4().hex


class Database(LedgerReader, UserDirectory, NotificationStore):
    """SQLite database manager. Each call opens its own connection, so one instance can be shared across threads."""

    enforces_uniqueness = True

    def __init__(self, db_path: Optional[Path] = None):
        if db_path is None:
            db_path = default_db_path()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with optimizations."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Budget operations
    def upsert_budget(self, user_id: str, category: str, monthly_limit: float, month: int, year: int,
                      alert_threshold: float = 80.0, enable_alerts: bool = True,
                      currency: str = "USD", budget_id: Optional[str] = None) -> Budget:
        """Create or update the budget for (user, category, month, year)."""
        if monthly_limit <= 0:
            raise ValueError("Budget monthly limit must be positive")
        category = category.strip()
        if not category:
            raise ValueError("Budget category is required")

        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO budgets (id, user_id, category, monthly_limit, alert_threshold, enable_alerts, month, year, currency, is_active, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                ON CONFLICT(user_id, category, month, year) DO UPDATE SET
                    monthly_limit = excluded.monthly_limit,
                    alert_threshold = excluded.alert_threshold,
                    enable_alerts = excluded.enable_alerts,
                    currency = excluded.currency,
                    is_active = 1,
                    updated_at = excluded.updated_at
            """, (budget_id or _new_id(), user_id, category, monthly_limit, alert_threshold,
                  int(enable_alerts), month, year, currency, to_timestamp(datetime.now())))
            row = conn.execute(
                "SELECT * FROM budgets WHERE user_id = ? AND category = ? AND month = ? AND year = ?",
                (user_id, category, month, year)
            ).fetchone()
        return Budget(**dict(row))

    def deactivate_budget(self, budget_id: str) -> None:
        """Hide a budget from evaluation without deleting it."""
        with self._get_connection() as conn:
            conn.execute("UPDATE budgets SET is_active = 0 WHERE id = ?", (budget_id,))

    def get_budgets(self, user_id: str, month: int, year: int) -> list[Budget]:
        """Get active budgets for a month."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM budgets
                WHERE user_id = ? AND month = ? AND year = ? AND is_active = 1
                ORDER BY category
            """, (user_id, month, year)).fetchall()
        return [Budget(**dict(row)) for row in rows]

    # Expense operations
    def add_expense(self, user_id: str, amount: float, date: datetime, category: Optional[str] = None,
                    name: str = "", expense_id: Optional[str] = None) -> ExpenseRecord:
        """Record an expense. Blank categories are stored as NULL."""
        expense = ExpenseRecord(
            id=expense_id or _new_id(),
            user_id=user_id,
            name=name,
            category=(category or "").strip() or None,
            amount=amount,
            date=date,
        )
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO expenses (id, user_id, name, category, amount, date)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (expense.id, user_id, expense.name, expense.category, expense.amount,
                  to_timestamp(expense.date)))
        return expense

    def get_expenses(self, user_id: str, period_start: datetime,
                     period_end: datetime) -> list[ExpenseRecord]:
        """Get expenses dated within [period_start, period_end]."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM expenses
                WHERE user_id = ? AND date BETWEEN ? AND ?
                ORDER BY date
            """, (user_id, to_timestamp(period_start), to_timestamp(period_end))).fetchall()
        return [ExpenseRecord(**dict(row)) for row in rows]

    # Subscription operations
    def upsert_subscription(self, user_id: str, name: str, price: float, next_billing_date: datetime,
                            subscription_id: Optional[str] = None) -> Subscription:
        """Insert or update a subscription."""
        subscription = Subscription(
            id=subscription_id or _new_id(),
            user_id=user_id,
            name=name,
            price=price,
            next_billing_date=next_billing_date,
        )
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO subscriptions (id, user_id, name, price, next_billing_date)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    price = excluded.price,
                    next_billing_date = excluded.next_billing_date
            """, (subscription.id, user_id, name, price, to_timestamp(next_billing_date)))
        return subscription

    def get_subscriptions(self, user_id: str) -> list[Subscription]:
        """Get all subscriptions for a user."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY next_billing_date",
                (user_id,)
            ).fetchall()
        return [Subscription(**dict(row)) for row in rows]

    # Wallet operations
    def upsert_wallet(self, user_id: str, balance: float, monthly_budget: Optional[float] = None,
                      currency: str = "USD", wallet_id: Optional[str] = None) -> WalletSnapshot:
        """Insert or update the user's wallet."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO wallets (id, user_id, balance, monthly_budget, currency)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    balance = excluded.balance,
                    monthly_budget = excluded.monthly_budget,
                    currency = excluded.currency
            """, (wallet_id or _new_id(), user_id, balance, monthly_budget, currency))
            row = conn.execute("SELECT * FROM wallets WHERE user_id = ?", (user_id,)).fetchone()
        return WalletSnapshot(**dict(row))

    def get_wallet(self, user_id: str) -> Optional[WalletSnapshot]:
        """Get the user's wallet, if any."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM wallets WHERE user_id = ?", (user_id,)).fetchone()
        return WalletSnapshot(**dict(row)) if row else None

    # Savings goal operations
    def upsert_savings_goal(self, user_id: str, name: str, current_amount: float = 0.0,
                            target_amount: Optional[float] = None, is_active: bool = True,
                            goal_id: Optional[str] = None) -> SavingsGoal:
        """Insert or update a savings goal. Never clears is_completed."""
        goal_id = goal_id or _new_id()
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO savings_goals (id, user_id, name, current_amount, target_amount, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    current_amount = excluded.current_amount,
                    target_amount = excluded.target_amount,
                    is_active = excluded.is_active
            """, (goal_id, user_id, name, current_amount, target_amount, int(is_active)))
            row = conn.execute("SELECT * FROM savings_goals WHERE id = ?", (goal_id,)).fetchone()
        return SavingsGoal(**dict(row))

    def get_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        """Get all savings goals for a user."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM savings_goals WHERE user_id = ? ORDER BY name",
                (user_id,)
            ).fetchall()
        return [SavingsGoal(**dict(row)) for row in rows]

    def mark_goal_completed(self, goal_id: str) -> bool:
        """Compare-and-set the completion flag. Only the caller that flips it gets True."""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                UPDATE savings_goals SET is_completed = 1, completed_at = ?
                WHERE id = ? AND is_completed = 0
            """, (to_timestamp(datetime.now()), goal_id))
            return cursor.rowcount == 1

    def get_user_ids(self) -> list[str]:
        """Get every user that owns ledger records."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT user_id FROM budgets
                UNION SELECT user_id FROM expenses
                UNION SELECT user_id FROM subscriptions
                UNION SELECT user_id FROM wallets
                UNION SELECT user_id FROM savings_goals
                ORDER BY user_id
            """).fetchall()
        return [row['user_id'] for row in rows]

    # Notification operations
    @staticmethod
    def _to_notification(row: sqlite3.Row) -> NotificationRecord:
        data = dict(row)
        data['payload'] = json.loads(data['payload']) if data['payload'] else {}
        return NotificationRecord(**data)

    def query_notifications(self, alert_type: str, subject_key: str,
                            since: datetime) -> list[NotificationRecord]:
        """Get notifications of a type for a subject created at or after ``since``."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute("""
                    SELECT * FROM notifications
                    WHERE type = ? AND subject_key = ? AND created_at >= ?
                    ORDER BY created_at DESC
                """, (alert_type, subject_key, to_timestamp(since))).fetchall()
        except sqlite3.Error as e:
            raise NotificationStoreError(f"Failed to query notifications: {e}") from e
        return [self._to_notification(row) for row in rows]

    def create_notification(self, user_id: str, alert_type: str, subject_key: str,
                            window_bucket: str, title: str, message: str,
                            payload: Optional[dict[str, Any]], created_at: datetime) -> NotificationRecord:
        """Save a new notification. Raises DuplicateNotification if its window bucket is taken."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO notifications (user_id, type, subject_key, window_bucket, title, message, payload, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (user_id, alert_type, subject_key, window_bucket, title, message,
                      json.dumps(payload) if payload else None, to_timestamp(created_at)))
                notification_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateNotification(alert_type, subject_key, window_bucket) from e
        except sqlite3.Error as e:
            raise NotificationStoreError(f"Failed to save notification: {e}") from e

        return NotificationRecord(
            id=notification_id,
            user_id=user_id,
            type=alert_type,
            subject_key=subject_key,
            window_bucket=window_bucket,
            title=title,
            message=message,
            payload=payload or {},
            created_at=created_at,
        )

    def get_notifications(self, user_id: str, unread_only: bool = False,
                          limit: int = 50) -> list[NotificationRecord]:
        """Get the most recent notifications for a user."""
        conditions = ["user_id = ?"]
        params: list = [user_id]

        if unread_only:
            conditions.append("is_read = 0")

        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(f"""
                SELECT * FROM notifications
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
            """, params).fetchall()
        return [self._to_notification(row) for row in rows]

    def get_notification_stats(self, user_id: str) -> dict[str, int]:
        """Get total and unread notification counts."""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS total, COALESCE(SUM(CASE WHEN is_read = 0 THEN 1 ELSE 0 END), 0) AS unread
                FROM notifications WHERE user_id = ?
            """, (user_id,)).fetchone()
        return {'total': row['total'], 'unread': row['unread']}

    def mark_notification_read(self, notification_id: int, user_id: str) -> bool:
        """Mark one of the user's notifications as read."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id)
            )
            return cursor.rowcount == 1

    def mark_all_notifications_read(self, user_id: str) -> int:
        """Mark every unread notification of a user as read. Returns count updated."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (user_id,)
            )
            return cursor.rowcount

    def delete_notification(self, notification_id: int, user_id: str) -> bool:
        """Delete one of the user's notifications."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id)
            )
            return cursor.rowcount == 1
