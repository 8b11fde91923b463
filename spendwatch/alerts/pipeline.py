"""Evaluation cycle: ledger snapshot -> evaluators -> dedup gate -> emitter."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from datetime import datetime
from typing import Callable, Optional
import logging

from spendwatch.alerts.base import AlertEvaluator, AlertRegistry, Snapshot
from spendwatch.alerts.dedup import DeduplicationGate, GateDecision
from spendwatch.alerts.emitter import Listener, NotificationEmitter, PersistenceFailure
from spendwatch.alerts.rules import build_rules
from spendwatch.ledger.aggregation import summarize_budgets
from spendwatch.store.interfaces import DataUnavailable, LedgerReader, NotificationStore, UserDirectory
from spendwatch.store.database import Database
from spendwatch.utils.config import AppConfig, load_config, validate_thresholds
from spendwatch.utils.formatters import format_month, month_bounds

logger = logging.getLogger(__name__)


class AlertPipeline:
    """
    Runs alert evaluation cycles for one user at a time.

    Safe to call from several places at once (after an expense is recorded
    and from a periodic sweep): duplicates are stopped by the dedup gate,
    the store's uniqueness constraint and the goal compare-and-set, not by
    any ordering between calls. Failures never propagate to the caller; each
    entrypoint returns a stats dict whose ``errors`` list describes them.

    Evaluators of every cycle share one worker pool of
    ``pipeline.max_workers`` threads, released by ``close()``.
    """

    def __init__(self, reader: LedgerReader, store: NotificationStore,
                 config: Optional[AppConfig] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 listeners: Optional[list[Listener]] = None,
                 evaluators: Optional[list[AlertEvaluator]] = None):
        self.reader = reader
        self.store = store
        self.config = config or AppConfig()
        self.clock = clock

        problems = validate_thresholds(self.config.alerts)
        if problems:
            raise ValueError(f"Invalid alert thresholds: {'; '.join(problems)}")

        self.rules = build_rules(self.config.alerts)
        self.gate = DeduplicationGate(store, self.rules)
        self.emitter = NotificationEmitter(store, self.rules, listeners)
        if evaluators is None:
            evaluators = AlertRegistry.create_all(store, asdict(self.config.alerts))
        self.evaluators = evaluators

        if not getattr(store, "enforces_uniqueness", False):
            logger.warning(
                f"{type(store).__name__} does not enforce notification uniqueness; "
                "concurrent cycles may create duplicate notifications"
            )

        self.executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.pipeline.max_workers),
            thread_name_prefix="evaluator",
        )

    def close(self) -> None:
        """Stop the evaluator pool. Queued evaluators are cancelled."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "AlertPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def load_snapshot(self, user_id: str, month: int, year: int, now: datetime) -> Snapshot:
        """Read everything one cycle needs. Raises DataUnavailable if any read fails."""
        period_start, period_end = month_bounds(month, year)
        try:
            expenses = self.reader.get_expenses(user_id, period_start, period_end)
            budgets = self.reader.get_budgets(user_id, month, year)
            subscriptions = self.reader.get_subscriptions(user_id)
            wallet = self.reader.get_wallet(user_id)
            goals = self.reader.get_savings_goals(user_id)
        except Exception as e:
            raise DataUnavailable(f"Failed to read ledger for {user_id}: {e}") from e

        valid_budgets = []
        for budget in budgets:
            if budget.monthly_limit <= 0:
                logger.warning(f"Skipping budget {budget.id} with non-positive limit {budget.monthly_limit}")
                continue
            valid_budgets.append(budget)

        return Snapshot(
            user_id=user_id,
            month=month,
            year=year,
            now=now,
            budget_summary=summarize_budgets(expenses, valid_budgets),
            subscriptions=subscriptions,
            wallet=wallet,
            savings_goals=goals,
        )

    def run_cycle(self, user_id: str, month: int, year: int) -> dict:
        """
        Evaluate one user's records for a month and emit any new alerts.
        Returns dict with cycle statistics.
        """
        stats = {
            'user_id': user_id,
            'month': month,
            'year': year,
            'candidates': 0,
            'emitted': 0,
            'suppressed': 0,
            'notifications': [],
            'errors': [],
            'duplicate_risk': not getattr(self.store, "enforces_uniqueness", False),
        }
        now = self.clock()

        try:
            snapshot = self.load_snapshot(user_id, month, year, now)
        except DataUnavailable as e:
            stats['errors'].append(str(e))
            logger.error(f"{e}; skipping cycle until next trigger")
            return stats

        candidates, errors = AlertRegistry.run_all(
            snapshot,
            self.evaluators,
            self.executor,
            timeout=self.config.pipeline.evaluator_timeout_seconds,
        )
        stats['errors'].extend(errors)
        stats['candidates'] = len(candidates)

        for candidate in candidates:
            decision = self.gate.decide(candidate, now)
            if decision is not GateDecision.APPROVED:
                stats['suppressed'] += 1
                if decision is GateDecision.QUERY_FAILED:
                    stats['errors'].append(
                        f"Dedup query failed for {candidate.alert_type.value} {candidate.subject_key}"
                    )
                continue

            try:
                record = self.emitter.emit(user_id, candidate, now)
            except PersistenceFailure as e:
                stats['errors'].append(str(e))
                logger.error(str(e))
                continue

            if record is None:
                stats['suppressed'] += 1
            else:
                stats['emitted'] += 1
                stats['notifications'].append(record)

        if stats['notifications']:
            self.emitter.notify_listeners(user_id, stats['notifications'])

        logger.info(
            f"Alert cycle for {user_id} ({format_month(month, year)}): "
            f"{stats['candidates']} candidates, {stats['emitted']} emitted, "
            f"{stats['suppressed']} suppressed, {len(stats['errors'])} errors"
        )
        return stats

    # Trigger entrypoints
    def expense_recorded(self, user_id: str, month: int, year: int) -> dict:
        """Run after an expense is added or changed, for the month it falls in."""
        return self.run_cycle(user_id, month, year)

    def periodic_sweep(self, user_id: str) -> dict:
        """Run for the current month."""
        now = self.clock()
        return self.run_cycle(user_id, now.month, now.year)

    def manual_refresh(self, user_id: str) -> dict:
        """User-requested refresh; same as a sweep."""
        return self.periodic_sweep(user_id)

    def sweep_all_users(self) -> list[dict]:
        """Sweep every user known to the ledger. Needs a reader that is also a UserDirectory."""
        if not isinstance(self.reader, UserDirectory):
            logger.warning(f"{type(self.reader).__name__} cannot list users; nothing to sweep")
            return []
        try:
            user_ids = self.reader.get_user_ids()
        except Exception as e:
            logger.error(f"Failed to list users for sweep: {e}")
            return []
        return [self.periodic_sweep(user_id) for user_id in user_ids]


def create_pipeline(config: Optional[AppConfig] = None,
                    listeners: Optional[list[Listener]] = None) -> AlertPipeline:
    """Build a pipeline backed by the SQLite database named in the configuration."""
    config = config or load_config()
    db = Database(config.db_path)
    return AlertPipeline(db, db, config=config, listeners=listeners)
