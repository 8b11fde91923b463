"""Base alert framework and registry."""

from abc import ABC, abstractmethod
from concurrent.futures import Executor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import logging

from spendwatch.ledger.aggregation import BudgetSummary
from spendwatch.ledger.models import SavingsGoal, Subscription, WalletSnapshot

logger = logging.getLogger(__name__)


class AlertType(Enum):
    """Types of alerts the system can generate."""
    BUDGET_WARNING = "BUDGET_WARNING"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    SUBSCRIPTION_RENEWAL = "SUBSCRIPTION_RENEWAL"
    LOW_BALANCE = "LOW_BALANCE"
    GOAL_ACHIEVED = "GOAL_ACHIEVED"


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of one user's records for a single evaluation cycle."""
    user_id: str
    month: int
    year: int
    now: datetime
    budget_summary: BudgetSummary
    subscriptions: list[Subscription] = field(default_factory=list)
    wallet: Optional[WalletSnapshot] = None
    savings_goals: list[SavingsGoal] = field(default_factory=list)


@dataclass(frozen=True)
class CandidateAlert:
    """An alert proposed by an evaluator, not yet approved for persistence."""
    alert_type: AlertType
    subject_key: str
    payload: dict[str, Any] = field(default_factory=dict)


class EvaluatorFailure(Exception):
    """Raised when a single evaluator fails; its siblings keep running."""

    def __init__(self, evaluator: str, cause: Exception):
        self.evaluator = evaluator
        self.cause = cause
        super().__init__(f"{evaluator} failed: {cause}")


class AlertEvaluator(ABC):
    """Base class for condition evaluators."""

    name: str = "evaluator"
    # Evaluators with side effects set this to False so the cycle deadline
    # never discards candidates whose side effect already happened
    respects_timeout: bool = True
    DEFAULT_CONFIG: dict[str, Any] = {}

    def __init__(self, store, config: Optional[dict] = None):
        self.store = store
        self.config = {**self.DEFAULT_CONFIG, **(config or {})}

    @abstractmethod
    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        """Return candidate alerts for the snapshot."""
        pass

    def run(self, snapshot: Snapshot) -> list[CandidateAlert]:
        try:
            return self.evaluate(snapshot)
        except Exception as e:
            raise EvaluatorFailure(self.name, e) from e


class AlertRegistry:
    """Registry of all condition evaluators, in registration order."""

    _evaluators: dict[str, type[AlertEvaluator]] = {}

    @classmethod
    def register(cls, evaluator_class: type[AlertEvaluator]) -> type[AlertEvaluator]:
        """Register an evaluator class. Can be used as a decorator."""
        cls._evaluators[evaluator_class.name] = evaluator_class
        return evaluator_class

    @classmethod
    def get_evaluator(cls, name: str, store, config: Optional[dict] = None) -> AlertEvaluator:
        """Get an instance of an evaluator."""
        if name not in cls._evaluators:
            raise ValueError(f"No evaluator registered as {name}")
        return cls._evaluators[name](store, config)

    @classmethod
    def create_all(cls, store, config: Optional[dict] = None) -> list[AlertEvaluator]:
        return [evaluator_class(store, config) for evaluator_class in cls._evaluators.values()]

    @classmethod
    def get_registered_names(cls) -> list[str]:
        return list(cls._evaluators.keys())

    @classmethod
    def run_all(cls, snapshot: Snapshot, evaluators: list[AlertEvaluator], executor: Executor,
                timeout: Optional[float] = None) -> tuple[list[CandidateAlert], list[str]]:
        """
        Run evaluators on ``executor`` and return (candidates, errors).

        A failing evaluator only loses its own candidates. Evaluators still
        running once ``timeout`` seconds have passed are skipped and keep
        their worker until they return, so evaluators must finish in bounded
        time. Evaluators with ``respects_timeout = False`` are always waited
        for.
        """
        candidates: list[CandidateAlert] = []
        errors: list[str] = []

        futures = [(executor.submit(evaluator.run, snapshot), evaluator) for evaluator in evaluators]
        done, _ = wait([future for future, evaluator in futures if evaluator.respects_timeout],
                       timeout=timeout)

        # Collect in registration order so emission order is stable
        for future, evaluator in futures:
            if evaluator.respects_timeout and future not in done:
                future.cancel()
                logger.warning(f"Evaluator {evaluator.name} timed out after {timeout}s, skipping")
                errors.append(f"{evaluator.name}: timed out")
                continue
            try:
                candidates.extend(future.result())
            except EvaluatorFailure as e:
                logger.error(f"Error running {e.evaluator} evaluator: {e.cause}")
                errors.append(str(e))

        return candidates, errors
