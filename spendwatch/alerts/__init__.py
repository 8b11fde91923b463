# Alert evaluation pipeline
from spendwatch.alerts.base import (
    AlertType, CandidateAlert, Snapshot, AlertEvaluator, AlertRegistry, EvaluatorFailure,
)
from spendwatch.alerts.budget_threshold import BudgetThresholdEvaluator, WalletSpendingEvaluator
from spendwatch.alerts.subscription_renewal import SubscriptionRenewalEvaluator
from spendwatch.alerts.low_balance import LowBalanceEvaluator
from spendwatch.alerts.goal_achievement import GoalAchievementEvaluator
from spendwatch.alerts.rules import AlertRule, DedupWindow, build_rules
from spendwatch.alerts.dedup import DeduplicationGate, DedupQueryFailure, GateDecision
from spendwatch.alerts.emitter import NotificationEmitter, PersistenceFailure
from spendwatch.alerts.pipeline import AlertPipeline, create_pipeline

__all__ = [
    'AlertType',
    'CandidateAlert',
    'Snapshot',
    'AlertEvaluator',
    'AlertRegistry',
    'EvaluatorFailure',
    'BudgetThresholdEvaluator',
    'WalletSpendingEvaluator',
    'SubscriptionRenewalEvaluator',
    'LowBalanceEvaluator',
    'GoalAchievementEvaluator',
    'AlertRule',
    'DedupWindow',
    'build_rules',
    'DeduplicationGate',
    'DedupQueryFailure',
    'GateDecision',
    'NotificationEmitter',
    'PersistenceFailure',
    'AlertPipeline',
    'create_pipeline',
]
