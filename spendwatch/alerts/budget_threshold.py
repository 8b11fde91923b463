"""Budget threshold and overall wallet spending evaluation."""

from spendwatch.alerts.base import AlertEvaluator, AlertRegistry, AlertType, CandidateAlert, Snapshot
from spendwatch.ledger.aggregation import BudgetStatus


class BudgetThresholdEvaluator(AlertEvaluator):
    """
    Flags category budgets that crossed their alert threshold or limit.

    - spent > limit: BUDGET_EXCEEDED
    - percentage used >= alert_threshold: BUDGET_WARNING

    A budget yields at most one of the two per pass, exceeded first.
    """

    name = "budget_threshold"

    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        alerts = []

        for status in snapshot.budget_summary.statuses:
            if not status.budget.enable_alerts:
                continue

            if status.is_over_budget:
                alerts.append(self._create_candidate(AlertType.BUDGET_EXCEEDED, status, snapshot))
            elif status.is_near_limit:
                alerts.append(self._create_candidate(AlertType.BUDGET_WARNING, status, snapshot))

        return alerts

    def _create_candidate(self, alert_type: AlertType, status: BudgetStatus,
                          snapshot: Snapshot) -> CandidateAlert:
        budget = status.budget
        return CandidateAlert(
            alert_type=alert_type,
            subject_key=budget.id,
            payload={
                "scope": "category",
                "budget_id": budget.id,
                "category": budget.category,
                "spent": round(status.spent, 2),
                "budget": budget.monthly_limit,
                "remaining": round(status.remaining, 2),
                "overspent": round(status.overspent, 2),
                "percentage": round(status.percentage_used, 1),
                "threshold": budget.alert_threshold,
                "month": snapshot.month,
                "year": snapshot.year,
            }
        )


class WalletSpendingEvaluator(AlertEvaluator):
    """Flags a period whose total spending exceeds the wallet's monthly budget."""

    name = "wallet_spending"

    DEFAULT_CONFIG = {
        "wallet_budget_alerts": True,
    }

    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        if not self.config["wallet_budget_alerts"]:
            return []

        wallet = snapshot.wallet
        if not wallet or not wallet.monthly_budget:
            return []

        spent = snapshot.budget_summary.total_spent
        if spent <= wallet.monthly_budget:
            return []

        return [CandidateAlert(
            alert_type=AlertType.BUDGET_EXCEEDED,
            subject_key=wallet.id,
            payload={
                "scope": "wallet",
                "wallet_id": wallet.id,
                "spent": round(spent, 2),
                "budget": wallet.monthly_budget,
                "overspent": round(spent - wallet.monthly_budget, 2),
                "month": snapshot.month,
                "year": snapshot.year,
            }
        )]


# Register the evaluators
AlertRegistry.register(BudgetThresholdEvaluator)
AlertRegistry.register(WalletSpendingEvaluator)
