"""Low wallet balance evaluation."""

from spendwatch.alerts.base import AlertEvaluator, AlertRegistry, AlertType, CandidateAlert, Snapshot


class LowBalanceEvaluator(AlertEvaluator):
    """Flags a wallet whose balance fell below a fraction of its monthly budget."""

    name = "low_balance"

    DEFAULT_CONFIG = {
        "low_balance_ratio": 0.1,
    }

    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        wallet = snapshot.wallet
        if not wallet or not wallet.monthly_budget:
            return []

        threshold = wallet.monthly_budget * self.config["low_balance_ratio"]
        if wallet.balance >= threshold:
            return []

        return [CandidateAlert(
            alert_type=AlertType.LOW_BALANCE,
            subject_key=wallet.id,
            payload={
                "wallet_id": wallet.id,
                "balance": wallet.balance,
                "budget": wallet.monthly_budget,
                "threshold": round(threshold, 2),
            }
        )]


# Register the evaluator
AlertRegistry.register(LowBalanceEvaluator)
