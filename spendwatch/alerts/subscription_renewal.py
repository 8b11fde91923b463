"""Upcoming subscription renewal evaluation."""

import math
from datetime import timedelta

from spendwatch.alerts.base import AlertEvaluator, AlertRegistry, AlertType, CandidateAlert, Snapshot

SECONDS_PER_DAY = 24 * 60 * 60


class SubscriptionRenewalEvaluator(AlertEvaluator):
    """Flags subscriptions billing within the next few days (inclusive on both ends)."""

    name = "subscription_renewal"

    DEFAULT_CONFIG = {
        "renewal_horizon_days": 3,
    }

    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        alerts = []
        now = snapshot.now
        horizon = now + timedelta(days=self.config["renewal_horizon_days"])

        for subscription in snapshot.subscriptions:
            billing_date = subscription.next_billing_date
            if not now <= billing_date <= horizon:
                continue

            days_until = math.ceil((billing_date - now).total_seconds() / SECONDS_PER_DAY)
            alerts.append(CandidateAlert(
                alert_type=AlertType.SUBSCRIPTION_RENEWAL,
                subject_key=subscription.id,
                payload={
                    "subscription_id": subscription.id,
                    "name": subscription.name,
                    "amount": subscription.price,
                    "days_until": days_until,
                    "billing_date": billing_date.isoformat(),
                }
            ))

        return alerts


# Register the evaluator
AlertRegistry.register(SubscriptionRenewalEvaluator)
