"""Per-type alert rules: dedup window, window bucket and message formatting.

One table drives the gate and the emitter instead of bespoke code per alert
kind. The window bucket is what the store's uniqueness constraint is keyed
on, so two cycles racing inside the same bucket cannot both insert.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from spendwatch.alerts.base import AlertType
from spendwatch.utils.config import AlertThresholds
from spendwatch.utils.formatters import (
    format_currency, format_percentage, pluralize, start_of_day, start_of_month,
)

EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class DedupWindow:
    """Earliest creation time that counts as a duplicate, plus the bucket label."""
    since: Optional[datetime]
    bucket: str


@dataclass(frozen=True)
class AlertRule:
    alert_type: AlertType
    subject: str
    window: Callable[[datetime], DedupWindow]
    title: str
    message: Callable[[dict[str, Any]], str]
    gated: bool = True


def calendar_month_window(now: datetime) -> DedupWindow:
    return DedupWindow(since=start_of_month(now), bucket=now.strftime("%Y-%m"))


def calendar_day_window(now: datetime) -> DedupWindow:
    return DedupWindow(since=start_of_day(now), bucket=now.strftime("%Y-%m-%d"))


def trailing_hours_window(hours: int) -> Callable[[datetime], DedupWindow]:
    """
    Trailing window of ``hours``. The bucket is the fixed ``hours``-wide slot
    ``now`` falls in, which only serves to reject simultaneous inserts; the
    trailing query does the actual suppression.
    """
    def window(now: datetime) -> DedupWindow:
        slot = int((now - EPOCH).total_seconds() // (hours * 3600))
        return DedupWindow(since=now - timedelta(hours=hours), bucket=f"{hours}h-{slot}")
    return window


def once_window(now: datetime) -> DedupWindow:
    return DedupWindow(since=None, bucket="once")


def budget_warning_message(payload: dict[str, Any]) -> str:
    return (
        f"You have used {format_percentage(payload['percentage'])} "
        f"of your budget for {payload['category']}"
    )


def budget_exceeded_message(payload: dict[str, Any]) -> str:
    if payload.get("scope") == "wallet":
        return (
            f"You've exceeded your monthly budget of {format_currency(payload['budget'])} "
            f"by {format_currency(payload['overspent'])}."
        )
    return (
        f"You have exceeded your budget for {payload['category']}. "
        f"Spent: {format_currency(payload['spent'])}, Budget: {format_currency(payload['budget'])}"
    )


def subscription_renewal_message(payload: dict[str, Any]) -> str:
    return (
        f"{payload['name']} will renew in {pluralize(payload['days_until'], 'day')} "
        f"for {format_currency(payload['amount'])}"
    )


def low_balance_message(payload: dict[str, Any]) -> str:
    return (
        f"Your wallet balance ({format_currency(payload['balance'])}) is running low "
        f"compared to your monthly budget."
    )


def goal_achieved_message(payload: dict[str, Any]) -> str:
    return (
        f"Congratulations! You've reached your goal of {format_currency(payload['amount'])} "
        f"for \"{payload['name']}\"."
    )


def build_rules(thresholds: Optional[AlertThresholds] = None) -> dict[AlertType, AlertRule]:
    """Build the rule table for the given thresholds."""
    thresholds = thresholds or AlertThresholds()
    rules = [
        AlertRule(AlertType.BUDGET_WARNING, "budget", calendar_month_window,
                  "Budget Warning", budget_warning_message),
        AlertRule(AlertType.BUDGET_EXCEEDED, "budget", calendar_month_window,
                  "Budget Exceeded", budget_exceeded_message),
        AlertRule(AlertType.SUBSCRIPTION_RENEWAL, "subscription", calendar_day_window,
                  "Subscription Renewal Reminder", subscription_renewal_message),
        AlertRule(AlertType.LOW_BALANCE, "wallet",
                  trailing_hours_window(thresholds.low_balance_window_hours),
                  "Low Balance Alert", low_balance_message),
        # Deduplicated by the goal completion compare-and-set, not by the gate
        AlertRule(AlertType.GOAL_ACHIEVED, "goal", once_window,
                  "Savings Goal Achieved! \U0001F389", goal_achieved_message, gated=False),
    ]
    return {rule.alert_type: rule for rule in rules}
