"""Tests for condition evaluators."""

import pytest
from datetime import timedelta

from spendwatch.alerts import (
    AlertRegistry,
    AlertType,
    BudgetThresholdEvaluator,
    GoalAchievementEvaluator,
    LowBalanceEvaluator,
    SubscriptionRenewalEvaluator,
    WalletSpendingEvaluator,
)
from spendwatch.ledger.models import ExpenseRecord, SavingsGoal, Subscription, WalletSnapshot

from conftest import NOW, InMemoryNotificationStore


def food_expenses(*amounts):
    return [
        ExpenseRecord(id=f"exp-{i}", user_id="user-123", category="Food", amount=a, date=NOW)
        for i, a in enumerate(amounts)
    ]


def subscription(days_ahead, sub_id="sub-1", **kwargs):
    return Subscription(
        id=sub_id,
        user_id="user-123",
        name=kwargs.get("name", "Netflix"),
        price=kwargs.get("price", 15.99),
        next_billing_date=NOW + timedelta(days=days_ahead),
    )


def wallet(balance, monthly_budget=100.0):
    return WalletSnapshot(id="wallet-1", user_id="user-123", balance=balance, monthly_budget=monthly_budget)


def goal(current, target=500.0, **overrides):
    data = dict(id="goal-1", user_id="user-123", name="Vacation", current_amount=current,
                target_amount=target)
    data.update(overrides)
    return SavingsGoal(**data)


class TestRegistry:
    """Tests for evaluator registration."""

    def test_all_evaluators_registered(self):
        """Test that importing the package registers every evaluator."""
        assert AlertRegistry.get_registered_names() == [
            "budget_threshold", "wallet_spending", "subscription_renewal",
            "low_balance", "goal_achievement",
        ]

    def test_unknown_evaluator(self):
        """Test asking for an evaluator that doesn't exist."""
        with pytest.raises(ValueError):
            AlertRegistry.get_evaluator("nope", store=None)


class TestBudgetThresholdEvaluator:
    """Tests for budget threshold evaluation."""

    def test_warning_when_near_limit(self, make_snapshot, make_budget):
        """Test BUDGET_WARNING at 85%."""
        snapshot = make_snapshot(expenses=food_expenses(100, 70), budgets=[make_budget()])
        alerts = BudgetThresholdEvaluator(None).evaluate(snapshot)

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.BUDGET_WARNING
        assert alerts[0].subject_key == "budget-food"
        assert alerts[0].payload["percentage"] == 85.0

    def test_exceeded_takes_precedence(self, make_snapshot, make_budget):
        """Test that an over-budget category yields only BUDGET_EXCEEDED."""
        snapshot = make_snapshot(expenses=food_expenses(100, 110), budgets=[make_budget()])
        alerts = BudgetThresholdEvaluator(None).evaluate(snapshot)

        assert [a.alert_type for a in alerts] == [AlertType.BUDGET_EXCEEDED]
        assert alerts[0].payload["spent"] == 210.0
        assert alerts[0].payload["overspent"] == 10.0

    def test_below_threshold(self, make_snapshot, make_budget):
        """Test no alert below the threshold."""
        snapshot = make_snapshot(expenses=food_expenses(100), budgets=[make_budget()])
        assert BudgetThresholdEvaluator(None).evaluate(snapshot) == []

    def test_alerts_disabled(self, make_snapshot, make_budget):
        """Test that budgets with alerts off are skipped."""
        snapshot = make_snapshot(expenses=food_expenses(300), budgets=[make_budget(enable_alerts=False)])
        assert BudgetThresholdEvaluator(None).evaluate(snapshot) == []


class TestWalletSpendingEvaluator:
    """Tests for overall monthly spending against the wallet budget."""

    def test_exceeded(self, make_snapshot):
        """Test total spend above the wallet's monthly budget."""
        snapshot = make_snapshot(expenses=food_expenses(80, 40), wallet=wallet(500.0, monthly_budget=100.0))
        alerts = WalletSpendingEvaluator(None).evaluate(snapshot)

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.BUDGET_EXCEEDED
        assert alerts[0].subject_key == "wallet-1"
        assert alerts[0].payload["scope"] == "wallet"
        assert alerts[0].payload["overspent"] == 20.0

    def test_within_budget(self, make_snapshot):
        """Test no alert at or below the wallet budget."""
        snapshot = make_snapshot(expenses=food_expenses(100), wallet=wallet(500.0, monthly_budget=100.0))
        assert WalletSpendingEvaluator(None).evaluate(snapshot) == []

    def test_can_be_disabled(self, make_snapshot):
        """Test the configuration switch."""
        snapshot = make_snapshot(expenses=food_expenses(300), wallet=wallet(500.0, monthly_budget=100.0))
        evaluator = WalletSpendingEvaluator(None, {"wallet_budget_alerts": False})
        assert evaluator.evaluate(snapshot) == []


class TestSubscriptionRenewalEvaluator:
    """Tests for renewal reminders."""

    def test_renewal_in_two_days(self, make_snapshot):
        """Test a subscription two days out yields a candidate."""
        alerts = SubscriptionRenewalEvaluator(None).evaluate(make_snapshot(subscriptions=[subscription(2)]))

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.SUBSCRIPTION_RENEWAL
        assert alerts[0].subject_key == "sub-1"
        assert alerts[0].payload["days_until"] == 2

    def test_renewal_in_four_days(self, make_snapshot):
        """Test a subscription four days out yields nothing."""
        alerts = SubscriptionRenewalEvaluator(None).evaluate(make_snapshot(subscriptions=[subscription(4)]))
        assert alerts == []

    def test_horizon_is_inclusive(self, make_snapshot):
        """Test both ends of [now, now + 3 days]."""
        snapshot = make_snapshot(subscriptions=[
            subscription(0, "now"), subscription(3, "edge"),
            subscription(-0.01, "past"), subscription(3.01, "beyond"),
        ])
        alerts = SubscriptionRenewalEvaluator(None).evaluate(snapshot)
        assert {a.subject_key for a in alerts} == {"now", "edge"}

    def test_days_until_rounds_up(self, make_snapshot):
        """Test that partial days count as a whole day."""
        snapshot = make_snapshot(subscriptions=[subscription(1.25)])
        alerts = SubscriptionRenewalEvaluator(None).evaluate(snapshot)
        assert alerts[0].payload["days_until"] == 2


class TestLowBalanceEvaluator:
    """Tests for low wallet balance."""

    def test_low_balance(self, make_snapshot):
        """Test 5 of a 100 budget is low."""
        alerts = LowBalanceEvaluator(None).evaluate(make_snapshot(wallet=wallet(5.0)))

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.LOW_BALANCE
        assert alerts[0].subject_key == "wallet-1"

    @pytest.mark.parametrize("balance", [10.0, 15.0])
    def test_not_low(self, make_snapshot, balance):
        """Test balances at or above 10% of the budget."""
        assert LowBalanceEvaluator(None).evaluate(make_snapshot(wallet=wallet(balance))) == []

    def test_no_monthly_budget(self, make_snapshot):
        """Test wallets without a monthly budget are ignored."""
        assert LowBalanceEvaluator(None).evaluate(make_snapshot(wallet=wallet(0.0, None))) == []

    def test_no_wallet(self, make_snapshot):
        """Test users without a wallet."""
        assert LowBalanceEvaluator(None).evaluate(make_snapshot()) == []


class TestGoalAchievementEvaluator:
    """Tests for goal achievement and its compare-and-set."""

    def test_reached_goal_completes_once(self, make_snapshot):
        """Test that only the first evaluation of a reached goal emits."""
        store = InMemoryNotificationStore()
        evaluator = GoalAchievementEvaluator(store)
        snapshot = make_snapshot(savings_goals=[goal(500.0)])

        alerts = evaluator.evaluate(snapshot)
        assert [a.alert_type for a in alerts] == [AlertType.GOAL_ACHIEVED]
        assert alerts[0].subject_key == "goal-1"
        assert store.completed_goals == {"goal-1"}

        # A stale snapshot still showing is_completed=False loses the compare-and-set
        assert evaluator.evaluate(snapshot) == []

    @pytest.mark.parametrize("overrides", [
        {"current": 499.0},
        {"current": 600.0, "target": None},
        {"current": 600.0, "is_completed": True},
        {"current": 600.0, "is_active": False},
    ])
    def test_goals_skipped(self, make_snapshot, overrides):
        """Test goals that are not reached, untargeted, done or paused."""
        current = overrides.pop("current")
        target = overrides.pop("target", 500.0)
        store = InMemoryNotificationStore()

        alerts = GoalAchievementEvaluator(store).evaluate(
            make_snapshot(savings_goals=[goal(current, target, **overrides)])
        )
        assert alerts == []
        assert store.completed_goals == set()

    def test_store_error_skips_only_that_goal(self, make_snapshot):
        """Test that a failing compare-and-set does not lose other goals."""

        class BrokenForOneGoal(InMemoryNotificationStore):
            def mark_goal_completed(self, goal_id):
                if goal_id == "goal-1":
                    raise RuntimeError("locked")
                return super().mark_goal_completed(goal_id)

        snapshot = make_snapshot(savings_goals=[goal(500.0), goal(900.0, 800.0, id="goal-2", name="Car")])
        alerts = GoalAchievementEvaluator(BrokenForOneGoal()).evaluate(snapshot)

        assert [a.subject_key for a in alerts] == ["goal-2"]
