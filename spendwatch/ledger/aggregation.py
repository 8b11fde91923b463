"""Budget status aggregation.

Reduces a period's expenses and budgets into per-category spending status.
Pure: no I/O and no side effects.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from spendwatch.ledger.models import Budget, ExpenseRecord


@dataclass(frozen=True)
class BudgetStatus:
    """Spending status of one budget for its period."""
    budget: Budget
    spent: float
    remaining: float
    percentage_used: float
    is_over_budget: bool
    is_near_limit: bool

    @property
    def category(self) -> str:
        return self.budget.category

    @property
    def overspent(self) -> float:
        return max(0.0, self.spent - self.budget.monthly_limit)


@dataclass(frozen=True)
class UnbudgetedCategory:
    """A category with spending but no budget in the period."""
    category: str
    spent: float


@dataclass
class BudgetSummary:
    """Aggregated budget view of one period."""
    statuses: list[BudgetStatus] = field(default_factory=list)
    categories_without_budget: list[UnbudgetedCategory] = field(default_factory=list)
    total_budget: float = 0.0
    total_spent: float = 0.0


def spending_by_category(expenses: Iterable[ExpenseRecord]) -> dict[str, float]:
    """Sum expense amounts per category, folding missing categories into 'Other'."""
    totals: dict[str, float] = defaultdict(float)
    for expense in expenses:
        totals[expense.category_or_default] += expense.amount
    return dict(totals)


def budget_status(budget: Budget, spent: float) -> BudgetStatus:
    """Compute the status of a single budget given its category's spend."""
    if budget.monthly_limit <= 0:
        raise ValueError(f"Budget {budget.id} has non-positive limit {budget.monthly_limit}")

    percentage_used = spent / budget.monthly_limit * 100
    return BudgetStatus(
        budget=budget,
        spent=spent,
        remaining=max(0.0, budget.monthly_limit - spent),
        percentage_used=percentage_used,
        is_over_budget=spent > budget.monthly_limit,
        is_near_limit=percentage_used >= budget.alert_threshold,
    )


def summarize_budgets(expenses: Iterable[ExpenseRecord], budgets: Iterable[Budget]) -> BudgetSummary:
    """
    Build one BudgetStatus per budget plus the list of categories that have
    spending but no matching budget.

    Budgets must have a strictly positive limit; callers filter invalid ones
    out beforehand.
    """
    budgets = list(budgets)
    spending = spending_by_category(expenses)

    statuses = [budget_status(b, spending.get(b.category, 0.0)) for b in budgets]

    budgeted = {b.category for b in budgets}
    unbudgeted = [
        UnbudgetedCategory(category=category, spent=spent)
        for category, spent in sorted(spending.items())
        if category not in budgeted
    ]

    return BudgetSummary(
        statuses=statuses,
        categories_without_budget=unbudgeted,
        total_budget=sum(b.monthly_limit for b in budgets),
        total_spent=sum(spending.values()),
    )
