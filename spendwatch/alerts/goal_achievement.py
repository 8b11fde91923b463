"""Savings goal achievement evaluation."""

import logging

from spendwatch.alerts.base import AlertEvaluator, AlertRegistry, AlertType, CandidateAlert, Snapshot

logger = logging.getLogger(__name__)


class GoalAchievementEvaluator(AlertEvaluator):
    """
    Flags savings goals that reached their target.

    This is the only evaluator with a side effect: it flips the goal's
    completion flag through the store's compare-and-set, and only the caller
    that performed the flip gets a candidate. Concurrent cycles racing on the
    same goal therefore produce exactly one GOAL_ACHIEVED between them.
    A won flip must reach the emitter, so the cycle deadline does not apply.
    """

    name = "goal_achievement"
    respects_timeout = False

    def evaluate(self, snapshot: Snapshot) -> list[CandidateAlert]:
        alerts = []

        for goal in snapshot.savings_goals:
            if not goal.is_active or goal.is_completed or not goal.is_reached:
                continue

            try:
                won = self.store.mark_goal_completed(goal.id)
            except Exception as e:
                # Flag state unknown; the next cycle retries this goal
                logger.error(f"Failed to mark goal {goal.id} completed: {e}")
                continue

            if not won:
                logger.debug(f"Goal {goal.id} already completed by another cycle")
                continue

            alerts.append(CandidateAlert(
                alert_type=AlertType.GOAL_ACHIEVED,
                subject_key=goal.id,
                payload={
                    "goal_id": goal.id,
                    "name": goal.name,
                    "amount": goal.target_amount,
                    "current_amount": goal.current_amount,
                }
            ))

        return alerts


# Register the evaluator
AlertRegistry.register(GoalAchievementEvaluator)
