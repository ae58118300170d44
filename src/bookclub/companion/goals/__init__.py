"""Goal tracking: period boundaries, completion evaluation and goal storage."""

from .consistency import habit_consistency
from .evaluator import (
    GoalVariant,
    HabitGoal,
    MetricGoal,
    MilestoneGoal,
    OneTimeGoal,
    evaluate,
    goal_from_record,
    habit_weight,
)
from .manager import GoalManager
from .periods import period_boundaries, period_id, previous_period_boundaries

__all__ = [
    "GoalManager",
    "GoalVariant",
    "HabitGoal",
    "MetricGoal",
    "MilestoneGoal",
    "OneTimeGoal",
    "evaluate",
    "goal_from_record",
    "habit_consistency",
    "habit_weight",
    "period_boundaries",
    "period_id",
    "previous_period_boundaries",
]
