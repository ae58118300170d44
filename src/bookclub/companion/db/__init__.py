"""Database module for local SQLite storage."""

from .models import (
    BookProgress,
    BookStats,
    Goal,
    GoalCompletion,
    GoalEntry,
    Milestone,
    ProcessedEvent,
    ProgressEvent,
    User,
    UserStats,
)
from .schemas import (
    Cadence,
    GoalCreate,
    GoalProgress,
    GoalType,
    GoalUpdate,
    Measure,
    Privacy,
    ProgressStatus,
    ProgressUpdate,
)
from .sqlite import Database, get_db

__all__ = [
    "BookProgress",
    "BookStats",
    "Goal",
    "GoalCompletion",
    "GoalEntry",
    "Milestone",
    "ProcessedEvent",
    "ProgressEvent",
    "User",
    "UserStats",
    "Cadence",
    "GoalCreate",
    "GoalProgress",
    "GoalType",
    "GoalUpdate",
    "Measure",
    "Privacy",
    "ProgressStatus",
    "ProgressUpdate",
    "Database",
    "get_db",
]
