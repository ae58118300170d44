"""Pydantic schemas for data validation.

These schemas define the payloads accepted by goal, entry, milestone and
progress operations, and the JSON-serializable records exposed to callers.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class GoalType(str, Enum):
    """Kind of tracked personal objective."""

    HABIT = "habit"  # Count of entries per cadence period
    METRIC = "metric"  # Sum of entry quantities per cadence period
    MILESTONE = "milestone"  # Ordered checklist of sub-steps
    ONE_TIME = "one_time"  # Done once


class Measure(str, Enum):
    """How entries are aggregated for periodic goals."""

    COUNT = "count"
    SUM = "sum"


class Cadence(str, Enum):
    """Recurrence period for habit and metric goals."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


class ProgressStatus(str, Enum):
    """Reading status of a user for a book."""

    NOT_STARTED = "not_started"
    READING = "reading"
    FINISHED = "finished"


class Privacy(str, Enum):
    """Visibility of a progress record to other club members."""

    PUBLIC = "public"
    PRIVATE = "private"


# Measure each periodic goal type must use
MEASURE_FOR_TYPE: dict[GoalType, Measure] = {
    GoalType.HABIT: Measure.COUNT,
    GoalType.METRIC: Measure.SUM,
}


def goal_invariant_errors(
    goal_type: GoalType,
    measure: Optional[Measure],
    cadence: Optional[Cadence],
    target_count: Optional[int],
    target_quantity: Optional[float],
    unit: Optional[str],
) -> list[str]:
    """Check the per-type field requirements of a goal.

    Returns:
        List of human-readable problems (empty if the goal is consistent)
    """
    errors = []
    label = goal_type.value.replace("_", "-").capitalize()

    if goal_type in MEASURE_FOR_TYPE:
        expected = MEASURE_FOR_TYPE[goal_type]
        if measure != expected:
            errors.append(f"{label} goals must have measure='{expected.value}'")
        if cadence is None:
            errors.append(f"{label} goals must have cadence")
        if goal_type == GoalType.HABIT and target_count is None:
            errors.append("Habit goals must have target_count")
        if goal_type == GoalType.METRIC:
            if target_quantity is None:
                errors.append("Metric goals must have target_quantity")
            if not unit:
                errors.append("Metric goals must have unit")
    else:
        if measure is not None:
            errors.append(f"{label} goals do not use a measure")
        if cadence is not None:
            errors.append(f"{label} goals do not use a cadence")

    return errors


# ============================================================================
# Goal Schemas
# ============================================================================


class MilestoneCreate(BaseModel):
    """Schema for creating a milestone."""

    title: str = Field(..., min_length=1)
    done: bool = False
    done_at: Optional[datetime] = None


class MilestoneUpdate(BaseModel):
    """Schema for updating a milestone. All fields optional."""

    title: Optional[str] = Field(None, min_length=1)
    done: Optional[bool] = None
    done_at: Optional[datetime] = None


class GoalCreate(BaseModel):
    """Schema for creating a goal."""

    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: GoalType
    measure: Optional[Measure] = Field(None, description="Derived from type if omitted")
    cadence: Optional[Cadence] = None
    target_count: Optional[int] = Field(None, ge=1)
    target_quantity: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = None
    due_at: Optional[datetime] = None
    milestones: list[MilestoneCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_type_fields(self) -> "GoalCreate":
        """Derive the measure and enforce the per-type field requirements."""
        if self.measure is None and self.type in MEASURE_FOR_TYPE:
            self.measure = MEASURE_FOR_TYPE[self.type]

        errors = goal_invariant_errors(
            self.type,
            self.measure,
            self.cadence,
            self.target_count,
            self.target_quantity,
            self.unit,
        )
        if self.type == GoalType.MILESTONE and not self.milestones:
            errors.append("Milestone goals must have at least one milestone")
        if self.type != GoalType.MILESTONE and self.milestones:
            errors.append("Only milestone goals can have milestones")
        if self.due_at is not None and self.type != GoalType.ONE_TIME:
            errors.append("Only one-time goals can have due_at")

        if errors:
            raise ValueError("; ".join(errors))
        return self


class GoalUpdate(BaseModel):
    """Schema for updating a goal. The goal type cannot change."""

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    cadence: Optional[Cadence] = None
    target_count: Optional[int] = Field(None, ge=1)
    target_quantity: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = None
    due_at: Optional[datetime] = None


class EntryCreate(BaseModel):
    """Schema for logging activity against a habit or metric goal."""

    occurred_at: Optional[datetime] = Field(None, description="Defaults to now")
    quantity: Optional[float] = None


class EntryUpdate(BaseModel):
    """Schema for correcting an entry."""

    occurred_at: Optional[datetime] = None
    quantity: Optional[float] = None


# ============================================================================
# Progress Schemas
# ============================================================================


class ProgressUpdate(BaseModel):
    """Schema for upserting a user's reading progress on a book."""

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    status: Optional[ProgressStatus] = None
    percent_complete: Optional[int] = Field(None, ge=0, le=100)
    privacy: Optional[Privacy] = None


class UserProfile(BaseModel):
    """Schema for a club member profile."""

    uid: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


# ============================================================================
# Response Schemas
# ============================================================================


class ApiModel(BaseModel):
    """Base for records exposed to callers (camelCase on the wire)."""

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
    }

    def to_api(self) -> dict:
        """Dump as a JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class GoalProgress(ApiModel):
    """Result of evaluating a goal."""

    completed: bool
    actual: Union[int, float]
    target: Union[int, float]
    unit: Optional[str] = None

    def to_api(self) -> dict:
        """Dump without ``unit`` unless the goal carries one."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PeriodResult(ApiModel):
    """Completion of one cadence period."""

    start: datetime
    end: datetime
    completed: bool
    actual: Union[int, float]


class HabitConsistency(ApiModel):
    """Completion history of a periodic goal over a date range."""

    consistency_rate: float  # Percentage of periods completed
    streak: Optional[int] = None  # Consecutive completed periods, most recent first
    periods: list[PeriodResult] = Field(default_factory=list)


class HabitReportEntry(ApiModel):
    """One habit's place in a consistency report."""

    goal_id: str
    title: str
    habit_position: int  # 1-based rank by consistency
    weight: float
    consistency_rate: float


class HabitConsistencyReport(ApiModel):
    """Consistency of all of a user's habits, weighted by rank."""

    user_id: str
    start: datetime
    end: datetime
    weighted_average: float
    habits: list[HabitReportEntry] = Field(default_factory=list)


class UserStatsResponse(ApiModel):
    """Denormalized per-user reading statistics."""

    user_id: str
    finished_count: int
    last_finished_at: Optional[datetime] = None
    display_name: str
    photo_url: Optional[str] = None


class BookStatsResponse(ApiModel):
    """Denormalized per-book reader distribution."""

    book_id: int
    active_readers: int
    finished_readers: int
    reader_count: int
    avg_percent: float


class LeaderboardEntry(ApiModel):
    """One row of the finished-books leaderboard."""

    user_id: str
    finished_count: int
    display_name: str
    photo_url: Optional[str] = None


class MilestoneResponse(ApiModel):
    """Schema for milestone response."""

    id: str
    goal_id: str
    title: str
    order: int
    done: bool
    done_at: Optional[datetime] = None


class GoalResponse(ApiModel):
    """Schema for goal response."""

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    type: GoalType
    measure: Optional[Measure] = None
    cadence: Optional[Cadence] = None
    target_count: Optional[int] = None
    target_quantity: Optional[float] = None
    unit: Optional[str] = None
    due_at: Optional[datetime] = None
    completed: bool
    completed_at: Optional[datetime] = None
    archived: bool
    created_at: datetime


class EntryResponse(ApiModel):
    """Schema for entry response."""

    id: str
    goal_id: str
    user_id: str
    occurred_at: datetime
    quantity: Optional[float] = None


class ProgressResponse(ApiModel):
    """Schema for a progress record."""

    id: int
    user_id: str
    book_id: int
    status: ProgressStatus
    percent_complete: int
    privacy: Privacy
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def default_percent(cls, v) -> int:
        """Treat a missing percentage as zero."""
        return 0 if v is None else v
