"""Goal manager for goal, entry and milestone operations."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import get_config
from ..db.models import Goal, GoalCompletion, GoalEntry, Milestone
from ..db.schemas import (
    Cadence,
    EntryCreate,
    EntryUpdate,
    GoalCreate,
    GoalProgress,
    GoalType,
    GoalUpdate,
    HabitConsistency,
    HabitConsistencyReport,
    HabitReportEntry,
    Measure,
    MilestoneCreate,
    MilestoneUpdate,
    goal_invariant_errors,
)
from ..db.sqlite import Database, get_db
from ..errors import InvalidGoal, NotFound
from ..timeutils import as_utc, utcnow
from .consistency import habit_consistency
from .evaluator import MilestoneGoal, OneTimeGoal, evaluate, goal_from_record, habit_weight
from .periods import period_boundaries

logger = logging.getLogger(__name__)

PERIODIC_TYPES = (GoalType.HABIT.value, GoalType.METRIC.value)


class GoalManager:
    """Manages goals, their entries and milestones, and evaluates progress."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize goal manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _get_goal(self, session: Session, goal_id: str, user_id: Optional[str] = None) -> Goal:
        goal = session.get(Goal, goal_id)
        if goal is None or (user_id is not None and goal.user_id != user_id):
            raise NotFound(f"Goal not found: {goal_id}")
        return goal

    def _get_entry(
        self, session: Session, entry_id: str, user_id: Optional[str] = None
    ) -> GoalEntry:
        entry = session.get(GoalEntry, entry_id)
        if entry is None or (user_id is not None and entry.user_id != user_id):
            raise NotFound(f"Entry not found: {entry_id}")
        return entry

    def _get_milestone(self, session: Session, milestone_id: str) -> Milestone:
        milestone = session.get(Milestone, milestone_id)
        if milestone is None:
            raise NotFound(f"Milestone not found: {milestone_id}")
        return milestone

    def _query_milestones(self, session: Session, goal_id: str) -> list[Milestone]:
        stmt = select(Milestone).where(Milestone.goal_id == goal_id).order_by(Milestone.order)
        return list(session.execute(stmt).scalars().all())

    def _query_entries(
        self,
        session: Session,
        goal_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[GoalEntry]:
        stmt = select(GoalEntry).where(GoalEntry.goal_id == goal_id)
        if start is not None:
            stmt = stmt.where(GoalEntry.occurred_at >= as_utc(start))
        if end is not None:
            stmt = stmt.where(GoalEntry.occurred_at < as_utc(end))
        stmt = stmt.order_by(GoalEntry.occurred_at.desc())
        return list(session.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def create_goal(self, data: GoalCreate) -> Goal:
        """Create a goal (and its milestones, for milestone goals).

        Args:
            data: Validated goal payload

        Returns:
            Created Goal
        """
        with self.db.get_session() as session:
            goal = Goal(
                user_id=data.user_id,
                title=data.title,
                description=data.description,
                type=data.type.value,
                measure=data.measure.value if data.measure else None,
                cadence=data.cadence.value if data.cadence else None,
                target_count=data.target_count,
                target_quantity=data.target_quantity,
                unit=data.unit,
                due_at=data.due_at,
            )
            session.add(goal)
            session.flush()

            for order, item in enumerate(data.milestones):
                session.add(
                    Milestone(
                        goal_id=goal.id,
                        title=item.title,
                        order=order,
                        done=item.done,
                        done_at=(item.done_at or utcnow()) if item.done else None,
                    )
                )

            session.flush()
            session.refresh(goal)
            session.expunge(goal)

        logger.info("Created %s goal %s for user %s", goal.type, goal.id, goal.user_id)
        return goal

    def get_goal(self, goal_id: str, user_id: Optional[str] = None) -> Goal:
        """Get a goal by ID.

        Raises:
            NotFound: If the goal does not exist (or belongs to another user)
        """
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            session.expunge(goal)
            return goal

    def list_goals(
        self,
        user_id: str,
        include_archived: bool = False,
        goal_type: Optional[GoalType] = None,
    ) -> list[Goal]:
        """List a user's goals, oldest first."""
        with self.db.get_session() as session:
            stmt = select(Goal).where(Goal.user_id == user_id)
            if not include_archived:
                stmt = stmt.where(Goal.archived == False)  # noqa: E712
            if goal_type is not None:
                stmt = stmt.where(Goal.type == goal_type.value)
            stmt = stmt.order_by(Goal.created_at)

            goals = list(session.execute(stmt).scalars().all())
            for goal in goals:
                session.expunge(goal)
            return goals

    def update_goal(self, goal_id: str, data: GoalUpdate, user_id: Optional[str] = None) -> Goal:
        """Update goal fields, keeping the per-type requirements satisfied.

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If the update would break the goal's type requirements
        """
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            updates = data.model_dump(exclude_unset=True)

            cadence = updates.get("cadence", goal.cadence)
            errors = goal_invariant_errors(
                GoalType(goal.type),
                Measure(goal.measure) if goal.measure else None,
                Cadence(cadence) if cadence else None,
                updates.get("target_count", goal.target_count),
                updates.get("target_quantity", goal.target_quantity),
                updates.get("unit", goal.unit),
            )
            if "due_at" in updates and updates["due_at"] is not None:
                if goal.type != GoalType.ONE_TIME.value:
                    errors.append("Only one-time goals can have due_at")
            if errors:
                raise InvalidGoal("; ".join(errors))

            for field, value in updates.items():
                if isinstance(value, Cadence):
                    value = value.value
                setattr(goal, field, value)

            session.flush()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def archive_goal(self, goal_id: str, user_id: Optional[str] = None) -> Goal:
        """Soft-delete a goal. Its entries and milestones are kept."""
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            goal.archived = True
            session.flush()
            session.refresh(goal)
            session.expunge(goal)

        logger.info("Archived goal %s", goal_id)
        return goal

    def unarchive_goal(self, goal_id: str, user_id: Optional[str] = None) -> Goal:
        """Restore an archived goal."""
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            goal.archived = False
            session.flush()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def delete_goal(self, goal_id: str, user_id: Optional[str] = None) -> None:
        """Hard-delete a goal that has no entries.

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If entries exist (archive the goal instead)
        """
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            entry_count = session.execute(
                select(func.count(GoalEntry.id)).where(GoalEntry.goal_id == goal_id)
            ).scalar_one()
            if entry_count:
                raise InvalidGoal(
                    f"Cannot delete goal with {entry_count} entries; archive it instead"
                )
            session.delete(goal)

        logger.info("Deleted goal %s", goal_id)

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def mark_complete(
        self,
        goal_id: str,
        user_id: Optional[str] = None,
        period_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Goal:
        """Mark a goal complete.

        Without ``period_id`` only one-time goals can be completed; with it,
        a manual completion is recorded for that period of any goal.

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If a non one-time goal is completed without a period
        """
        completed_at = as_utc(at) if at is not None else utcnow()

        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)

            if period_id:
                stmt = select(GoalCompletion).where(
                    GoalCompletion.user_id == goal.user_id,
                    GoalCompletion.goal_id == goal_id,
                    GoalCompletion.period_id == period_id,
                )
                completion = session.execute(stmt).scalar_one_or_none()
                if completion is None:
                    session.add(
                        GoalCompletion(
                            user_id=goal.user_id,
                            goal_id=goal_id,
                            period_id=period_id,
                            completed_at=completed_at,
                        )
                    )
                else:
                    completion.completed_at = completed_at
            else:
                if goal.type != GoalType.ONE_TIME.value:
                    raise InvalidGoal("Only one-time goals can be marked complete without a period")
                goal.completed = True
                goal.completed_at = completed_at

            session.flush()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def mark_incomplete(
        self,
        goal_id: str,
        user_id: Optional[str] = None,
        period_id: Optional[str] = None,
    ) -> Goal:
        """Undo a completion mark (one-time goal, or one period)."""
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)

            if period_id:
                stmt = select(GoalCompletion).where(
                    GoalCompletion.user_id == goal.user_id,
                    GoalCompletion.goal_id == goal_id,
                    GoalCompletion.period_id == period_id,
                )
                completion = session.execute(stmt).scalar_one_or_none()
                if completion is not None:
                    session.delete(completion)
            else:
                if goal.type != GoalType.ONE_TIME.value:
                    raise InvalidGoal("Only one-time goals can be marked incomplete without a period")
                goal.completed = False
                goal.completed_at = None

            session.flush()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def is_period_completed(self, goal_id: str, period_id: str, user_id: Optional[str] = None) -> bool:
        """Check for a manual completion mark on one period."""
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            stmt = select(GoalCompletion).where(
                GoalCompletion.user_id == goal.user_id,
                GoalCompletion.goal_id == goal_id,
                GoalCompletion.period_id == period_id,
            )
            return session.execute(stmt).scalar_one_or_none() is not None

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def add_entry(
        self,
        goal_id: str,
        data: Optional[EntryCreate] = None,
        user_id: Optional[str] = None,
    ) -> GoalEntry:
        """Log activity against a habit or metric goal.

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If the goal is archived or not a habit/metric goal
        """
        data = data or EntryCreate()

        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            if goal.type not in PERIODIC_TYPES:
                raise InvalidGoal(f"Entries can only be logged for habit or metric goals, not {goal.type}")
            if goal.archived:
                raise InvalidGoal("Cannot log entries for an archived goal")

            entry = GoalEntry(
                goal_id=goal_id,
                user_id=goal.user_id,
                occurred_at=as_utc(data.occurred_at) if data.occurred_at else utcnow(),
                quantity=data.quantity if goal.type == GoalType.METRIC.value else None,
            )
            session.add(entry)
            session.flush()
            session.refresh(entry)
            session.expunge(entry)

        logger.debug("Logged entry %s for goal %s at %s", entry.id, goal_id, entry.occurred_at)
        return entry

    def list_entries(
        self,
        goal_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> list[GoalEntry]:
        """List a goal's entries in ``[start, end)``, newest first."""
        with self.db.get_session() as session:
            self._get_goal(session, goal_id, user_id)
            entries = self._query_entries(session, goal_id, start, end)
            for entry in entries:
                session.expunge(entry)
            return entries

    def update_entry(
        self, entry_id: str, data: EntryUpdate, user_id: Optional[str] = None
    ) -> GoalEntry:
        """Correct an entry's timestamp or quantity."""
        with self.db.get_session() as session:
            entry = self._get_entry(session, entry_id, user_id)
            updates = data.model_dump(exclude_unset=True)

            if updates.get("occurred_at") is not None:
                entry.occurred_at = as_utc(updates["occurred_at"])
            if "quantity" in updates:
                goal = session.get(Goal, entry.goal_id)
                if goal.type == GoalType.METRIC.value:
                    entry.quantity = updates["quantity"]

            session.flush()
            session.refresh(entry)
            session.expunge(entry)
            return entry

    def delete_entry(self, entry_id: str, user_id: Optional[str] = None) -> bool:
        """Delete an entry.

        Returns:
            True if deleted, False if not found
        """
        with self.db.get_session() as session:
            entry = session.get(GoalEntry, entry_id)
            if entry is None or (user_id is not None and entry.user_id != user_id):
                return False
            session.delete(entry)
            return True

    # -------------------------------------------------------------------------
    # Milestones
    # -------------------------------------------------------------------------

    def add_milestone(self, goal_id: str, data: MilestoneCreate) -> Milestone:
        """Append a milestone to a milestone goal."""
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id)
            if goal.type != GoalType.MILESTONE.value:
                raise InvalidGoal(f"Milestones can only be added to milestone goals, not {goal.type}")

            next_order = session.execute(
                select(func.coalesce(func.max(Milestone.order) + 1, 0)).where(
                    Milestone.goal_id == goal_id
                )
            ).scalar_one()

            milestone = Milestone(
                goal_id=goal_id,
                title=data.title,
                order=next_order,
                done=data.done,
                done_at=(data.done_at or utcnow()) if data.done else None,
            )
            session.add(milestone)
            session.flush()
            session.refresh(milestone)
            session.expunge(milestone)
            return milestone

    def list_milestones(self, goal_id: str) -> list[Milestone]:
        """List a goal's milestones ordered by ``order``."""
        with self.db.get_session() as session:
            self._get_goal(session, goal_id)
            milestones = self._query_milestones(session, goal_id)
            for milestone in milestones:
                session.expunge(milestone)
            return milestones

    def update_milestone(self, milestone_id: str, data: MilestoneUpdate) -> Milestone:
        """Update a milestone's title or done state (``done_at`` set iff done)."""
        with self.db.get_session() as session:
            milestone = self._get_milestone(session, milestone_id)

            if data.title is not None:
                milestone.title = data.title
            if data.done is not None:
                milestone.done = data.done
                if data.done:
                    milestone.done_at = as_utc(data.done_at) if data.done_at else utcnow()
                else:
                    milestone.done_at = None

            session.flush()
            session.refresh(milestone)
            session.expunge(milestone)
            return milestone

    def toggle_milestone(self, milestone_id: str, at: Optional[datetime] = None) -> Milestone:
        """Flip a milestone between done and not done."""
        with self.db.get_session() as session:
            milestone = self._get_milestone(session, milestone_id)
            milestone.done = not milestone.done
            milestone.done_at = (as_utc(at) if at else utcnow()) if milestone.done else None

            session.flush()
            session.refresh(milestone)
            session.expunge(milestone)
            return milestone

    def reorder_milestones(self, goal_id: str, milestone_ids: list[str]) -> list[Milestone]:
        """Renumber a goal's milestones to follow ``milestone_ids``.

        Raises:
            InvalidGoal: If the IDs are not exactly the goal's milestones
        """
        with self.db.get_session() as session:
            self._get_goal(session, goal_id)
            milestones = {m.id: m for m in self._query_milestones(session, goal_id)}

            if len(milestone_ids) != len(set(milestone_ids)) or set(milestone_ids) != set(milestones):
                raise InvalidGoal("Milestone order must list each of the goal's milestones exactly once")

            for order, milestone_id in enumerate(milestone_ids):
                milestones[milestone_id].order = order

            session.flush()
            ordered = self._query_milestones(session, goal_id)
            for milestone in ordered:
                session.expunge(milestone)
            return ordered

    def delete_milestone(self, milestone_id: str) -> bool:
        """Delete a milestone and close the gap in ordering."""
        with self.db.get_session() as session:
            milestone = session.get(Milestone, milestone_id)
            if milestone is None:
                return False
            goal_id = milestone.goal_id
            session.delete(milestone)
            session.flush()

            for order, remaining in enumerate(self._query_milestones(session, goal_id)):
                remaining.order = order
            return True

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def get_progress(
        self,
        goal_id: str,
        user_id: Optional[str] = None,
        window: Optional[str] = None,
        reference: Optional[datetime] = None,
    ) -> GoalProgress:
        """Evaluate a goal against its recorded activity.

        Args:
            goal_id: Goal ID
            user_id: Owner to scope the lookup to (optional)
            window: ``current`` (default), ``all`` or ``YYYY-MM-DD,YYYY-MM-DD``
            reference: Instant locating the current period (default: now)

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If the goal cannot be evaluated
        """
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            variant = goal_from_record(goal)

            if isinstance(variant, MilestoneGoal):
                activity = self._query_milestones(session, goal_id)
            elif isinstance(variant, OneTimeGoal):
                activity = []
            else:
                activity = self._query_entries(session, goal_id)

            return evaluate(variant, activity, reference=reference, window=window)

    def get_consistency(
        self,
        goal_id: str,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        reference: Optional[datetime] = None,
        include_streak: bool = True,
    ) -> HabitConsistency:
        """Score how consistently a habit or metric goal has been met.

        ``since`` defaults to the goal's creation time.

        Raises:
            NotFound: If the goal does not exist
            InvalidGoal: If the goal is not a habit or metric goal
        """
        with self.db.get_session() as session:
            goal = self._get_goal(session, goal_id, user_id)
            if goal.type not in PERIODIC_TYPES:
                raise InvalidGoal(f"Consistency applies to habit or metric goals, not {goal.type}")
            variant = goal_from_record(goal)
            entries = self._query_entries(session, goal_id)

            return habit_consistency(
                variant,
                entries,
                since=since if since is not None else goal.created_at,
                until=until,
                reference=reference,
                include_streak=include_streak,
                max_periods=get_config().consistency_max_periods,
            )

    def get_habit_consistency_report(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        reference: Optional[datetime] = None,
    ) -> HabitConsistencyReport:
        """Rank a user's active habits by consistency and weight the ranking.

        Only periods that have fully elapsed by ``reference`` count. Habits
        are sorted by consistency rate (highest first, ties to the oldest
        habit) and the habit at position n is weighted 1 / log2(n + 1).

        Args:
            user_id: Owner of the habits
            since: Start of the range (default: start of the current quarter)
            until: End of the range (default: end of the current quarter)
            reference: "Now" for deciding which periods have elapsed
        """
        now = as_utc(reference) if reference is not None else utcnow()
        quarter_start, quarter_end = period_boundaries(Cadence.QUARTER, now)
        start = as_utc(since) if since is not None else quarter_start
        end = as_utc(until) if until is not None else quarter_end
        if end < start:
            raise ValueError("Report range ends before it starts")

        with self.db.get_session() as session:
            stmt = (
                select(Goal)
                .where(
                    Goal.user_id == user_id,
                    Goal.type == GoalType.HABIT.value,
                    Goal.archived == False,  # noqa: E712
                )
                .order_by(Goal.created_at)
            )
            scored = []
            for goal in session.execute(stmt).scalars().all():
                consistency = habit_consistency(
                    goal_from_record(goal),
                    self._query_entries(session, goal.id),
                    since=start,
                    until=end,
                    reference=now,
                    include_streak=False,
                    max_periods=get_config().consistency_max_periods,
                    elapsed_only=True,
                )
                scored.append((goal.id, goal.title, consistency.consistency_rate))

        # Stable sort keeps creation order among equal rates
        scored.sort(key=lambda item: item[2], reverse=True)

        habits = []
        for position, (goal_id, title, rate) in enumerate(scored, start=1):
            habits.append(
                HabitReportEntry(
                    goal_id=goal_id,
                    title=title,
                    habit_position=position,
                    weight=habit_weight(position),
                    consistency_rate=rate,
                )
            )

        total_weight = sum(h.weight for h in habits)
        weighted = sum(h.consistency_rate * h.weight for h in habits)
        return HabitConsistencyReport(
            user_id=user_id,
            start=start,
            end=end,
            weighted_average=round(weighted / total_weight, 2) if total_weight else 0.0,
            habits=habits,
        )
