"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the companion: in-memory and
file-backed databases, managers wired to them, and sample goal payloads.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from bookclub.companion.config import reset_config
from bookclub.companion.db.schemas import Cadence, GoalCreate, GoalType, MilestoneCreate
from bookclub.companion.db.sqlite import Database, reset_db
from bookclub.companion.goals.manager import GoalManager
from bookclub.companion.progress.dispatcher import ProgressEventDispatcher
from bookclub.companion.progress.tracker import ProgressTracker
from bookclub.companion.stats.maintainer import StatsMaintainer


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Reset the global database and config around every test."""
    reset_db()
    reset_config()
    yield
    reset_db()
    reset_config()


@pytest.fixture
def db() -> Database:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    return database


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Point BOOKCLUB_DB_PATH at a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    os.environ["BOOKCLUB_DB_PATH"] = str(db_path)
    yield db_path

    # Cleanup
    reset_db()
    if "BOOKCLUB_DB_PATH" in os.environ:
        del os.environ["BOOKCLUB_DB_PATH"]
    if db_path.exists():
        db_path.unlink()


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def goal_manager(db: Database) -> GoalManager:
    """Create a GoalManager with test database."""
    return GoalManager(db)


@pytest.fixture
def maintainer(db: Database) -> StatsMaintainer:
    """Create a StatsMaintainer with test database."""
    return StatsMaintainer(db, default_display_name="Unknown User")


@pytest.fixture
def dispatcher(db: Database, maintainer: StatsMaintainer) -> ProgressEventDispatcher:
    """Create a dispatcher delivering to the maintainer."""
    dispatcher = ProgressEventDispatcher(db, max_retries=3)
    dispatcher.subscribe(maintainer.apply_progress_event)
    return dispatcher


@pytest.fixture
def tracker(db: Database, dispatcher: ProgressEventDispatcher) -> ProgressTracker:
    """Create a ProgressTracker that delivers changes immediately."""
    return ProgressTracker(db, dispatcher=dispatcher)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def habit_goal_data() -> GoalCreate:
    """Read twice a week."""
    return GoalCreate(
        user_id="u1",
        title="Read twice a week",
        type=GoalType.HABIT,
        cadence=Cadence.WEEK,
        target_count=2,
    )


@pytest.fixture
def metric_goal_data() -> GoalCreate:
    """Read 100 pages a month."""
    return GoalCreate(
        user_id="u1",
        title="Pages per month",
        type=GoalType.METRIC,
        cadence=Cadence.MONTH,
        target_quantity=100,
        unit="pages",
    )


@pytest.fixture
def milestone_goal_data() -> GoalCreate:
    """Three-step checklist."""
    return GoalCreate(
        user_id="u1",
        title="Finish the trilogy",
        type=GoalType.MILESTONE,
        milestones=[
            MilestoneCreate(title="Book one"),
            MilestoneCreate(title="Book two"),
            MilestoneCreate(title="Book three"),
        ],
    )


@pytest.fixture
def one_time_goal_data() -> GoalCreate:
    """Host a meeting."""
    return GoalCreate(
        user_id="u1",
        title="Host a club meeting",
        type=GoalType.ONE_TIME,
    )
