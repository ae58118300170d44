"""Tests for the HTTP API."""

import pytest

from bookclub.companion import __version__
from bookclub.companion.api import create_app
from bookclub.companion.db.schemas import EntryCreate, UserProfile
from bookclub.companion.db.sqlite import Database
from bookclub.companion.goals.manager import GoalManager
from bookclub.companion.progress.tracker import ProgressTracker


@pytest.fixture
def client(db: Database, tracker: ProgressTracker):
    """Create a Flask test client bound to the test database."""
    app = create_app(db, tracker=tracker)
    app.config["TESTING"] = True
    return app.test_client()


class TestHealth:
    def test_health(self, client):
        response = client.get("/v1/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "version": __version__}


class TestGoalEndpoints:
    """Tests for goal progress and consistency."""

    def test_weekly_habit_progress(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)
        goal_manager.add_entry(goal.id, EntryCreate(occurred_at="2025-01-06T10:00:00Z"))
        goal_manager.add_entry(goal.id, EntryCreate(occurred_at="2025-01-12T23:00:00Z"))

        response = client.get(f"/v1/goals/{goal.id}/progress?at=2025-01-10T00:00:00Z")

        assert response.status_code == 200
        assert response.get_json() == {"completed": True, "actual": 2, "target": 2}

    def test_metric_progress_includes_unit(self, client, goal_manager: GoalManager, metric_goal_data):
        goal = goal_manager.create_goal(metric_goal_data)
        goal_manager.add_entry(goal.id, EntryCreate(occurred_at="2025-02-03T00:00:00Z", quantity=30))

        response = client.get(f"/v1/goals/{goal.id}/progress?period=2025-02-01,2025-02-28")

        data = response.get_json()
        assert data["completed"] is False
        assert data["actual"] == 30
        assert data["unit"] == "pages"

    def test_progress_scoped_to_owner(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)

        response = client.get(f"/v1/goals/{goal.id}/progress?userId=someone-else")

        assert response.status_code == 404

    def test_missing_goal(self, client):
        response = client.get("/v1/goals/missing/progress")

        assert response.status_code == 404
        assert "not found" in response.get_json()["error"]

    def test_invalid_period(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)

        response = client.get(f"/v1/goals/{goal.id}/progress?period=last-week")

        assert response.status_code == 400
        assert "Invalid period" in response.get_json()["error"]

    def test_invalid_at(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)

        response = client.get(f"/v1/goals/{goal.id}/progress?at=not-a-date")

        assert response.status_code == 400

    def test_consistency(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)
        for day in ("2025-01-06", "2025-01-07"):
            goal_manager.add_entry(goal.id, EntryCreate(occurred_at=f"{day}T08:00:00Z"))

        response = client.get(
            f"/v1/goals/{goal.id}/consistency?since=2025-01-06&at=2025-01-15T00:00:00Z"
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data["consistencyRate"] == 50.0
        assert data["streak"] == 0
        assert len(data["periods"]) == 2
        assert data["periods"][1]["completed"] is True


class TestGoalReads:
    """Tests for reading goals, entries and milestones."""

    def test_list_goals(self, client, goal_manager: GoalManager, habit_goal_data, metric_goal_data):
        habit = goal_manager.create_goal(habit_goal_data)
        metric = goal_manager.create_goal(metric_goal_data)
        goal_manager.archive_goal(metric.id)

        active = client.get("/v1/users/u1/goals").get_json()
        everything = client.get("/v1/users/u1/goals?includeArchived=true").get_json()

        assert [g["id"] for g in active] == [habit.id]
        assert active[0]["type"] == "habit"
        assert active[0]["targetCount"] == 2
        assert active[0]["cadence"] == "week"
        assert [g["id"] for g in everything] == [habit.id, metric.id]
        assert everything[1]["archived"] is True

    def test_list_goals_by_type(self, client, goal_manager: GoalManager, habit_goal_data, metric_goal_data):
        goal_manager.create_goal(habit_goal_data)
        metric = goal_manager.create_goal(metric_goal_data)

        rows = client.get("/v1/users/u1/goals?type=metric").get_json()

        assert [g["id"] for g in rows] == [metric.id]
        assert client.get("/v1/users/u1/goals?type=chore").status_code == 400

    def test_get_goal(self, client, goal_manager: GoalManager, one_time_goal_data):
        goal = goal_manager.create_goal(one_time_goal_data)

        data = client.get(f"/v1/goals/{goal.id}").get_json()

        assert data["title"] == "Host a club meeting"
        assert data["completed"] is False
        assert data["createdAt"] is not None
        assert client.get(f"/v1/goals/{goal.id}?userId=someone-else").status_code == 404

    def test_list_entries(self, client, goal_manager: GoalManager, metric_goal_data):
        goal = goal_manager.create_goal(metric_goal_data)
        for day, pages in ((3, 20), (10, 35), (20, 15)):
            goal_manager.add_entry(goal.id, EntryCreate(occurred_at=f"2025-02-{day:02d}T00:00:00Z", quantity=pages))

        rows = client.get(f"/v1/goals/{goal.id}/entries?since=2025-02-05&until=2025-02-28").get_json()

        assert [r["quantity"] for r in rows] == [15, 35]
        assert rows[0]["goalId"] == goal.id
        assert rows[0]["occurredAt"].startswith("2025-02-20")

    def test_list_milestones(self, client, goal_manager: GoalManager, milestone_goal_data):
        goal = goal_manager.create_goal(milestone_goal_data)

        rows = client.get(f"/v1/goals/{goal.id}/milestones").get_json()

        assert [m["title"] for m in rows] == ["Book one", "Book two", "Book three"]
        assert [m["order"] for m in rows] == [0, 1, 2]
        assert rows[0]["done"] is False

    def test_milestones_of_missing_goal(self, client):
        assert client.get("/v1/goals/missing/milestones").status_code == 404


class TestHabitReportEndpoint:
    """Tests for the habit consistency report."""

    def test_report(self, client, goal_manager: GoalManager, habit_goal_data):
        goal = goal_manager.create_goal(habit_goal_data)
        for day in ("2025-01-06", "2025-01-07"):
            goal_manager.add_entry(goal.id, EntryCreate(occurred_at=f"{day}T08:00:00Z"))

        response = client.get(
            "/v1/users/u1/habits/consistency?since=2025-01-06&until=2025-01-19&at=2025-01-22T00:00:00Z"
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data["weightedAverage"] == 50.0
        assert data["habits"] == [
            {
                "goalId": goal.id,
                "title": "Read twice a week",
                "habitPosition": 1,
                "weight": 1.0,
                "consistencyRate": 50.0,
            }
        ]

    def test_report_rejects_bad_dates(self, client):
        assert client.get("/v1/users/u1/habits/consistency?since=soon").status_code == 400


class TestStatsEndpoints:
    """Tests for statistics reads."""

    def test_user_stats_not_found(self, client):
        assert client.get("/v1/stats/users/nobody").status_code == 404

    def test_book_stats_not_found(self, client):
        assert client.get("/v1/stats/books/7").status_code == 404

    def test_stats_after_progress(self, client, db: Database):
        db.upsert_user(UserProfile(uid="u1", display_name="Ada"))
        client.put("/v1/progress/u1/7", json={"status": "not_started"})
        client.put("/v1/progress/u1/7", json={"status": "reading", "percentComplete": 40})
        client.put("/v1/progress/u1/7", json={"status": "finished", "percentComplete": 100})

        book = client.get("/v1/stats/books/7").get_json()
        user = client.get("/v1/stats/users/u1").get_json()

        assert book == {
            "bookId": 7,
            "activeReaders": 0,
            "finishedReaders": 1,
            "readerCount": 1,
            "avgPercent": 100.0,
        }
        assert user["finishedCount"] == 1
        assert user["displayName"] == "Ada"
        assert user["lastFinishedAt"] is not None

    def test_leaderboard(self, client):
        client.put("/v1/progress/u1/1", json={"status": "finished"})
        client.put("/v1/progress/u1/2", json={"status": "finished"})
        client.put("/v1/progress/u2/1", json={"status": "finished"})

        rows = client.get("/v1/stats/leaderboard?limit=5").get_json()

        assert [(r["userId"], r["finishedCount"]) for r in rows] == [("u1", 2), ("u2", 1)]

    def test_leaderboard_rejects_bad_limit(self, client):
        assert client.get("/v1/stats/leaderboard?limit=-1").status_code == 400

    def test_leaderboard_rejects_zero_limit(self, client):
        response = client.get("/v1/stats/leaderboard?limit=0")

        assert response.status_code == 400
        assert "limit" in response.get_json()["error"]

    def test_leaderboard_default_limit(self, client):
        client.put("/v1/progress/u1/1", json={"status": "finished"})

        assert len(client.get("/v1/stats/leaderboard").get_json()) == 1


class TestProgressEndpoints:
    """Tests for progress record writes and reads."""

    def test_put_and_get(self, client):
        response = client.put("/v1/progress/u1/7", json={"status": "reading", "percentComplete": 25})

        assert response.status_code == 200
        data = response.get_json()
        assert data["userId"] == "u1"
        assert data["bookId"] == 7
        assert data["status"] == "reading"
        assert data["percentComplete"] == 25
        assert data["startedAt"] is not None

        fetched = client.get("/v1/progress/u1/7").get_json()
        assert fetched["id"] == data["id"]

    def test_get_missing(self, client):
        assert client.get("/v1/progress/u1/7").status_code == 404

    def test_put_requires_json_object(self, client):
        response = client.put("/v1/progress/u1/7", data="nope", content_type="text/plain")

        assert response.status_code == 400

    def test_put_validates_fields(self, client):
        response = client.put("/v1/progress/u1/7", json={"status": "abandoned"})

        assert response.status_code == 400

    def test_put_rejects_out_of_range_percent(self, client):
        response = client.put("/v1/progress/u1/7", json={"percentComplete": 120})

        assert response.status_code == 400

    def test_delete(self, client):
        client.put("/v1/progress/u1/7", json={"status": "finished"})

        assert client.delete("/v1/progress/u1/7").status_code == 204
        assert client.delete("/v1/progress/u1/7").status_code == 404
        assert client.get("/v1/stats/users/u1").get_json()["finishedCount"] == 0
