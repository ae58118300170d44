"""Tests for the CLI interface."""

import re
from pathlib import Path

import pytest
from typer.testing import CliRunner

from bookclub.companion.cli import app


@pytest.fixture(autouse=True)
def cli_db(temp_db_path: Path) -> Path:
    """Run every CLI test against a temporary database file."""
    return temp_db_path


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


def created_id(output: str) -> str:
    """Extract the ID printed after a create command."""
    match = re.search(r"ID: ([0-9a-f-]{36})", output)
    assert match, output
    return match.group(1)


def create_habit(runner: CliRunner) -> str:
    result = runner.invoke(
        app,
        ["goals", "create", "Read daily", "--user", "u1", "--type", "habit", "--cadence", "day", "--target", "1"],
    )
    assert result.exit_code == 0, result.stdout
    return created_id(result.stdout)


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Track book-club goals" in result.stdout

    def test_version(self, runner: CliRunner):
        """Test version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_init(self, runner: CliRunner, cli_db: Path):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert "Database ready" in result.stdout
        assert cli_db.exists()


class TestGoalCommands:
    """Tests for the goals command group."""

    def test_create_habit(self, runner: CliRunner):
        result = runner.invoke(
            app,
            ["goals", "create", "Read twice a week", "-u", "u1", "-t", "habit", "-c", "week", "--target", "2"],
        )

        assert result.exit_code == 0
        assert "Created habit goal: Read twice a week" in result.stdout

    def test_create_invalid_goal(self, runner: CliRunner):
        """Test a habit goal without cadence is rejected."""
        result = runner.invoke(app, ["goals", "create", "No cadence", "-u", "u1", "-t", "habit", "--target", "2"])

        assert result.exit_code == 1
        assert "cadence" in result.stdout

    def test_create_milestone_goal(self, runner: CliRunner):
        result = runner.invoke(
            app,
            ["goals", "create", "Trilogy", "-u", "u1", "-t", "milestone", "-m", "One", "-m", "Two"],
        )
        goal_id = created_id(result.stdout)

        shown = runner.invoke(app, ["goals", "show", goal_id])

        assert shown.exit_code == 0
        assert "One" in shown.stdout
        assert "Two" in shown.stdout

    def test_list(self, runner: CliRunner):
        create_habit(runner)

        result = runner.invoke(app, ["goals", "list", "--user", "u1"])

        assert result.exit_code == 0
        assert "Read daily" in result.stdout

    def test_list_empty(self, runner: CliRunner):
        result = runner.invoke(app, ["goals", "list", "--user", "nobody"])

        assert result.exit_code == 0
        assert "No goals found" in result.stdout

    def test_progress_after_entry(self, runner: CliRunner):
        goal_id = create_habit(runner)
        runner.invoke(app, ["entries", "add", goal_id])

        result = runner.invoke(app, ["goals", "progress", goal_id])

        assert result.exit_code == 0
        assert "1/1" in result.stdout

    def test_progress_invalid_period(self, runner: CliRunner):
        goal_id = create_habit(runner)

        result = runner.invoke(app, ["goals", "progress", goal_id, "--period", "yesterday"])

        assert result.exit_code == 1
        assert "Invalid period" in result.stdout

    def test_report_lists_habits(self, runner: CliRunner):
        create_habit(runner)

        result = runner.invoke(app, ["goals", "report", "--user", "u1"])

        assert result.exit_code == 0
        assert "Read daily" in result.stdout
        assert "weighted consistency" in result.stdout

    def test_report_without_habits(self, runner: CliRunner):
        result = runner.invoke(app, ["goals", "report", "--user", "nobody"])

        assert result.exit_code == 0
        assert "No active habits" in result.stdout

    def test_progress_missing_goal(self, runner: CliRunner):
        result = runner.invoke(app, ["goals", "progress", "missing"])

        assert result.exit_code == 1
        assert "Goal not found" in result.stdout

    def test_complete_one_time(self, runner: CliRunner):
        created = runner.invoke(app, ["goals", "create", "Host", "-u", "u1", "-t", "one_time"])
        goal_id = created_id(created.stdout)

        result = runner.invoke(app, ["goals", "complete", goal_id])
        progress = runner.invoke(app, ["goals", "progress", goal_id])

        assert result.exit_code == 0
        assert "Completed: Host" in result.stdout
        assert "1/1" in progress.stdout

    def test_delete_with_force(self, runner: CliRunner):
        goal_id = create_habit(runner)

        result = runner.invoke(app, ["goals", "delete", goal_id, "--force"])

        assert result.exit_code == 0
        assert "Goal deleted" in result.stdout


class TestProgressCommands:
    """Tests for progress and statistics commands."""

    def test_set_and_stats(self, runner: CliRunner):
        runner.invoke(app, ["stats", "profile", "u1", "--name", "Ada"])

        result = runner.invoke(app, ["progress", "set", "u1", "7", "--status", "reading", "--percent", "40"])
        assert result.exit_code == 0
        assert "u1 on book 7: reading (40%)" in result.stdout

        runner.invoke(app, ["progress", "set", "u1", "7", "--status", "finished"])

        book = runner.invoke(app, ["stats", "book", "7"])
        assert book.exit_code == 0
        assert "Finished: 1" in book.stdout
        assert "100.00%" in book.stdout

        user = runner.invoke(app, ["stats", "user", "u1"])
        assert user.exit_code == 0
        assert "Ada" in user.stdout
        assert "Finished books: 1" in user.stdout

    def test_invalid_percent(self, runner: CliRunner):
        result = runner.invoke(app, ["progress", "set", "u1", "7", "--percent", "150"])

        assert result.exit_code == 1

    def test_remove(self, runner: CliRunner):
        runner.invoke(app, ["progress", "set", "u1", "7"])

        assert runner.invoke(app, ["progress", "remove", "u1", "7"]).exit_code == 0
        assert runner.invoke(app, ["progress", "remove", "u1", "7"]).exit_code == 1

    def test_list_requires_one_filter(self, runner: CliRunner):
        result = runner.invoke(app, ["progress", "list"])

        assert result.exit_code == 1
        assert "exactly one" in result.stdout

    def test_list_by_book(self, runner: CliRunner):
        runner.invoke(app, ["progress", "set", "u1", "7", "--status", "reading"])

        result = runner.invoke(app, ["progress", "list", "--book", "7"])

        assert result.exit_code == 0
        assert "u1" in result.stdout

    def test_dispatch_nothing_pending(self, runner: CliRunner):
        runner.invoke(app, ["progress", "set", "u1", "7"])

        result = runner.invoke(app, ["progress", "dispatch"])

        assert result.exit_code == 0
        assert "No pending progress events" in result.stdout

    def test_prune_keeps_recent_events(self, runner: CliRunner):
        runner.invoke(app, ["progress", "set", "u1", "7"])

        result = runner.invoke(app, ["progress", "prune", "--days", "1"])

        assert result.exit_code == 0
        assert "Pruned 0 event(s) and 0 marker(s)" in result.stdout

    def test_prune_rejects_zero_days(self, runner: CliRunner):
        result = runner.invoke(app, ["progress", "prune", "--days", "0"])

        assert result.exit_code == 1
        assert "at least 1 day" in result.stdout

    def test_leaderboard(self, runner: CliRunner):
        runner.invoke(app, ["stats", "profile", "u1", "--name", "Ada"])
        runner.invoke(app, ["progress", "set", "u1", "1", "--status", "finished"])

        result = runner.invoke(app, ["stats", "leaderboard"])

        assert result.exit_code == 0
        assert "Ada" in result.stdout

    def test_leaderboard_empty(self, runner: CliRunner):
        result = runner.invoke(app, ["stats", "leaderboard"])

        assert "Nobody has finished a book yet" in result.stdout

    def test_stats_missing_book(self, runner: CliRunner):
        result = runner.invoke(app, ["stats", "book", "99"])

        assert result.exit_code == 1

    def test_rebuild(self, runner: CliRunner):
        runner.invoke(app, ["progress", "set", "u1", "7", "--status", "finished"])

        result = runner.invoke(app, ["stats", "rebuild"])

        assert result.exit_code == 0
        assert "1 user(s) and 1 book(s)" in result.stdout
