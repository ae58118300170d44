"""HTTP API exposing goal progress and reading statistics."""

import logging
from typing import Optional

from flask import Flask, jsonify, request

from . import __version__
from .config import get_config
from .db.schemas import (
    EntryResponse,
    GoalResponse,
    GoalType,
    MilestoneResponse,
    ProgressResponse,
    ProgressUpdate,
)
from .db.sqlite import Database, get_db
from .errors import NotFound
from .goals.manager import GoalManager
from .progress.tracker import ProgressTracker
from .stats.reader import StatsReader
from .timeutils import parse_instant

logger = logging.getLogger(__name__)


def _flag(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.lower() not in ("0", "false", "no")


def create_app(
    db: Optional[Database] = None,
    tracker: Optional[ProgressTracker] = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        db: Database instance (uses global if not provided)
        tracker: Progress tracker (default wiring if not provided)
    """
    app = Flask(__name__)

    db = db or get_db()
    goals = GoalManager(db)
    stats = StatsReader(db)
    tracker = tracker or ProgressTracker(db)

    @app.errorhandler(NotFound)
    def not_found(error: NotFound):
        return jsonify({"error": str(error)}), 404

    @app.errorhandler(ValueError)
    def bad_request(error: ValueError):
        return jsonify({"error": str(error)}), 400

    @app.route("/v1/health")
    def health():
        """Liveness check."""
        return jsonify({"status": "ok", "version": __version__})

    @app.route("/v1/users/<user_id>/goals")
    def list_goals(user_id: str):
        """A user's goals, oldest first."""
        goal_type = request.args.get("type")
        rows = goals.list_goals(
            user_id,
            include_archived=_flag(request.args.get("includeArchived"), default=False),
            goal_type=GoalType(goal_type) if goal_type else None,
        )
        return jsonify([GoalResponse.model_validate(goal).to_api() for goal in rows])

    @app.route("/v1/users/<user_id>/habits/consistency")
    def habit_report(user_id: str):
        """Rank-weighted consistency of a user's active habits."""
        report = goals.get_habit_consistency_report(
            user_id,
            since=parse_instant(request.args.get("since")),
            until=parse_instant(request.args.get("until")),
            reference=parse_instant(request.args.get("at")),
        )
        return jsonify(report.to_api())

    @app.route("/v1/goals/<goal_id>")
    def get_goal(goal_id: str):
        """A single goal."""
        goal = goals.get_goal(goal_id, user_id=request.args.get("userId"))
        return jsonify(GoalResponse.model_validate(goal).to_api())

    @app.route("/v1/goals/<goal_id>/entries")
    def list_entries(goal_id: str):
        """A goal's entries in [since, until), newest first."""
        entries = goals.list_entries(
            goal_id,
            start=parse_instant(request.args.get("since")),
            end=parse_instant(request.args.get("until")),
            user_id=request.args.get("userId"),
        )
        return jsonify([EntryResponse.model_validate(entry).to_api() for entry in entries])

    @app.route("/v1/goals/<goal_id>/milestones")
    def list_milestones(goal_id: str):
        milestones = goals.list_milestones(goal_id)
        return jsonify([MilestoneResponse.model_validate(m).to_api() for m in milestones])

    @app.route("/v1/goals/<goal_id>/progress")
    def goal_progress(goal_id: str):
        """Evaluate a goal for the current period, all time, or a date range."""
        progress = goals.get_progress(
            goal_id,
            user_id=request.args.get("userId"),
            window=request.args.get("period"),
            reference=parse_instant(request.args.get("at")),
        )
        return jsonify(progress.to_api())

    @app.route("/v1/goals/<goal_id>/consistency")
    def goal_consistency(goal_id: str):
        """Per-period completion history of a habit or metric goal."""
        consistency = goals.get_consistency(
            goal_id,
            user_id=request.args.get("userId"),
            since=parse_instant(request.args.get("since")),
            until=parse_instant(request.args.get("until")),
            reference=parse_instant(request.args.get("at")),
            include_streak=_flag(request.args.get("streak")),
        )
        return jsonify(consistency.to_api())

    @app.route("/v1/stats/users/<user_id>")
    def user_stats(user_id: str):
        """Finished-book statistics of a user."""
        return jsonify(stats.get_user_stats(user_id).to_api())

    @app.route("/v1/stats/books/<int:book_id>")
    def book_stats(book_id: int):
        """Reader distribution of a book."""
        return jsonify(stats.get_book_stats(book_id).to_api())

    @app.route("/v1/stats/leaderboard")
    def leaderboard():
        """Users with the most finished books."""
        limit = request.args.get("limit", type=int)
        if limit is None:
            limit = get_config().leaderboard_limit
        if limit < 1:
            return jsonify({"error": "limit must be at least 1"}), 400
        rows = stats.leaderboard(limit)
        return jsonify([row.to_api() for row in rows])

    @app.route("/v1/progress/<user_id>/<int:book_id>", methods=["GET"])
    def get_progress(user_id: str, book_id: int):
        """A user's progress on a book."""
        record = tracker.get(user_id, book_id)
        if record is None:
            return jsonify({"error": "Progress not found"}), 404
        return jsonify(ProgressResponse.model_validate(record).to_api())

    @app.route("/v1/progress/<user_id>/<int:book_id>", methods=["PUT"])
    def put_progress(user_id: str, book_id: int):
        """Create or update a user's progress on a book."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "JSON object body is required"}), 400

        update = ProgressUpdate.model_validate(data)
        record = tracker.upsert(user_id, book_id, update)
        return jsonify(ProgressResponse.model_validate(record).to_api())

    @app.route("/v1/progress/<user_id>/<int:book_id>", methods=["DELETE"])
    def delete_progress(user_id: str, book_id: int):
        """Remove a user's progress on a book."""
        if not tracker.delete(user_id, book_id):
            return jsonify({"error": "Progress not found"}), 404
        return "", 204

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the HTTP API server."""
    config = get_config()
    host = host or config.api_host
    port = port or config.api_port

    app = create_app()
    logger.info("Serving companion API on http://%s:%d", host, port)
    app.run(host=host, port=port, debug=debug)
