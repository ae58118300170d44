"""Read access to the reading statistics."""

from typing import Optional

from sqlalchemy import select

from ..config import get_config
from ..db.models import BookStats, UserStats
from ..db.schemas import BookStatsResponse, LeaderboardEntry, UserStatsResponse
from ..db.sqlite import Database, get_db
from ..errors import NotFound


class StatsReader:
    """Reads UserStats and BookStats. Never writes them."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def get_user_stats(self, user_id: str) -> UserStatsResponse:
        """Get a user's statistics.

        Raises:
            NotFound: If the user has never finished a book
        """
        with self.db.get_session() as session:
            stats = session.get(UserStats, user_id)
            if stats is None:
                raise NotFound(f"User stats not found: {user_id}")
            return UserStatsResponse.model_validate(stats)

    def get_book_stats(self, book_id: int) -> BookStatsResponse:
        """Get a book's reader distribution.

        Raises:
            NotFound: If no progress was ever recorded for the book
        """
        with self.db.get_session() as session:
            stats = session.get(BookStats, book_id)
            if stats is None:
                raise NotFound(f"Book stats not found: {book_id}")
            return BookStatsResponse.model_validate(stats)

    def leaderboard(self, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        """Get users ordered by finished books, most first.

        Args:
            limit: Maximum rows (default: BOOKCLUB_LEADERBOARD_LIMIT)
        """
        if limit is None:
            limit = get_config().leaderboard_limit

        with self.db.get_session() as session:
            stmt = (
                select(UserStats)
                .where(UserStats.finished_count > 0)
                .order_by(
                    UserStats.finished_count.desc(),
                    UserStats.last_finished_at.asc(),
                    UserStats.user_id,
                )
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [LeaderboardEntry.model_validate(row) for row in rows]
