"""Configuration management for the companion.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Statistics
    default_display_name: str
    leaderboard_limit: int

    # Progress event outbox
    event_retention_days: int

    # Goals
    consistency_max_periods: int

    # HTTP API
    api_host: str
    api_port: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "BOOKCLUB_DB_PATH",
            str(Path.home() / ".bookclub" / "companion.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            default_display_name=os.environ.get(
                "BOOKCLUB_DEFAULT_DISPLAY_NAME", "Unknown User"
            ),
            leaderboard_limit=int(os.environ.get("BOOKCLUB_LEADERBOARD_LIMIT", "10")),
            event_retention_days=int(
                os.environ.get("BOOKCLUB_EVENT_RETENTION_DAYS", "30")
            ),
            consistency_max_periods=int(
                os.environ.get("BOOKCLUB_CONSISTENCY_MAX_PERIODS", "100")
            ),
            api_host=os.environ.get("BOOKCLUB_API_HOST", "127.0.0.1"),
            api_port=int(os.environ.get("BOOKCLUB_API_PORT", "5000")),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.leaderboard_limit < 1:
            errors.append("BOOKCLUB_LEADERBOARD_LIMIT must be at least 1")

        if self.consistency_max_periods < 1:
            errors.append("BOOKCLUB_CONSISTENCY_MAX_PERIODS must be at least 1")

        if self.event_retention_days < 1:
            errors.append("BOOKCLUB_EVENT_RETENTION_DAYS must be at least 1")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
