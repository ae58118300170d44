"""Tests for configuration loading."""

from pathlib import Path

from bookclub.companion.config import Config, get_config, reset_config


class TestConfig:
    """Tests for Config.from_env and validate."""

    def test_defaults(self, monkeypatch):
        for name in (
            "BOOKCLUB_DB_PATH",
            "BOOKCLUB_DEFAULT_DISPLAY_NAME",
            "BOOKCLUB_LEADERBOARD_LIMIT",
            "BOOKCLUB_CONSISTENCY_MAX_PERIODS",
            "BOOKCLUB_EVENT_RETENTION_DAYS",
            "BOOKCLUB_API_HOST",
            "BOOKCLUB_API_PORT",
        ):
            monkeypatch.delenv(name, raising=False)

        config = Config.from_env()

        assert config.db_path == Path.home() / ".bookclub" / "companion.db"
        assert config.default_display_name == "Unknown User"
        assert config.leaderboard_limit == 10
        assert config.consistency_max_periods == 100
        assert config.event_retention_days == 30
        assert config.api_host == "127.0.0.1"
        assert config.api_port == 5000

    def test_env_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("BOOKCLUB_DB_PATH", str(tmp_path / "club.db"))
        monkeypatch.setenv("BOOKCLUB_DEFAULT_DISPLAY_NAME", "Anonymous Reader")
        monkeypatch.setenv("BOOKCLUB_LEADERBOARD_LIMIT", "25")
        monkeypatch.setenv("BOOKCLUB_API_PORT", "8080")

        config = Config.from_env()

        assert config.db_path == tmp_path / "club.db"
        assert config.default_display_name == "Anonymous Reader"
        assert config.leaderboard_limit == 25
        assert config.api_port == 8080

    def test_validate_ok(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("BOOKCLUB_DB_PATH", str(tmp_path / "nested" / "club.db"))

        config = Config.from_env()

        assert config.validate() == []
        assert (tmp_path / "nested").exists()

    def test_validate_limits(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("BOOKCLUB_DB_PATH", str(tmp_path / "club.db"))
        monkeypatch.setenv("BOOKCLUB_LEADERBOARD_LIMIT", "0")
        monkeypatch.setenv("BOOKCLUB_CONSISTENCY_MAX_PERIODS", "0")
        monkeypatch.setenv("BOOKCLUB_EVENT_RETENTION_DAYS", "0")

        errors = Config.from_env().validate()

        assert len(errors) == 3
        assert any("LEADERBOARD_LIMIT" in e for e in errors)
        assert any("EVENT_RETENTION_DAYS" in e for e in errors)

    def test_global_instance(self, monkeypatch):
        monkeypatch.setenv("BOOKCLUB_LEADERBOARD_LIMIT", "3")

        assert get_config() is get_config()
        assert get_config().leaderboard_limit == 3

        monkeypatch.setenv("BOOKCLUB_LEADERBOARD_LIMIT", "4")
        reset_config()

        assert get_config().leaderboard_limit == 4
