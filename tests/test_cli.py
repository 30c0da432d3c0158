"""Tests for timekeeper/cli/main.py."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from timekeeper.cli.main import DEFAULT_CONFIG, app
from timekeeper.stats import Stats

runner = CliRunner()


class TestInitCommand:
    def test_writes_config_and_creates_tables(self, tmp_path, monkeypatch):
        config_path = tmp_path / "timekeeper" / "config.toml"
        monkeypatch.setattr("timekeeper.config.DEFAULT_CONFIG_PATH", config_path)

        with patch("timekeeper.storage.db.init_db", new_callable=AsyncMock) as init_db, \
                patch("timekeeper.storage.db.close_db", new_callable=AsyncMock) as close_db:
            result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert config_path.read_text() == DEFAULT_CONFIG
        init_db.assert_awaited_once()
        close_db.assert_awaited_once()
        assert "initialized" in result.output

    def test_keeps_existing_config(self, tmp_path, monkeypatch):
        config_path = tmp_path / "config.toml"
        config_path.write_text("[server]\nport = 9000\n")
        monkeypatch.setattr("timekeeper.config.DEFAULT_CONFIG_PATH", config_path)

        with patch("timekeeper.storage.db.init_db", new_callable=AsyncMock), \
                patch("timekeeper.storage.db.close_db", new_callable=AsyncMock):
            result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert config_path.read_text() == "[server]\nport = 9000\n"
        assert "Config exists" in result.output


class TestStatsCommand:
    def test_prints_owner_stats(self):
        @asynccontextmanager
        async def fake_session():
            yield MagicMock()

        stats = Stats(tasks_completed=4, total_focus=5400, current_streak=3)
        with patch("timekeeper.storage.db.get_session", fake_session), \
                patch("timekeeper.storage.db.close_db", new_callable=AsyncMock), \
                patch("timekeeper.stats.compute_stats", new_callable=AsyncMock, return_value=stats) as compute:
            result = runner.invoke(app, ["stats", "alice"])

        assert result.exit_code == 0
        assert compute.await_args.args[1] == "alice"
        assert "1h 30m" in result.output
        assert "3 days" in result.output


class TestServeCommand:
    def test_uses_configured_address(self):
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--port", "6000"])

        assert result.exit_code == 0
        assert run.call_args.args[0] == "timekeeper.api.routes:app"
        assert run.call_args.kwargs["port"] == 6000
