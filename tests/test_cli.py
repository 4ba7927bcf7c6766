"""
Tests for the Typer CLI.

Tests cover:
- onboard: bootstrap files and workspace directories, existing files kept
- cron list/enable/disable/remove against the persisted job store
"""

import asyncio

import pytest
from typer.testing import CliRunner

from superbot.cli import commands
from superbot.config import Config
from superbot.cron.service import CronService

runner = CliRunner()


@pytest.fixture
def config(workspace, monkeypatch) -> Config:
    cfg = Config(workspace=workspace)
    monkeypatch.setattr(commands, "load_config", lambda: cfg)
    return cfg


def _store(config: Config):
    return config.workspace / "cron" / "jobs.json"


class TestOnboard:

    def test_creates_workspace(self, config):
        result = runner.invoke(commands.app, ["onboard"])

        assert result.exit_code == 0, result.output
        ws = config.workspace
        for name in ("AGENTS.md", "SOUL.md", "USER.md"):
            assert (ws / name).is_file()
        for name in ("memory", "skills", "sessions"):
            assert (ws / name).is_dir()
        assert (ws / "SOUL.md").read_text().startswith("# Personality")
        assert "Created USER.md" in result.output

    def test_keeps_existing_files(self, config):
        (config.workspace / "USER.md").write_text("I am Sam.")

        result = runner.invoke(commands.app, ["onboard"])

        assert result.exit_code == 0, result.output
        assert (config.workspace / "USER.md").read_text() == "I am Sam."
        assert "Kept USER.md" in result.output

    def test_explicit_workspace(self, config, tmp_path):
        target = tmp_path / "elsewhere"
        result = runner.invoke(commands.app, ["onboard", "--workspace", str(target)])

        assert result.exit_code == 0, result.output
        assert (target / "AGENTS.md").is_file()
        assert not (config.workspace / "AGENTS.md").exists()


class TestCronCommands:

    def test_list_empty(self, config):
        result = runner.invoke(commands.app, ["cron", "list"])
        assert result.exit_code == 0
        assert "No scheduled jobs." in result.output

    def test_list_enable_disable_remove(self, config):
        asyncio.run(CronService(store_path=_store(config)).add_job("standup", "remind", "cron", "0 9 * * 1-5"))

        listed = runner.invoke(commands.app, ["cron", "list"])
        assert listed.exit_code == 0
        assert "standup [cron 0 9 * * 1-5] enabled" in listed.output

        assert runner.invoke(commands.app, ["cron", "disable", "standup"]).exit_code == 0
        assert "No scheduled jobs." in runner.invoke(commands.app, ["cron", "list"]).output
        assert "standup" in runner.invoke(commands.app, ["cron", "list", "--all"]).output
        assert CronService(store_path=_store(config)).jobs["standup"].enabled is False

        assert runner.invoke(commands.app, ["cron", "enable", "standup"]).exit_code == 0
        assert CronService(store_path=_store(config)).jobs["standup"].enabled is True

        assert runner.invoke(commands.app, ["cron", "remove", "standup"]).exit_code == 0
        assert CronService(store_path=_store(config)).jobs == {}

    def test_unknown_job(self, config):
        result = runner.invoke(commands.app, ["cron", "remove", "nope"])
        assert result.exit_code == 1
        assert runner.invoke(commands.app, ["cron", "enable", "nope"]).exit_code == 1
