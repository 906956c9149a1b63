"""
Unit tests for the CLI.

Commands that talk to the API get a SimulatedMessagingClient in place of
MessagingClient.from_settings().
"""

import sys

import pytest
from click.testing import CliRunner
from loguru import logger

from threadsync import __version__
from threadsync.cli.commands import send as send_module
from threadsync.cli.commands import threads as threads_module
from threadsync.cli.commands import watch as watch_module
from threadsync.cli.main import cli
from threadsync.services.messaging.simulator import DEMO_AGENT, SimulatedMessagingClient
from threadsync.settings import settings


class SimulatorFactory:
    """Stands in for MessagingClient inside a command module."""

    def __init__(self, client):
        self.client = client

    def from_settings(self, **overrides):
        return self.client


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def simulator(monkeypatch):
    client = SimulatedMessagingClient.with_demo_thread(reply_texts=[])
    factory = SimulatorFactory(client)
    monkeypatch.setattr(threads_module, "MessagingClient", factory)
    monkeypatch.setattr(send_module, "MessagingClient", factory)
    monkeypatch.setattr(watch_module, "MessagingClient", factory)
    return client


class TestGroup:
    """Top-level group."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        for name in ("threads", "topics", "watch", "send", "simulate", "delete"):
            assert name in result.output


class TestThreadCommands:
    """threads / topics / delete."""

    def test_threads(self, runner, simulator):
        result = runner.invoke(cli, ["threads", "--agent", DEMO_AGENT])
        assert result.exit_code == 0, result.output
        assert "demo-thread" in result.output

    def test_threads_requires_agent(self, runner, monkeypatch):
        monkeypatch.setattr(settings.messaging, "agent", None)
        result = runner.invoke(cli, ["threads"])
        assert result.exit_code == 2

    def test_topics(self, runner, simulator):
        result = runner.invoke(cli, ["topics", "demo-thread"])
        assert result.exit_code == 0, result.output
        assert "billing" in result.output
        assert "(no topic)" in result.output

    def test_delete(self, runner, simulator):
        result = runner.invoke(cli, ["delete", "demo-thread", "--yes"])
        assert result.exit_code == 0, result.output
        assert simulator.threads == []


class TestSendCommand:
    """send."""

    def test_send_text(self, runner, simulator):
        result = runner.invoke(cli, ["send", "demo-thread", "hello", "--agent", DEMO_AGENT, "--scope", "billing"])
        assert result.exit_code == 0, result.output
        assert "demo-thread" in result.output
        assert simulator.history["demo-thread"][-1].scope == "billing"

    def test_send_needs_content(self, runner, simulator):
        result = runner.invoke(cli, ["send", "demo-thread", "--agent", DEMO_AGENT])
        assert result.exit_code == 2

    def test_send_unknown_thread(self, runner, simulator):
        result = runner.invoke(cli, ["send", "missing", "hello", "--agent", DEMO_AGENT])
        assert result.exit_code == 1


class TestWatchCommand:
    """watch."""

    def test_watch_prints_scoped_history(self, runner, simulator):
        result = runner.invoke(
            cli, ["watch", "demo-thread", "--agent", DEMO_AGENT, "--scope", "billing", "--duration", "0.2"]
        )
        assert result.exit_code == 0, result.output
        assert "Watching demo-thread" in result.output
        assert "INV-2041" in result.output
        assert "Hi, I need help with my invoice." not in result.output
        assert "stream_thread_events" in [name for name, _ in simulator.calls]

    def test_watch_unknown_thread_still_streams(self, runner, simulator):
        result = runner.invoke(cli, ["watch", "missing", "--agent", DEMO_AGENT, "--duration", "0.1"])
        assert result.exit_code == 0, result.output
        assert "Watching missing" in result.output
        assert ("stream_thread_events", {"thread_id": "missing"}) in simulator.calls

    def test_scope_options_exclusive(self, runner):
        result = runner.invoke(cli, ["watch", "t-1", "--agent", DEMO_AGENT, "--scope", "x", "--no-topic"])
        assert result.exit_code == 2


class TestSimulateCommand:
    """simulate."""

    def test_script(self, runner):
        result = runner.invoke(cli, ["simulate", "--script", "--delay-ms", "1"])
        assert result.exit_code == 0, result.output
        assert "event: connected\n" in result.output
        assert "event: Handoff\n" in result.output

    def test_run(self, runner):
        result = runner.invoke(cli, ["simulate", "-m", "Ping from test", "--delay-ms", "5"])
        assert result.exit_code == 0, result.output
        assert "Ping from test" in result.output
        assert "Simulation complete" in result.output
