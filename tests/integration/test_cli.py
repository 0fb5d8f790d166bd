"""CLI tests using Typer's CliRunner."""

import pytest
from typer.testing import CliRunner

from feedscout.cli.main import app

pytestmark = pytest.mark.integration

runner = CliRunner()


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "cli.db")


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "feedscout v" in result.stdout


def test_add_agent_and_enqueue(db):
    result = runner.invoke(
        app,
        [
            "add-agent", "agent-1",
            "--user", "user-1",
            "--topic", "topic-1",
            "--title", "Async Python",
            "--keywords", "python, asyncio",
            "--db", db,
        ],
    )
    assert result.exit_code == 0
    assert "Saved agent agent-1" in result.stdout

    runner.invoke(app, ["add-agent", "agent-2", "--user", "user-1", "--topic", "topic-2", "--inactive", "--db", db])

    result = runner.invoke(app, ["enqueue", "agent-1", "agent-2", "--db", db])
    assert result.exit_code == 0
    assert "Enqueued 1 of 2 agents" in result.stdout

    result = runner.invoke(app, ["items", "--status", "pending", "--db", db])
    assert result.exit_code == 0
    assert "agent-1" in result.stdout

    result = runner.invoke(app, ["stats", "--db", db])
    assert result.exit_code == 0
    assert "Pending" in result.stdout


def test_items_empty(db):
    result = runner.invoke(app, ["items", "--db", db])

    assert result.exit_code == 0
    assert "No queue items" in result.stdout


def test_process_empty_queue(db):
    result = runner.invoke(app, ["process", "--db", db])

    assert result.exit_code == 0
    assert "Processed 0" in result.stdout


def test_cleanup(db):
    result = runner.invoke(app, ["cleanup", "--days", "3", "--db", db])

    assert result.exit_code == 0
    assert "Cleared 0 old queue items" in result.stdout
