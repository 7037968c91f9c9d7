"""
Smoke tests for the learnloop CLI.

The service is swapped for one backed by the in-memory gateway so the
commands run without touching the user's data directory.
"""

import json

import pytest
from typer.testing import CliRunner

from src.cli import progress_cli
from src.cli.progress_cli import app
from src.progress.models import HIGH_LEVEL_BUCKET, Phase

runner = CliRunner()


@pytest.fixture
def cli_service(service, monkeypatch, make_attempt):
    service.start_session("networking", "learner-1")
    service.submit_topic_evaluation(
        "networking", "learner-1", HIGH_LEVEL_BUCKET, make_attempt(4, topic="binary numbers")
    )
    service.submit_flashcard_evaluation("networking", "learner-1", "OSI Model", "Physical", make_attempt(4))
    monkeypatch.setattr(progress_cli, "_get_service", lambda: service)
    return service


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("progress", "queue", "phase", "export"):
        assert command in result.output


def test_progress_dashboard(cli_service):
    result = runner.invoke(app, ["progress", "networking", "learner-1"])

    assert result.exit_code == 0
    assert "initialization" in result.output
    assert "binary numbers" in result.output
    assert "Physical" in result.output


def test_progress_unknown_session_fails(cli_service):
    result = runner.invoke(app, ["progress", "networking", "nobody"])

    assert result.exit_code == 1
    assert "No session" in result.output


def test_queue_shows_due_items(cli_service):
    result = runner.invoke(app, ["queue", "networking", "learner-1", "OSI Model", "--limit", "2"])

    assert result.exit_code == 0
    assert "Data Link" in result.output
    assert "Network" in result.output


def test_queue_unknown_concept_fails(cli_service):
    result = runner.invoke(app, ["queue", "networking", "learner-1", "Routing"])

    assert result.exit_code == 1
    assert "Routing" in result.output


def test_phase_transition(cli_service):
    result = runner.invoke(app, ["phase", "networking", "learner-1", "high-level"])

    assert result.exit_code == 0
    assert cli_service.get_session("networking", "learner-1").current_phase is Phase.HIGH_LEVEL


def test_phase_gate_not_met_exits_two(cli_service):
    runner.invoke(app, ["phase", "networking", "learner-1", "high-level"])

    result = runner.invoke(app, ["phase", "networking", "learner-1", "concept-learning", "-c", "OSI Model"])

    assert result.exit_code == 2
    assert "Not advanced" in result.output


def test_phase_force(cli_service):
    result = runner.invoke(
        app, ["phase", "networking", "learner-1", "memorization", "--concept", "Subnetting", "--force"]
    )

    assert result.exit_code == 0
    session = cli_service.get_session("networking", "learner-1")
    assert session.current_phase is Phase.MEMORIZATION
    assert session.current_concept == "Subnetting"


def test_export_prints_document(cli_service):
    result = runner.invoke(app, ["export", "networking", "learner-1"])

    assert result.exit_code == 0
    document = json.loads(result.stdout)
    assert document["learnerId"] == "learner-1"
    assert document["version"] == 3
