"""Tests for the imaginate.py command line."""

import pytest
from typer.testing import CliRunner

from imaginator.utils.event_logging import log_job_event
from scripts.imaginate import app

runner = CliRunner()


@pytest.mark.unit
def test_events_command(tmp_path):
    events_file = tmp_path / "events.jsonl"
    log_job_event(events_file, "enqueued", "a.png", "worker", kind="latex")
    log_job_event(events_file, "render_failed", "a.png", "worker", error="Stage 'dvips' failed")

    result = runner.invoke(app, ["events", "--events", str(events_file), "--type", "render_failed"])

    assert result.exit_code == 0
    assert "render_failed" in result.output
    assert "Stage 'dvips' failed" in result.output
    assert "enqueued" not in result.output


@pytest.mark.unit
def test_status_without_worker(endpoint):
    result = runner.invoke(app, ["status", "--endpoint", endpoint])

    assert result.exit_code == 1
    assert "No worker" in result.output


@pytest.mark.unit
def test_enqueue_rejects_forbidden_formula(endpoint, tmp_path):
    result = runner.invoke(
        app,
        ["enqueue", "latex", r"\include{secret}", "--endpoint", endpoint, "--output-dir", str(tmp_path)],
    )

    assert result.exit_code == 1
    assert "Invalid LaTeX commands include" in result.output


@pytest.mark.unit
def test_enqueue_without_code(endpoint):
    result = runner.invoke(app, ["enqueue", "latex", "--endpoint", endpoint])

    assert result.exit_code == 2


@pytest.mark.unit
def test_enqueue_help_mentions_waiting_for_spawned_worker():
    result = runner.invoke(app, ["enqueue", "--help"])

    assert result.exit_code == 0
    assert "waits" in result.output
    assert "serve" in result.output
