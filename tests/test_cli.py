"""Tests for the typer command-line interface."""

from datetime import datetime, timedelta, timezone

import pytest
from typer.testing import CliRunner

from timeclock.cli import app

runner = CliRunner()


@pytest.fixture
def db_args(tmp_path):
    return ["--db", str(tmp_path / "cli.sqlite3")]


def local_today():
    return (datetime.now(timezone.utc) + timedelta(hours=1)).date()


def test_manual_day_and_history(db_args):
    result = runner.invoke(app, ["clock-in", "user-1", "--at", "2026-02-03T09:00", *db_args])
    assert result.exit_code == 0, result.output
    assert "Clocked in at 2026-02-03 09:00" in result.output

    result = runner.invoke(app, ["clock-out", "user-1", "--at", "2026-02-03T17:00", *db_args])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app,
        ["history", "user-1", "--start", "2026-02-03", "--end", "2026-02-03", *db_args],
    )
    assert result.exit_code == 0, result.output
    assert "2026-02-03  08:00:00" in result.output
    assert "09:00 -> 17:00" in result.output
    assert "Total hours:   8.00" in result.output


def test_clock_out_without_clock_in_fails(db_args):
    result = runner.invoke(app, ["clock-out", "user-1", "--at", "2026-02-03T17:00", *db_args])

    assert result.exit_code == 1
    assert "You must clock in before clocking out" in result.output


def test_invalid_timestamp(db_args):
    result = runner.invoke(app, ["clock-in", "user-1", "--at", "yesterday", *db_args])

    assert result.exit_code == 2


def test_status_without_events(db_args):
    result = runner.invoke(app, ["status", "user-1", *db_args])

    assert result.exit_code == 0, result.output
    assert "Currently clocked out" in result.output
    assert "Hours today: 0.00" in result.output


def test_history_without_events(db_args):
    result = runner.invoke(app, ["history", "user-1", *db_args])

    assert result.exit_code == 0, result.output
    assert "No clock events recorded" in result.output


def test_sweep_reports_open_days(db_args):
    day = local_today() - timedelta(days=3)
    runner.invoke(app, ["clock-in", "user-1", "--at", f"{day}T09:00", *db_args])

    result = runner.invoke(app, ["sweep", "--user", "user-1", *db_args])
    assert result.exit_code == 0, result.output
    assert "1 open day(s) reported for user-1" in result.output

    result = runner.invoke(app, ["sweep", *db_args])
    assert result.exit_code == 0, result.output
    assert "Processed 1 user(s), 0 failed, 1 open day(s) reported" in result.output


@pytest.mark.parametrize("flag", ["--start", "--end"])
def test_history_rejects_malformed_dates(db_args, flag):
    result = runner.invoke(app, ["history", "user-1", flag, "03/02/2026", *db_args])

    assert result.exit_code == 2
    assert not isinstance(result.exception, ValueError)
