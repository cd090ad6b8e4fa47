"""Command-line interface for the time clock."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import typer

from .config import TrackerSettings
from .errors import ClockStateError
from .paths import get_db_path
from .reporting import SummaryPrinter
from .server_runner import run_server
from .service import TimeClockService

app = typer.Typer(help="Employee time clock with daily work summaries.")

DbOption = typer.Option(
    None, "--db", path_type=Path, help="Location of the time clock SQLite database."
)
OffsetOption = typer.Option(
    1, "--utc-offset", min=-12, max=14, help="Local time offset from UTC in hours."
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _service(db_path: Optional[Path], utc_offset: int, lookback_days: int = 30) -> TimeClockService:
    settings = TrackerSettings.from_options(
        utc_offset_hours=utc_offset, lookback_days=lookback_days
    )
    return TimeClockService(db_path or get_db_path(), settings)


def _parse_day(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter(f"Expected a date as YYYY-MM-DD, got {value!r}") from exc


def _parse_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter("Expected an ISO timestamp, e.g. 2026-02-02T09:00") from exc


@app.command("clock-in")
def clock_in(
    user_id: str = typer.Argument(..., help="User identifier."),
    at: Optional[str] = typer.Option(
        None, "--at", help="Manual timestamp (ISO format, local time if no offset)."
    ),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form note."),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
) -> None:
    """Record a clock-in."""
    service = _service(db_path, utc_offset)
    try:
        event = service.clock_in(user_id, timestamp=_parse_at(at), notes=notes)
    except ClockStateError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Clocked in at {event.timestamp.astimezone(service.settings.tzinfo):%Y-%m-%d %H:%M}")


@app.command("clock-out")
def clock_out(
    user_id: str = typer.Argument(..., help="User identifier."),
    at: Optional[str] = typer.Option(
        None, "--at", help="Manual timestamp (ISO format, local time if no offset)."
    ),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form note."),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
) -> None:
    """Record a clock-out."""
    service = _service(db_path, utc_offset)
    try:
        event = service.clock_out(user_id, timestamp=_parse_at(at), notes=notes)
    except ClockStateError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Clocked out at {event.timestamp.astimezone(service.settings.tzinfo):%Y-%m-%d %H:%M}")


@app.command()
def status(
    user_id: str = typer.Argument(..., help="User identifier."),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
) -> None:
    """Show whether the user is clocked in and today's hours."""
    service = _service(db_path, utc_offset)
    SummaryPrinter(service.settings, typer.echo).print_today_status(
        service.get_today_status(user_id)
    )


@app.command()
def history(
    user_id: str = typer.Argument(..., help="User identifier."),
    start: Optional[str] = typer.Option(
        None, "--start", help="First day (YYYY-MM-DD). Defaults to six days before --end."
    ),
    end: Optional[str] = typer.Option(
        None, "--end", help="Last day (YYYY-MM-DD). Defaults to today."
    ),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
) -> None:
    """Print daily work summaries for a date range."""
    service = _service(db_path, utc_offset)
    end_day = _parse_day(end) if end else service.today()
    start_day = _parse_day(start) if start else end_day - timedelta(days=6)
    summary = service.get_daily_summaries(user_id, start_day, end_day)
    SummaryPrinter(service.settings, typer.echo).print_period_summary(summary)


@app.command()
def sweep(
    user_id: Optional[str] = typer.Option(
        None, "--user", help="Only check this user. Defaults to every active user."
    ),
    lookback_days: int = typer.Option(
        30, "--lookback", min=1, help="Number of past days to scan."
    ),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
) -> None:
    """Raise incidents for past days left without a clock-out."""
    service = _service(db_path, utc_offset, lookback_days)
    if user_id:
        reports = service.detect_and_report_open_days(user_id)
        typer.echo(f"{len(reports)} open day(s) reported for {user_id}")
        return
    result = service.sweep_all_users()
    typer.echo(
        f"Processed {result.processed} user(s), {result.failed} failed, "
        f"{result.reports} open day(s) reported"
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = DbOption,
    utc_offset: int = OffsetOption,
    lookback_days: int = typer.Option(
        30, "--lookback", min=1, help="Number of past days the daily sweep scans."
    ),
    sweep_at: str = typer.Option(
        "00:05", "--sweep-at", help="Local time (HH:MM) of the daily open-day sweep."
    ),
    sweeper: bool = typer.Option(
        True,
        "--sweeper/--no-sweeper",
        help="Run the daily open-day sweep in the background.",
    ),
) -> None:
    """Start the HTTP API with the background open-day sweeper."""
    settings = TrackerSettings.from_options(
        utc_offset_hours=utc_offset,
        lookback_days=lookback_days,
        sweep_at=sweep_at,
    )
    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        run_sweeper=sweeper,
    )
