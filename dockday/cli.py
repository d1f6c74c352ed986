"""dockday CLI — port approach tracking from AIS ETA snapshots.

Commands:
  init-db   — create database tables
  fetch     — run one fetch → diff → rollup tick now
  run       — run the tick scheduler in the foreground
  serve     — start the read-only API (scheduler included)
  rollup    — recompute daily/weekly aggregates for a date
  stats     — show daily aggregates
  events    — show recent vessel events
  runs      — show recent pipeline runs
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table


app = typer.Typer(
    name="dockday",
    help="Vessel arrival events and rollups for a port.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    from dockday.config import settings

    logging.basicConfig(level=logging.DEBUG if verbose else settings.LOG_LEVEL)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_database():
    """Create database tables."""
    from dockday.database import init_db

    try:
        init_db()
    except Exception as e:
        console.print(f"[red]Database setup failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command("fetch")
def fetch_once():
    """Fetch the port's vessel list once and detect events."""
    from dockday.database import init_db
    from dockday.modules.pipeline import build_pipeline
    from dockday.models.base import PipelineStatusEnum

    init_db()
    pipeline = build_pipeline()
    with console.status(f"[bold]Fetching vessels for {pipeline.port_code}..."):
        result = pipeline.run_tick()

    if result.status != PipelineStatusEnum.COMPLETED:
        console.print(f"[red]Tick failed: {result.error}[/red]")
        raise typer.Exit(1)
    if result.baseline:
        console.print(
            f"[green]Baseline snapshot saved[/green] ({result.vessels_count} vessels). "
            "Events are detected from the next fetch on."
        )
        return
    console.print(f"[green]{result.vessels_count} vessels, {result.events_created} events[/green]")
    for event_type, count in sorted(result.event_counts.items()):
        console.print(f"  {event_type}: {count}")


@app.command("run")
def run_scheduler(
    interval: Optional[str] = typer.Option(
        None, "--interval", help="Tick interval (e.g. 30s, 5m, 1h; default FETCH_INTERVAL_MINUTES)"
    ),
):
    """Run the fetch scheduler in the foreground (Ctrl+C to stop)."""
    from dockday.config import settings
    from dockday.database import init_db
    from dockday.modules.pipeline import build_scheduler

    if interval is None:
        interval = f"{int(settings.FETCH_INTERVAL_MINUTES)}m"
    seconds = _parse_duration(interval)
    if seconds <= 0:
        console.print(f"[red]Invalid interval: {interval}[/red]")
        raise typer.Exit(1)

    init_db()
    scheduler = build_scheduler(interval_minutes=seconds / 60)
    console.print(f"Scheduler running every [cyan]{interval}[/cyan] — press Ctrl+C to stop")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop(timeout=0)
        console.print("[yellow]Stopped.[/yellow]")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Start the read-only API; the scheduler runs alongside unless disabled."""
    import uvicorn

    console.print(f"API running at [cyan]http://{host}:{port}[/cyan] — press Ctrl+C to stop")
    uvicorn.run("dockday.main:app", host=host, port=port)


@app.command("rollup")
def rollup(
    day: Optional[str] = typer.Option(None, "--day", help="Port-local date YYYY-MM-DD (default: today)"),
):
    """Recompute the daily and weekly aggregates containing a date."""
    from dockday.config import settings
    from dockday.database import SessionLocal
    from dockday.modules.aggregator import rollup_day, rollup_week
    from dockday.modules.stores import SqlAggregateStore, SqlEventStore
    from dockday.utils.port_time import local_date, now_ms, parse_day_key

    now = now_ms()
    try:
        target = parse_day_key(day) if day else local_date(now)
    except ValueError:
        console.print(f"[red]Invalid date: {day} (expected YYYY-MM-DD)[/red]")
        raise typer.Exit(1)

    db = SessionLocal()
    try:
        events = SqlEventStore(db, settings.PORT_CODE)
        aggregates = SqlAggregateStore(db)
        day_key, day_row = rollup_day(events, aggregates, target, now)
        week_key, week_row = rollup_week(events, aggregates, target, now)
        db.commit()
    except Exception as e:
        db.rollback()
        console.print(f"[red]Rollup failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()

    table = Table(title="Rollup")
    table.add_column("Window")
    table.add_column("Arrival events", justify="right")
    table.add_column("Arrival ships", justify="right")
    table.add_column("Risk changes", justify="right")
    table.add_column("Risk ships", justify="right")
    for label, row in ((f"day {day_key}", day_row), (f"week {week_key}", week_row)):
        table.add_row(
            label,
            str(row.arrival_event_count),
            str(row.arrival_ship_count),
            str(row.risk_change_count),
            str(row.risk_change_ship_count),
        )
    console.print(table)


@app.command("stats")
def stats(
    days: int = typer.Option(7, "--days", help="Number of days back from today"),
):
    """Show daily aggregates."""
    from dockday.database import SessionLocal
    from dockday.models.aggregate import DailyAggregate
    from dockday.utils.port_time import local_date, now_ms

    start = (local_date(now_ms()) - timedelta(days=days - 1)).isoformat()
    db = SessionLocal()
    try:
        rows = (
            db.query(DailyAggregate)
            .filter(DailyAggregate.day >= start)
            .order_by(DailyAggregate.day)
            .all()
        )
    finally:
        db.close()

    if not rows:
        console.print("[yellow]No aggregates yet — run [cyan]dockday fetch[/cyan] first[/yellow]")
        return

    table = Table(title=f"Daily aggregates since {start}")
    table.add_column("Day")
    table.add_column("Arrival events", justify="right")
    table.add_column("Arrival ships", justify="right")
    table.add_column("Risk changes", justify="right")
    table.add_column("Risk ships", justify="right")
    for row in rows:
        table.add_row(
            row.day,
            str(row.arrival_event_count),
            str(row.arrival_ship_count),
            str(row.risk_change_count),
            str(row.risk_change_ship_count),
        )
    console.print(table)


@app.command("events")
def events(
    mmsi: Optional[str] = typer.Option(None, "--mmsi"),
    limit: int = typer.Option(20, "--limit"),
):
    """Show recent vessel events."""
    from dockday.database import SessionLocal
    from dockday.models.ship_event import ShipEvent
    from dockday.utils.port_time import PORT_TZ

    db = SessionLocal()
    try:
        q = db.query(ShipEvent)
        if mmsi:
            q = q.filter(ShipEvent.mmsi == mmsi)
        rows = q.order_by(ShipEvent.detected_at.desc(), ShipEvent.id.desc()).limit(limit).all()
    finally:
        db.close()

    if not rows:
        console.print("[yellow]No events found[/yellow]")
        return

    table = Table(title="Recent events")
    table.add_column("Detected (UTC+8)")
    table.add_column("MMSI")
    table.add_column("Type")
    table.add_column("Detail")
    for row in rows:
        detected = datetime.fromtimestamp(row.detected_at / 1000, tz=PORT_TZ)
        table.add_row(detected.strftime("%Y-%m-%d %H:%M"), row.mmsi, row.event_type, row.detail)
    console.print(table)


@app.command("runs")
def runs(
    limit: int = typer.Option(10, "--limit"),
):
    """Show recent pipeline runs."""
    from dockday.database import SessionLocal
    from dockday.models.pipeline_run import PipelineRun

    db = SessionLocal()
    try:
        rows = db.query(PipelineRun).order_by(PipelineRun.run_id.desc()).limit(limit).all()
    finally:
        db.close()

    if not rows:
        console.print("[yellow]No pipeline runs recorded[/yellow]")
        return

    table = Table(title="Pipeline runs")
    table.add_column("Run", justify="right")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Vessels", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Error")
    colors = {"completed": "green", "failed": "red", "running": "yellow"}
    for row in rows:
        color = colors.get(row.status, "white")
        table.add_row(
            str(row.run_id),
            row.started_at.strftime("%Y-%m-%d %H:%M:%S") if row.started_at else "-",
            f"[{color}]{row.status}[/{color}]",
            str(row.vessels_count) if row.vessels_count is not None else "-",
            str(row.events_created),
            (row.error or "")[:60],
        )
    console.print(table)


def _parse_duration(s: str) -> int:
    """Parse duration string (30s, 5m, 1h) to seconds. Returns 0 when unparseable."""
    s = s.strip().lower()
    try:
        if s.endswith("s"):
            return int(s[:-1])
        if s.endswith("m"):
            return int(s[:-1]) * 60
        if s.endswith("h"):
            return int(s[:-1]) * 3600
        return int(s)
    except ValueError:
        return 0
