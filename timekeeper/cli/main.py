"""Timekeeper command line entry point, built on Typer."""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="timekeeper",
    help="Tasks, focus sessions and streaks, served over HTTP.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_CONFIG = """[general]
db_url = "postgresql+asyncpg://localhost/timekeeper"
log_level = "INFO"

[server]
host = "0.0.0.0"
port = 5001
cors_origins = ["http://localhost:3000"]
rate_limit_max = 100
rate_limit_window_seconds = 900
broadcast_timeout_seconds = 5.0

[auth]
# Identity provider endpoint that exchanges a token for {"uid": ...}
provider_url = ""
timeout_seconds = 10.0

[sessions]
min_duration = 300
max_duration = 14400
default_duration = 1500
exclusive = true

[tasks]
default_importance = 50
due_offset_hours = 24

[stats]
focus_measure = "requested"
"""


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
    )


@app.command()
def init(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Write a default config file and create the database tables."""
    _setup_logging(verbose)

    async def _init():
        from timekeeper.config import DEFAULT_CONFIG_PATH
        from timekeeper.storage.db import close_db, init_db

        config_path = DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        if not config_path.exists():
            config_path.write_text(DEFAULT_CONFIG)
            console.print(f"  Config written: {config_path}")
        else:
            console.print(f"  Config exists: {config_path}")

        console.print("  Initializing database...")
        try:
            await init_db()
        finally:
            await close_db()
        console.print("  Database ready.")
        console.print("\n[bold green]Timekeeper initialized![/bold green]")
        console.print("Start the API with [cyan]timekeeper serve[/cyan]")

    asyncio.run(_init())


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from config)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run the REST API and the /ws update channel."""
    _setup_logging(verbose)

    import uvicorn

    from timekeeper.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "timekeeper.api.routes:app",
        host=host or settings.server.host,
        port=port or settings.server.port,
        reload=reload,
        log_level="debug" if verbose else settings.general.log_level.lower(),
    )


@app.command()
def stats(
    owner_id: str = typer.Argument(help="Owner (user) id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Show an owner's completed tasks, total focus time and streak."""
    _setup_logging(verbose)

    async def _stats():
        from timekeeper.config import get_settings
        from timekeeper.stats import compute_stats
        from timekeeper.storage.db import close_db, get_session

        try:
            async with get_session() as session:
                result = await compute_stats(
                    session, owner_id, focus_measure=get_settings().stats.focus_measure
                )
        finally:
            await close_db()

        hours, rest = divmod(result.total_focus, 3600)
        table = Table(title=f"Stats for {owner_id}")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green", justify="right")
        table.add_row("Tasks completed", str(result.tasks_completed))
        table.add_row("Total focus", f"{hours}h {rest // 60}m")
        table.add_row("Current streak", f"{result.current_streak} days")
        console.print(table)

    asyncio.run(_stats())


@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Show database health and record counts."""
    _setup_logging(verbose)

    async def _status():
        from sqlalchemy import func, select

        from timekeeper.storage.db import check_db, close_db, get_session
        from timekeeper.storage.models import FocusSession, Task

        try:
            async with get_session() as session:
                if not await check_db(session):
                    console.print("[red]Database unreachable[/red]")
                    raise typer.Exit(1)

                counts = {}
                for model, name in [(Task, "tasks"), (FocusSession, "focus_sessions")]:
                    result = await session.execute(select(func.count()).select_from(model))
                    counts[name] = result.scalar()
        finally:
            await close_db()

        table = Table(title="Record Counts")
        table.add_column("Collection", style="cyan")
        table.add_column("Count", style="green", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print(table)

    asyncio.run(_status())


if __name__ == "__main__":
    app()
