"""CLI entry point for activity-ledger-server."""

import asyncio

import typer
import uvicorn

from activity_ledger_server import __version__
from activity_ledger_server.core.config import settings

app = typer.Typer(
    name="activity-ledger-server",
    help="Activity ledger, streak and points service",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server.

    Example:
        activity-ledger-server serve
        activity-ledger-server serve --host 0.0.0.0 --port 8080 --reload
    """
    uvicorn.run(
        "activity_ledger_server.app:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"activity-ledger-server v{__version__}")


async def _clear_ledger() -> int:
    # Imported here so `version` works without a reachable database
    from activity_ledger_server.core.cache import CacheClient
    from activity_ledger_server.core.database import close_database, get_session
    from activity_ledger_server.services.ledger import LedgerService

    try:
        async with get_session() as session:
            return await LedgerService(session, CacheClient()).clear()
    finally:
        await close_database()


@app.command("clear-ledger")
def clear_ledger(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete every ledger row and event.

    Example:
        activity-ledger-server clear-ledger --yes
    """
    if not yes:
        typer.confirm("Delete every ledger row?", abort=True)

    removed = asyncio.run(_clear_ledger())
    typer.echo(f"Deleted {removed} ledger rows")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
