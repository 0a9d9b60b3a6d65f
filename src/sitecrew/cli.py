"""Command-line interface for SiteCrew."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sitecrew import __version__
from sitecrew.core.exceptions import SiteCrewError

app = typer.Typer(
    name="sitecrew",
    help="Multi-tenant authorization and team invitations",
    add_completion=False,
)

console = Console()


def _bootstrap(config: Optional[str]):
    from sitecrew.core.config import get_settings
    from sitecrew.db.engine import configure_engine
    from sitecrew.utils.logging import setup_logging

    settings = get_settings(config)
    setup_logging(
        level=settings.logging.level,
        format=settings.logging.format.value,
        log_file=settings.logging.file,
        environment=settings.environment,
        sanitize_logs=settings.logging.sanitize,
    )
    configure_engine(settings=settings)
    return settings


# ============================================================================
# Database Commands
# ============================================================================

@app.command("init-db")
def init_db_command(
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Create all tenancy tables."""
    from sitecrew.db.engine import init_db

    settings = _bootstrap(config)
    try:
        init_db()
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Database initialized at {settings.database.url}")


# ============================================================================
# Tenancy Commands
# ============================================================================

@app.command("create-company")
def create_company(
    name: str = typer.Argument(..., help="Company name"),
    max_seats: int = typer.Option(5, "--max-seats", "-s", help="Seat capacity"),
    plan: str = typer.Option("starter", "--plan", "-p", help="Plan tier"),
    status: str = typer.Option("trial", "--status", help="Subscription status"),
    industry: str = typer.Option(None, "--industry", help="Industry"),
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Create a company with its subscription."""
    from sitecrew.auth.tenancy import TenancyManager

    _bootstrap(config)
    try:
        company = TenancyManager().create_company(
            None,
            name=name,
            max_seats=max_seats,
            plan_tier=plan,
            subscription_status=status,
            industry=industry,
        )
    except SiteCrewError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    table = Table(title="Company created")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key in ("id", "name", "subscription_status", "plan_tier", "max_seats"):
        table.add_row(key, str(company[key]))
    console.print(table)


@app.command("set-seats")
def set_seats(
    company_id: str = typer.Argument(..., help="Company id"),
    max_seats: int = typer.Argument(..., help="New seat capacity"),
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Change a company's seat capacity."""
    from sitecrew.auth.tenancy import TenancyManager

    _bootstrap(config)
    try:
        result = TenancyManager().update_seats(None, company_id, max_seats)
    except SiteCrewError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/green] {company_id}: {result['used_seats']}/{result['max_seats']} seats in use"
    )


@app.command("sweep-invitations")
def sweep_invitations(
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Mark lapsed pending invitations as expired."""
    from sitecrew.auth.invitations import InvitationManager

    settings = _bootstrap(config)
    try:
        count = InvitationManager(settings=settings).expire_lapsed()
    except SiteCrewError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Marked {count} invitation(s) as expired")


# ============================================================================
# Server Commands
# ============================================================================

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Run the REST API."""
    import uvicorn

    from sitecrew.api.main import create_app

    settings = _bootstrap(config)
    console.print(Panel.fit(
        f"[bold blue]SiteCrew v{__version__}[/bold blue]\n"
        f"Environment: {settings.environment}",
        title="API Server",
    ))
    # uvicorn's access log prints raw query strings, which can carry invitation tokens
    uvicorn.run(create_app(settings), host=host, port=port, access_log=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"SiteCrew version {__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
