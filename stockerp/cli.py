"""
StockERP CLI
============

Command line entry point: server, database setup, cache warming,
administrator creation and configuration inspection.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import asyncio
import getpass
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from . import __version__
from .application import StockERPApplication
from .config import AppSettings, ConfigurationManager, configure_logging
from .database import init_database
from .models import UserCreate, UserRole

logger = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="🏢 StockERP - Inventory and order management CLI")


def _load_settings(config_file: Optional[str]) -> AppSettings:
    try:
        settings = ConfigurationManager().load_config(config_file=config_file)
    except ValueError as e:
        console.print(f"❌ [red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(settings.logging)
    return settings


# ==================== SERVER ====================

@app.command("runserver")
def runserver(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port number"),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Auto reload"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file")
):
    """🚀 Start the API server"""
    import uvicorn

    settings = _load_settings(config_file)
    host = host or settings.host
    port = port or settings.port

    console.print(Panel.fit(
        f"🚀 Starting StockERP API Server\n"
        f"📍 Host: [bold green]{host}[/bold green]\n"
        f"🔌 Port: [bold blue]{port}[/bold blue]\n"
        f"🔄 Reload: [bold yellow]{reload}[/bold yellow]",
        title="🏢 StockERP API",
        border_style="green"
    ))

    try:
        uvicorn.run(
            "stockerp.api:app",
            host=host,
            port=port,
            reload=reload,
            workers=None if reload else settings.workers
        )
    except KeyboardInterrupt:
        console.print("\n🛑 [yellow]Server stopped by user[/yellow]")


# ==================== DATABASE ====================

@app.command("init-db")
def init_db(
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file")
):
    """🗄️ Create the database tables"""
    settings = _load_settings(config_file)

    try:
        with console.status("[bold green]Creating tables..."):
            manager = init_database(settings.database, create_tables=True)
            info = manager.get_database_info()
            manager.close()
    except Exception as e:
        console.print(f"❌ [red]Database initialization failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"✅ [green]Database ready:[/green] {info['url']}")
    console.print(f"📋 Tables: {', '.join(info.get('tables', []))}")


# ==================== CACHE ====================

async def _warm(settings: AppSettings):
    async with StockERPApplication(settings) as application:
        return await application.warm_caches()


@app.command("warm-cache")
def warm_cache(
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file")
):
    """🔥 Load every entity cache and report the counts"""
    settings = _load_settings(config_file)
    settings.cache.warm_on_startup = False

    try:
        counts = asyncio.run(_warm(settings))
    except Exception as e:
        console.print(f"❌ [red]Cache warming failed:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Entity caches")
    table.add_column("Entity", style="cyan")
    table.add_column("Records", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count) if count is not None else "[red]failed[/red]")
    console.print(table)

    if any(count is None for count in counts.values()):
        raise typer.Exit(1)


# ==================== USERS ====================

async def _create_admin(settings: AppSettings, payload: UserCreate):
    async with StockERPApplication(settings) as application:
        return await application.users.create(payload)


@app.command("create-admin")
def create_admin(
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Admin username"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Admin email"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Admin password"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file")
):
    """👤 Create an administrator account"""
    settings = _load_settings(config_file)
    settings.cache.warm_on_startup = False

    username = username or Prompt.ask("👤 Admin username", default="admin")
    email = email or Prompt.ask("📧 Admin email", default="admin@stockerp.local")
    password = password or getpass.getpass("🔒 Admin password: ")

    try:
        payload = UserCreate(username=username, email=email, password=password, role=UserRole.ADMIN)
    except ValueError as e:
        console.print(f"❌ [red]Invalid administrator details:[/red] {e}")
        raise typer.Exit(1)

    result = asyncio.run(_create_admin(settings, payload))
    if result.is_error():
        console.print(f"❌ [red]Admin creation failed:[/red] {result.error_message}")
        raise typer.Exit(1)

    console.print("✅ [green]Admin user created successfully![/green]")
    console.print(f"👤 Username: [bold]{result.data.username}[/bold] (ID {result.data.id})")


# ==================== CONFIGURATION ====================

@app.command("config")
def show_config(
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file"),
    validate: bool = typer.Option(False, "--validate", help="Only validate the configuration")
):
    """⚙️ Show or validate the effective configuration"""
    manager = ConfigurationManager()
    settings = manager.load_config(config_file=config_file, validate=False)

    if validate:
        if settings.is_valid():
            console.print("✅ [green]Configuration is valid[/green]")
            return
        console.print(f"❌ [red]{settings.get_validation_summary()}[/red]")
        raise typer.Exit(1)

    console.print(Panel(manager.get_config_summary(), title="⚙️ Configuration", border_style="cyan"))


@app.command("version")
def version():
    """📋 Show version information"""
    console.print(Panel.fit(
        f"🏢 [bold blue]StockERP[/bold blue] v{__version__}",
        title="📋 Version Info",
        border_style="blue"
    ))


if __name__ == "__main__":
    app()
