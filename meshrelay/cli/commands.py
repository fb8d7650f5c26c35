"""CLI commands for MeshRelay."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from meshrelay import __logo__, __version__

app = typer.Typer(
    name="meshrelay",
    help=f"{__logo__} MeshRelay - ACS chat ↔ streaming AI backend relay",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} meshrelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """MeshRelay - relay chat threads to an AI backend."""
    pass


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default from settings)"),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default from settings)"),
):
    """Run the HTTP API (webhook, AI triggers, threads)."""
    import uvicorn

    from meshrelay.api.app import create_app
    from meshrelay.settings import get_settings
    from meshrelay.utils.logging import configure_logging

    settings = get_settings()
    level = configure_logging(log_level or settings.log_level)
    bind_host = host or settings.host
    bind_port = port or settings.port

    console.print(f"{__logo__} Starting MeshRelay on [cyan]{bind_host}:{bind_port}[/cyan]")
    if not settings.acs_connection_string:
        console.print("[yellow]Warning: MESHRELAY_ACS_CONNECTION_STRING is not set; chat calls will fail[/yellow]")

    uvicorn.run(
        create_app(),
        host=bind_host,
        port=bind_port,
        log_level=level.lower() if level.lower() in {"debug", "info", "warning", "error", "critical"} else "info",
    )


@app.command()
def ask(
    message: str = typer.Argument(..., help="Text to send to the generation backend"),
    url: str = typer.Option(None, "--url", help="Override the backend stream URL"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
):
    """Stream one reply from the generation backend and print it."""
    from loguru import logger

    from meshrelay.providers.stream_client import StreamingBackendClient
    from meshrelay.settings import get_settings

    if logs:
        logger.enable("meshrelay")
    else:
        logger.disable("meshrelay")

    settings = get_settings()
    client = StreamingBackendClient(url or settings.stream_url, timeout=settings.stream_timeout_seconds)

    async def run_once() -> str | None:
        try:
            return await client.stream_reply(message)
        finally:
            await client.aclose()

    with console.status("[dim]Waiting for the backend...[/dim]", spinner="dots"):
        reply = asyncio.run(run_once())

    if reply is None:
        console.print("[red]No reply generated[/red]")
        raise typer.Exit(1)
    console.print(f"[cyan]{settings.bot_display_name}[/cyan]: {reply}")


@app.command()
def users():
    """Show the built-in directory of users."""
    from meshrelay.settings import get_settings
    from meshrelay.storage.directory import InMemoryDirectory, seed_directory

    settings = get_settings()

    async def load():
        directory = InMemoryDirectory()
        await seed_directory(directory, assistant_display_name=settings.bot_display_name)
        return await directory.list_users()

    table = Table(title="Directory")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Presence")
    for user in sorted(asyncio.run(load()), key=lambda u: (u.role, u.display_name)):
        table.add_row(user.id, user.display_name, user.role, user.presence)
    console.print(table)


if __name__ == "__main__":
    app()
