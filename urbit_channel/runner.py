"""
CLI entrypoint for urbit-channel.
"""
import asyncio
import json
import sys

import typer
from loguru import logger

from urbit_channel.client.auth import authenticate
from urbit_channel.client.channel_client import UrbitChannelClient
from urbit_channel.client.visualizer import Visualizer
from urbit_channel.shared.config import settings

app = typer.Typer(help="Persistent Urbit channel client")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def _refresh_cookie(client: UrbitChannelClient) -> None:
    client.update_credential(await authenticate(client.url, settings.URBIT_CODE))


async def _watch(app_name: str, path: str, duration: float) -> None:
    cookie = await authenticate(settings.URBIT_URL, settings.URBIT_CODE)
    client = UrbitChannelClient.from_settings(settings, cookie, on_reconnect=_refresh_cookie)
    visualizer = Visualizer(client)
    client.on_status_change_callback = visualizer.on_status_change

    def on_error(error: BaseException):
        visualizer.on_status_change(f"ERROR {error}")

    await client.subscribe(
        app_name,
        path,
        on_event=visualizer.event_hook(f"{app_name}{path}"),
        on_error=on_error,
        on_quit=lambda: visualizer.on_status_change(f"QUIT {app_name}{path}"),
    )
    try:
        await client.connect()
        await visualizer.run(duration)
    finally:
        await client.close()


async def _poke(app_name: str, mark: str, payload: object) -> int:
    cookie = await authenticate(settings.URBIT_URL, settings.URBIT_CODE)
    async with UrbitChannelClient.from_settings(settings, cookie, auto_reconnect=False) as client:
        return await client.poke(app_name, mark, payload)


@app.command()
def watch(
    app_name: str = typer.Argument(..., metavar="APP", help="Agent to subscribe to, e.g. chat"),
    path: str = typer.Argument(..., help="Subscription path, e.g. /dm/~sampel-palnet"),
    duration: float = typer.Option(300.0, help="How long to watch, in seconds"),
):
    """Subscribe to APP at PATH and show events on a live dashboard."""
    # The dashboard owns the terminal, so only warnings and up reach stderr
    configure_logging("WARNING")
    try:
        asyncio.run(_watch(app_name, path, duration))
    except KeyboardInterrupt:
        pass


@app.command()
def poke(
    app_name: str = typer.Argument(..., metavar="APP"),
    mark: str = typer.Argument(...),
    payload: str = typer.Argument(..., help="JSON payload"),
):
    """Send a single poke and print its id."""
    configure_logging(settings.LOG_LEVEL)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        typer.echo(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1)
    poke_id = asyncio.run(_poke(app_name, mark, data))
    typer.echo(poke_id)


@app.command("mock-ship")
def mock_ship():
    """Start a local fake ship using Uvicorn."""
    import uvicorn
    configure_logging(settings.LOG_LEVEL)
    typer.echo(f"Starting mock ship ~{settings.MOCK_SHIP_NAME} on port {settings.MOCK_SHIP_PORT}...")
    uvicorn.run(
        "urbit_channel.mock_ship.main:app",
        host="127.0.0.1",
        port=settings.MOCK_SHIP_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    app()
