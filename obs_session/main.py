"""
main.py — obs-session application entrypoint.

CLI:
  python run.py start                    connect to OBS and serve the API bridge
  python run.py init-config              create a default config.yaml
  python run.py check                    connect, print video settings + scene items
  python run.py screenshot SOURCE        save a PNG screenshot of a source
  python run.py move-item ID X Y         move a scene item in the configured scene
"""

from __future__ import annotations

import asyncio
import base64
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from obs_session import __version__
from obs_session.config import Settings, reload_settings
from obs_session.core import (
    OBSAuthenticationError,
    OBSError,
    OBSInvalidSceneNameError,
    OBSSession,
    init_obs_session,
)

console = Console()
app = typer.Typer(name="obs-session", help="OBS WebSocket session core and control bridge")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def session_from_settings(settings: Settings) -> OBSSession:
    return init_obs_session(
        host=settings.obs.host,
        port=settings.obs.port,
        password=settings.obs.password,
        scene_name=settings.obs.scene_name,
        event_subscriptions=settings.obs.event_subscriptions,
    )


def run_with_session(config: Optional[Path], action: Callable[[OBSSession], Awaitable[None]]) -> None:
    """Connect, run `action`, always close. Exit 1 on any OBS error."""
    settings = reload_settings(config)
    setup_logging(settings.api.log_level)

    async def _run() -> None:
        session = session_from_settings(settings)
        try:
            await session.connect()
            await action(session)
        finally:
            await session.close()

    try:
        asyncio.run(_run())
    except OBSAuthenticationError as e:
        console.print(f"[red]✗ OBS rejected the password:[/red] {e}")
        sys.exit(1)
    except OBSInvalidSceneNameError:
        console.print(f"[red]✗ Scene '{settings.obs.scene_name}' does not exist in OBS[/red]")
        sys.exit(1)
    except OBSError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)


async def build_and_run(config_path: Optional[Path] = None) -> None:
    settings = reload_settings(config_path)
    setup_logging(settings.api.log_level)
    log = logging.getLogger("obs_session")

    console.rule(f"[bold blue]obs-session v{__version__}[/bold blue]")

    session = session_from_settings(settings)

    # Initial OBS connection (non-fatal; reconnect via POST /obs/connect)
    try:
        await session.connect()
    except OBSError as e:
        console.print(f"[yellow]⚠ OBS not connected: {e}[/yellow]")

    from obs_session.api import create_app
    fast_app = create_app()

    console.print(f"\n[green]✓ OBS[/green]       {settings.obs.host}:{settings.obs.port} ({session.status.value})")
    console.print(f"[green]✓ Scene[/green]     {settings.obs.scene_name}")
    console.print(f"[green]✓ API[/green]       http://{settings.api.host}:{settings.api.port}")
    console.print(f"[green]✓ WS[/green]        ws://{settings.api.host}:{settings.api.port}/ws")
    if settings.api.api_key:
        console.print("[green]✓ Auth[/green]      API key set — Bearer token required")
    else:
        console.print("[yellow]⚠ Auth[/yellow]      No API key set — open access (fine for LAN, not internet)")

    config = uvicorn.Config(
        fast_app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.api.log_level,
        loop="asyncio",
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()

    def shutdown():
        log.info("Shutdown signal received.")
        server.should_exit = True

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown)
        except NotImplementedError:
            pass  # Windows

    await server.serve()


# ──────────────────────────────────────────────────────────────────────────────
# CLI commands
# ──────────────────────────────────────────────────────────────────────────────

@app.command()
def start(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    host: Optional[str] = typer.Option(None, "--host", help="API bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="API port"),
    obs_host: Optional[str] = typer.Option(None, "--obs-host", help="OBS WebSocket host"),
    obs_port: Optional[int] = typer.Option(None, "--obs-port", help="OBS WebSocket port"),
    obs_password: Optional[str] = typer.Option(None, "--obs-password", help="OBS WebSocket password"),
    scene: Optional[str] = typer.Option(None, "--scene", help="OBS scene name"),
):
    """Connect to OBS and start the API bridge."""
    import os
    if host:
        os.environ["API_HOST"] = host
    if port:
        os.environ["API_PORT"] = str(port)
    if obs_host:
        os.environ["OBS_HOST"] = obs_host
    if obs_port:
        os.environ["OBS_PORT"] = str(obs_port)
    if obs_password:
        os.environ["OBS_PASSWORD"] = obs_password
    if scene:
        os.environ["OBS_SCENE_NAME"] = scene
    asyncio.run(build_and_run(config))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    s = Settings.load()
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command("check")
def check_obs(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Connect to OBS, print video settings and the configured scene's items."""
    async def _check(session: OBSSession) -> None:
        video = await session.get_video_settings()
        console.print(f"[green]✓ Connected to OBS[/green] at {session.host}:{session.port}")
        console.print(f"  Base canvas:   {video.get('baseWidth')}x{video.get('baseHeight')}")
        console.print(f"  Output:        {video.get('outputWidth')}x{video.get('outputHeight')}")
        fps_den = video.get("fpsDenominator") or 1
        console.print(f"  FPS:           {video.get('fpsNumerator', 0) / fps_den:g}")

        items = await session.get_scene_items()
        table = Table(title=f"Scene items — {session.scene_name}", show_header=True)
        table.add_column("ID", style="cyan")
        table.add_column("Source", style="green")
        table.add_column("Enabled")
        table.add_column("Position", style="yellow")
        for item in items:
            tf = item.get("sceneItemTransform") or {}
            table.add_row(
                str(item.get("sceneItemId", "")),
                item.get("sourceName", ""),
                "yes" if item.get("sceneItemEnabled") else "no",
                f"{tf.get('positionX', 0):g}, {tf.get('positionY', 0):g}",
            )
        console.print(table)

    run_with_session(config, _check)


@app.command("screenshot")
def screenshot(
    source: str = typer.Argument(..., help="OBS source name"),
    output: Path = typer.Option(Path("screenshot.png"), "--output", "-o"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Save a PNG screenshot of an OBS source."""
    async def _shot(session: OBSSession) -> None:
        result = await session.get_source_screenshot(source)
        image_data = result.get("imageData", "")
        output.write_bytes(base64.b64decode(image_data.split(",", 1)[-1]))
        console.print(f"[green]✓[/green] Screenshot of [bold]{source}[/bold] written to {output}")

    run_with_session(config, _shot)


@app.command("move-item")
def move_item(
    scene_item_id: int = typer.Argument(..., help="sceneItemId within the configured scene"),
    x: float = typer.Argument(...),
    y: float = typer.Argument(...),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Move a scene item to (x, y) in the configured scene."""
    async def _move(session: OBSSession) -> None:
        await session.set_scene_item_transform(scene_item_id, x, y)
        console.print(f"[green]✓[/green] Item {scene_item_id} → ({x:g}, {y:g}) in '{session.scene_name}'")

    run_with_session(config, _move)


if __name__ == "__main__":
    app()
