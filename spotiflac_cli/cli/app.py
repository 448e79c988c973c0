"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import json
import logging
import os
import signal
import time
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from spotiflac_cli import __version__
from spotiflac_cli.api.backends import BackendRegistry
from spotiflac_cli.api.cover_sources import CoverArtProvider
from spotiflac_cli.api.lyrics import LyricsClient
from spotiflac_cli.core.dedup import LibraryDeduplicator
from spotiflac_cli.core.download_manager import DownloadManager
from spotiflac_cli.core.library_verifier import LibraryVerifier
from spotiflac_cli.core.resolver import IdentityLookup, ServiceResolver
from spotiflac_cli.exceptions import QueueError, SpotiflacError
from spotiflac_cli.media.downloader import Downloader, close_connection_pool
from spotiflac_cli.models.queue import TrackIdentity
from spotiflac_cli.models.verification import VerificationRequest
from spotiflac_cli.storage.config_manager import ConfigManager
from spotiflac_cli.storage.metadata_cache import MetadataCache

from .formatters import (
    print_config,
    print_summary_panel,
    print_validation_table,
    print_verification_report,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("spotiflac_cli")

app = typer.Typer(
    name="spotiflac-cli",
    help=(
        "Batch downloader for lossless tracks identified by Spotify metadata."
        " Use 'spotiflac-cli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "spotiflac-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """SpotiFLAC command-line downloader"""
    if version:
        console.print(f"[bold]spotiflac-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "DEBUG" if verbose >= 2 else "INFO"
    logging.getLogger("spotiflac_cli").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]spotiflac-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Default directory for downloaded tracks."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings: dict[str, Any] = {}
    if output_dir:
        settings["output_dir"] = output_dir
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print(
        "Ready to download! Try: [cyan]spotiflac-cli download tracks.json[/cyan]"
    )


def _read_tracks_file(path: Path) -> list[TrackIdentity]:
    """Reads a JSON list of track objects, or an object with a 'tracks' list."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tracks", [])
    if not isinstance(data, list):
        raise SpotiflacError(f"'{path}' must contain a list of track objects.")
    return [TrackIdentity.from_dict(entry) for entry in data if isinstance(entry, dict)]


def _install_interrupt_handler(manager: DownloadManager) -> bool:
    """
    Routes the first Ctrl+C to ``manager.cancel``; a second one interrupts
    normally. Returns False where the loop cannot install signal handlers.
    """
    loop = asyncio.get_running_loop()

    def _on_interrupt():
        loop.remove_signal_handler(signal.SIGINT)
        cancelled = manager.cancel()
        console.print(
            f"\n[yellow]⚠️  Cancelling: {cancelled} queued track(s) skipped, "
            "waiting for active downloads...[/yellow]"
        )

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except NotImplementedError:
        return False
    return True


@app.command(name="download")
def download_command(
    tracks_file: Path = typer.Argument(  # noqa: B008
        ..., help="JSON file with the tracks to download.", exists=True, dir_okay=False
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Directory to download tracks into."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads (1-32)."
    ),
    services: str | None = typer.Option(
        None,
        "-s",
        "--services",
        help="Comma-separated service priority, e.g. 'qobuz,tidal,amazon'.",
    ),
    lyrics: bool | None = typer.Option(
        None, "--lyrics/--no-lyrics", help="Embed synced lyrics into FLAC files."
    ),
    no_live: bool = typer.Option(
        False, "--no-live", help="Disable the live progress display."
    ),
):
    """Download every track listed in a JSON file."""
    cli_options = {
        "output_dir": output_dir,
        "max_workers": workers,
        "services": services,
        "embed_lyrics": lyrics,
    }

    async def _download_async():
        manager = None
        duration = 0.0
        progress_stats = None
        try:
            config = ConfigManager(CONFIG_FILE).load_config(cli_options, allow_missing=True)
            downloader = Downloader(max_workers=config.max_workers)
            resolver = ServiceResolver(
                BackendRegistry.with_direct_url_backends(downloader),
                duration_tolerance=config.duration_tolerance,
            )
            cache = MetadataCache(config.database_path) if config.database_path else None
            manager = DownloadManager(
                config,
                resolver,
                dedup=LibraryDeduplicator(
                    config.output_dir, min_size=config.min_existing_size
                ),
                lyrics_client=LyricsClient() if config.embed_lyrics else None,
                identity_lookup=IdentityLookup(cache),
            )

            for identity in _read_tracks_file(tracks_file):
                try:
                    await manager.enqueue_with_lookup(identity)
                except QueueError as e:
                    log.warning(f"[yellow]○ Not queued: {escape(str(e))}[/yellow]")

            queued = len(manager.store)
            if not queued:
                console.print("[yellow]No downloadable tracks found in the file.[/yellow]")
                return

            console.print(
                f"[bold cyan]🎵 Starting download session ({queued} tracks, "
                f"{' → '.join(config.services)})...[/bold cyan]"
            )
            _install_interrupt_handler(manager)
            start_time = time.monotonic()

            async with ProgressManager(
                console, manager.store, enabled=not no_live
            ) as progress:
                try:
                    await manager.download_all()
                except asyncio.CancelledError:
                    manager.cancel()
                    raise
                progress_stats = progress.get_statistics()

            await manager.wait_for_background()
            duration = time.monotonic() - start_time
        except SpotiflacError as e:
            console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
            raise typer.Exit(code=1) from e
        finally:
            await close_connection_pool()

        if manager and len(manager.store):
            print_summary_panel(
                manager.store.snapshot(),
                duration,
                progress_stats,
                lyrics_embedded=manager.lyrics_embedded,
            )
            manager.save_session_stats(CONFIG_DIR)
            if manager.store.snapshot().failed:
                raise typer.Exit(code=1)

    asyncio.run(_download_async())


@app.command()
def verify(
    path: Path = typer.Argument(..., help="Library directory to scan."),  # noqa: B008
    covers: bool = typer.Option(
        True, "--covers/--no-covers", help="Check for cover images next to each file."
    ),
    lyrics: bool = typer.Option(
        True, "--lyrics/--no-lyrics", help="Check for lyrics files next to each file."
    ),
    repair: bool = typer.Option(
        False, "--repair", help="Download missing covers and lyrics."
    ),
    database: str | None = typer.Option(
        None, "--database", help="SQLite metadata export to look up covers in."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Concurrent repairs (defaults to cover_workers)."
    ),
):
    """Report tracks missing cover art or lyrics, and optionally repair them."""

    async def _verify_async():
        try:
            config = ConfigManager(CONFIG_FILE).load_config(allow_missing=True)
            request = VerificationRequest(
                scan_path=str(path),
                check_covers=covers,
                check_lyrics=lyrics,
                download_missing=repair,
                database_path=database or config.database_path or None,
                max_workers=workers or config.cover_workers,
            )
            verifier = LibraryVerifier(
                CoverArtProvider(),
                LyricsClient(),
                Downloader(max_workers=request.max_workers),
            )
            return await verifier.verify(request)
        except SpotiflacError as e:
            console.print(f"[red]✗ {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e
        finally:
            await close_connection_pool()

    report = asyncio.run(_verify_async())
    print_verification_report(report)
    if not report.complete:
        raise typer.Exit(code=1)


@app.command()
def validate():
    """Validate the current configuration and the metadata database, if set."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        rows = None
        if config.database_path:
            rows = asyncio.run(MetadataCache(config.database_path).test_connection())
        print_validation_table(config, rows)
    except SpotiflacError as e:
        console.print(f"[red]✗ Configuration is invalid: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
