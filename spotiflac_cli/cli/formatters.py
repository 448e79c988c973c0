"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from spotiflac_cli.models.config import FILENAME_FORMATS, DownloadConfig, get_format_info
from spotiflac_cli.models.queue import ItemState, QueueSnapshot
from spotiflac_cli.models.verification import LibraryVerificationReport
from spotiflac_cli.utils.formatting import format_duration, format_size


_SUGGESTIONS = {
    "ConfigurationError": [
        "Run `spotiflac-cli init` to write a default config.",
        "Run `spotiflac-cli validate` to see which setting is rejected.",
    ],
    "ScanPathError": ["Check that the library directory exists and is readable."],
    "AggregateFailureError": [
        "No configured service had a verified copy of the track.",
        "Try another service order with `--services`.",
    ],
    "ServiceUnavailableError": [
        "A service failed repeatedly and is cooling down.",
        "Check your connection, or lower `--workers`.",
    ],
    "QueueError": ["Every track in the input file needs an ISRC."],
    "ClientResponseError": ["A remote service answered with an HTTP error; retry later."],
    "JSONDecodeError": ["The tracks file must be a JSON list of track objects."],
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """
    Builds the panel shown for an error that reached the entry point.
    Aggregate resolution failures also list what each service answered.
    """
    name = type(error).__name__
    hints = _SUGGESTIONS.get(name, ["Run the command again with -vv for debug logs."])

    body = Table.grid(padding=(0, 1))
    body.add_column()
    body.add_row(Text.assemble((f"{name}: ", "bold red"), str(error)))

    attempts = getattr(error, "attempts", None)
    if attempts:
        body.add_row("")
        body.add_row(Text("Services tried", style="bold"))
        for attempt in attempts:
            body.add_row(Text(f"  • {attempt.describe()}", style="dim"))

    body.add_row("")
    body.add_row(Text("What to try", style="bold yellow"))
    for hint in hints:
        body.add_row(f"  • {hint}")

    if context:
        details = ", ".join(f"{k}={v}" for k, v in context.items())
        body.add_row("")
        body.add_row(Text(details, style="dim"))

    return Panel(
        body,
        title="[bold red]✗ spotiflac-cli failed[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: DownloadConfig, database_rows: int | None = None):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    format_info = get_format_info(config.audio_format)
    filename = FILENAME_FORMATS.get(config.filename_format, config.filename_format)

    table.add_row("Output Dir:", f"[dim]{escape(config.output_dir)}[/dim]")
    table.add_row(
        "Audio Format:",
        f"[{format_info['color']}]{format_info['name']}[/{format_info['color']}]",
    )
    table.add_row("Filename:", f"[dim]{escape(filename)}[/dim]")
    table.add_row("Services:", " → ".join(config.services))
    table.add_row("Max Workers:", str(config.max_workers))
    table.add_row(
        "Embed Lyrics:", "✓ Enabled" if config.embed_lyrics else "✗ Disabled"
    )
    if config.database_path:
        rows = f" ({database_rows} tracks)" if database_rows is not None else ""
        table.add_row(
            "Metadata DB:", f"[dim]{escape(config.database_path)}[/dim]{rows}"
        )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_summary_panel(
    snapshot: QueueSnapshot,
    duration_s: float,
    progress_stats: dict | None = None,
    lyrics_embedded: int = 0,
):
    """Displays the final summary of a download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("✓ Downloaded:", f"[bold green]{snapshot.completed}[/bold green]")
    if snapshot.skipped:
        stats_table.add_row("○ Skipped:", f"[yellow]{snapshot.skipped}[/yellow]")
    if snapshot.failed:
        stats_table.add_row("✗ Failed:", f"[bold red]{snapshot.failed}[/bold red]")
    if lyrics_embedded:
        stats_table.add_row("♪ Lyrics:", f"[cyan]{lyrics_embedded}[/cyan]")

    stats_table.add_row("", "")
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(snapshot.total_size_bytes)}[/cyan]"
    )
    avg_speed = snapshot.total_size_bytes / duration_s if duration_s > 0 else 0
    stats_table.add_row(
        "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
    )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if progress_stats and progress_stats.get("peak_concurrent"):
        stats_table.add_row(
            "Peak Concurrent:",
            f"[green]{progress_stats['peak_concurrent']}[/green]",
        )

    if snapshot.completed and duration_s > 0:
        tracks_per_minute = (snapshot.completed / duration_s) * 60
        stats_table.add_row(
            "Throughput:", f"[cyan]{tracks_per_minute:.1f} tracks/min[/cyan]"
        )

    border_color = "green" if not snapshot.failed else "yellow"
    console.print()
    console.print(
        Panel(
            stats_table,
            title="🎵 [bold]Download Complete![/bold]",
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    failed = [item for item in snapshot.items if item.state is ItemState.FAILED]
    if failed:
        table = Table(title="Failed Tracks", box=box.ROUNDED)
        table.add_column("Track", style="cyan")
        table.add_column("Reason", style="red")
        for item in failed:
            table.add_row(escape(item.identity.display_name), escape(item.error or ""))
        console.print(table)
    console.print()


def print_verification_report(report: LibraryVerificationReport, show_missing: int = 20):
    """Displays the counters of a library verification run and the worst gaps."""
    console = Console()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right", width=20)
    table.add_column(style="white")
    table.add_row("Scan Path:", f"[dim]{escape(report.scan_path)}[/dim]")
    table.add_row("Audio Files:", str(report.total_tracks))
    table.add_row(
        "With Cover:",
        f"[green]{report.tracks_with_cover}[/green]"
        + (f" [yellow]({report.missing_covers} missing)[/yellow]" if report.missing_covers else ""),
    )
    table.add_row(
        "With Lyrics:",
        f"[green]{report.tracks_with_lyrics}[/green]"
        + (f" [yellow]({report.missing_lyrics} missing)[/yellow]" if report.missing_lyrics else ""),
    )
    if report.covers_downloaded or report.lyrics_downloaded:
        table.add_row("", "")
        table.add_row("Covers Saved:", f"[cyan]{report.covers_downloaded}[/cyan]")
        table.add_row("Lyrics Saved:", f"[cyan]{report.lyrics_downloaded}[/cyan]")

    console.print()
    console.print(
        Panel(
            table,
            title="[bold]Library Report[/bold]",
            border_style="green" if report.complete else "yellow",
            expand=False,
            padding=(1, 2),
        )
    )

    gaps = [
        t
        for t in report.tracks
        if (t.missing_cover and not t.cover_downloaded)
        or (t.missing_lyrics and not t.lyrics_downloaded)
    ]
    if not gaps:
        return

    gap_table = Table(title="Incomplete Tracks", box=box.ROUNDED)
    gap_table.add_column("File", style="cyan", overflow="fold")
    gap_table.add_column("Cover", justify="center")
    gap_table.add_column("Lyrics", justify="center")
    gap_table.add_column("Error", style="red")
    for track in gaps[:show_missing]:
        cover_ok = not track.missing_cover or track.cover_downloaded
        lyrics_ok = not track.missing_lyrics or track.lyrics_downloaded
        gap_table.add_row(
            escape(track.track_name),
            "[green]✓[/green]" if cover_ok else "[red]✗[/red]",
            "[green]✓[/green]" if lyrics_ok else "[red]✗[/red]",
            escape(track.error or ""),
        )
    console.print(gap_table)
    if len(gaps) > show_missing:
        console.print(f"[dim]… and {len(gaps) - show_missing} more[/dim]")
