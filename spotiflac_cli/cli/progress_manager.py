"""
Manages a Rich Live display for a download session. The display owns no state
of its own: it polls the queue snapshot on a timer and renders counters, the
overall bar and the tracks currently downloading.
"""

import asyncio
import logging
import time

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from spotiflac_cli.core.queue_store import QueueStore
from spotiflac_cli.models.queue import ItemState, QueueSnapshot
from spotiflac_cli.utils.formatting import format_duration, format_size

log = logging.getLogger("spotiflac_cli")

MAX_ACTIVE_ROWS = 10


class ProgressManager:
    """Renders queue snapshots until the session ends."""

    def __init__(
        self,
        console: Console,
        store: QueueStore,
        refresh_interval: float = 0.25,
        enabled: bool = True,
    ):
        self.console = console
        self.store = store
        self.refresh_interval = refresh_interval
        self.enabled = enabled

        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        )
        self._overall_task_id: TaskID | None = None
        self._live: Live | None = None
        self._layout: Layout | None = None
        self._poller: asyncio.Task | None = None
        self._start_time = time.monotonic()
        self._peak_active = 0

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=8),
            Layout(name="active", ratio=1),
        )
        return layout

    def _generate_header(self, snapshot: QueueSnapshot) -> Panel:
        elapsed = time.monotonic() - self._start_time
        header_text = Text()
        header_text.append("🎵 SpotiFLAC ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"Session: {format_duration(elapsed)}", style="yellow")
        if snapshot.total_size_bytes:
            header_text.append(" │ ", style="dim")
            header_text.append(format_size(snapshot.total_size_bytes), style="magenta")
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self, snapshot: QueueSnapshot) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_row(
            "Downloaded:",
            f"[green]{snapshot.completed}[/green]",
            "Failed:",
            f"[red]{snapshot.failed}[/red]",
        )
        stats_table.add_row(
            "Skipped:",
            f"[yellow]{snapshot.skipped}[/yellow]",
            "Queued:",
            f"[cyan]{snapshot.queued}[/cyan]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{snapshot.downloading}[/cyan]",
            "Peak:",
            f"[magenta]{self._peak_active}[/magenta]",
        )
        return Panel(
            Group(stats_table, Text(""), self.overall_progress),
            title="[bold]📊 Session Statistics[/bold]",
            border_style="blue",
        )

    def _generate_active_panel(self, snapshot: QueueSnapshot) -> Panel:
        active = [i for i in snapshot.items if i.state is ItemState.DOWNLOADING]
        if not active:
            return Panel(
                Text("Waiting for work...", style="dim italic", justify="center"),
                title="[bold]⬇ Downloading[/bold]",
                border_style="green",
            )
        now = time.time()
        table = Table.grid(padding=(0, 2))
        table.add_column(style="white", ratio=1, no_wrap=True)
        table.add_column(style="dim", justify="right")
        for item in active[:MAX_ACTIVE_ROWS]:
            running = now - (item.started_at or now)
            table.add_row(item.identity.display_name, format_duration(running))
        if len(active) > MAX_ACTIVE_ROWS:
            table.add_row(f"[dim]… and {len(active) - MAX_ACTIVE_ROWS} more[/dim]", "")
        return Panel(
            table,
            title=f"[bold]⬇ Downloading ({len(active)})[/bold]",
            border_style="green",
        )

    def refresh(self) -> QueueSnapshot:
        """Takes one snapshot and redraws every panel from it."""
        snapshot = self.store.snapshot()
        self._peak_active = max(self._peak_active, snapshot.downloading)

        if self._overall_task_id is None:
            self._overall_task_id = self.overall_progress.add_task(
                "Overall", total=snapshot.total
            )
        self.overall_progress.update(
            self._overall_task_id, total=snapshot.total, completed=snapshot.finished
        )

        if self._layout is not None:
            self._layout["header"].update(self._generate_header(snapshot))
            self._layout["stats"].update(self._generate_stats_panel(snapshot))
            self._layout["active"].update(self._generate_active_panel(snapshot))
        return snapshot

    async def _poll(self) -> None:
        while True:
            self.refresh()
            await asyncio.sleep(self.refresh_interval)

    def get_statistics(self) -> dict:
        return {
            "peak_concurrent": self._peak_active,
            "elapsed": time.monotonic() - self._start_time,
        }

    async def __aenter__(self):
        self._start_time = time.monotonic()
        if not self.enabled:
            return self
        self._layout = self._create_layout()
        self.refresh()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._poller = asyncio.create_task(self._poll())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None
        if self._live is not None:
            self.refresh()
            self._live.stop()
            self._live = None
