"""
Renders transfer events as a Rich Live display: one bar per active file, an
overall bar for the batch, and running session statistics.
"""

import asyncio
from datetime import datetime

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table
from rich.text import Text

from arctic_helper.core.transfers import TransferTracker
from arctic_helper.models.events import (
    BatchCancelled,
    BatchFailed,
    BatchFinished,
    Cancelled,
    Failed,
    Finished,
    Progress as ProgressEvent,
    Started,
    TransferEvent,
)
from arctic_helper.utils.formatting import format_duration


class ProgressManager:
    """An event sink that drives the terminal progress display."""

    def __init__(self, console: Console, title: str = "Arctic Helper"):
        self.console = console
        self.title = title
        self.tracker = TransferTracker()

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=24),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        )

        self._live: Live | None = None
        self._tasks: dict[str, TaskID] = {}
        self._overall_task_id: TaskID | None = None
        self._start_time: datetime | None = None
        self._stats = {"completed": 0, "skipped": 0, "failed": 0, "cancelled": 0}
        self.batch_outcome: str | None = None

    def on_event(self, event: TransferEvent) -> None:
        self.tracker.on_event(event)

        if isinstance(event, Started):
            self._ensure_overall(event.total)
            description = event.artifact
            if len(description) > 48:
                description = description[:45] + "..."
            self._tasks[event.key] = self.progress.add_task(
                f"[cyan]{description}[/cyan]", total=event.size, start=True
            )
        elif isinstance(event, ProgressEvent):
            task_id = self._tasks.get(event.key)
            if task_id is not None:
                self.progress.update(task_id, completed=event.received, total=event.size)
        elif isinstance(event, Finished):
            self._stats["skipped" if event.skipped else "completed"] += 1
            if event.skipped:
                self.console.print(f"[yellow]↷ {event.artifact} already present[/yellow]")
            self._finish_task(event.key)
        elif isinstance(event, Failed):
            self._stats["failed"] += 1
            self.console.print(f"[red]✗ {event.artifact}: {event.message}[/red]")
            self._finish_task(event.key)
        elif isinstance(event, Cancelled):
            self._stats["cancelled"] += 1
            self._finish_task(event.key)
        elif isinstance(event, (BatchFinished, BatchFailed, BatchCancelled)):
            self.batch_outcome = event.phase

        self._refresh()

    def _ensure_overall(self, total: int) -> None:
        if self._overall_task_id is None:
            self._start_time = datetime.now()
            self._overall_task_id = self.overall_progress.add_task(
                "Overall Progress", total=total
            )

    def _finish_task(self, key: str) -> None:
        task_id = self._tasks.pop(key, None)
        if task_id is not None:
            self.progress.remove_task(task_id)
        if self._overall_task_id is not None:
            self.overall_progress.advance(self._overall_task_id)

    def _stats_panel(self) -> Panel:
        elapsed = "0s"
        if self._start_time:
            elapsed = format_duration((datetime.now() - self._start_time).total_seconds())

        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold cyan", justify="right")
        table.add_column(style="white")
        table.add_column(style="bold cyan", justify="right")
        table.add_column(style="white")
        table.add_row(
            "Downloaded:",
            f"[green]{self._stats['completed']}[/green]",
            "Skipped:",
            f"[yellow]{self._stats['skipped']}[/yellow]",
        )
        table.add_row(
            "Failed:",
            f"[red]{self._stats['failed']}[/red]",
            "Active:",
            f"[cyan]{self.tracker.active_count}[/cyan]",
        )
        table.add_row("Elapsed:", elapsed, "", "")

        content = Table.grid()
        content.add_row(table)
        if self._overall_task_id is not None:
            content.add_row("")
            content.add_row(self.overall_progress)
        return Panel(content, title=f"[bold]{self.title}[/bold]", border_style="blue")

    def _renderable(self) -> Group:
        if self._tasks:
            active = Panel(
                self.progress,
                title=f"[bold]Active Downloads ({len(self._tasks)})[/bold]",
                border_style="green",
            )
        else:
            active = Panel(
                Text(
                    "Waiting for downloads to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]Active Downloads[/bold]",
                border_style="green",
            )
        return Group(self._stats_panel(), active)

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._renderable())

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self) -> "ProgressManager":
        self._live = Live(
            self._renderable(),
            console=self.console,
            refresh_per_second=8,
            transient=False,
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._live is not None:
            await asyncio.sleep(0.1)
            self._refresh()
            self._live.stop()
            self._live = None
