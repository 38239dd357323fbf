"""
Manages a Rich Live display of concurrent downloads, driven entirely by the
download state tracker.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from neko_cli.core.state_tracker import DownloadStateTracker
from neko_cli.models.state import (
    Downloaded,
    Downloading,
    DownloadState,
    Failed,
    NotDownloaded,
)


PERCENT_TOTAL = 100


class ProgressManager:
    """
    Renders one progress bar per watched track. It observes the state
    tracker and never drives downloads itself.
    """

    def __init__(self, console: Console, tracker: DownloadStateTracker):
        self.console = console
        self.tracker = tracker

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._titles: dict[str, str] = {}
        self._tasks: dict[str, TaskID] = {}
        self._finished: dict[str, DownloadState] = {}
        self._peak_concurrent = 0
        self._start_time: datetime | None = None

    def watch(self, track_id: str, title: str) -> None:
        """Registers a track whose state changes should be displayed."""
        self._titles[track_id] = title
        if len(title) > 50:
            title = title[:48] + "…"
        self._tasks[track_id] = self.progress.add_task(
            escape(title), total=PERCENT_TOTAL, start=True
        )
        self._apply(track_id, self.tracker.get(track_id))

    @property
    def titles(self) -> Mapping[str, str]:
        return self._titles

    @property
    def results(self) -> Mapping[str, DownloadState]:
        return dict(self._finished)

    def _on_states(self, states: Mapping[str, DownloadState]) -> None:
        for track_id in list(self._tasks):
            self._apply(track_id, states.get(track_id))
        self._update_display()

    def _apply(self, track_id: str, state: DownloadState | None) -> None:
        task_id = self._tasks.get(track_id)
        if task_id is None or state is None:
            return
        if isinstance(state, Downloading):
            self.progress.update(task_id, completed=state.progress * PERCENT_TOTAL)
        elif isinstance(state, Downloaded):
            self.progress.update(task_id, completed=PERCENT_TOTAL)
            self._finish(track_id, task_id, state)
        elif isinstance(state, Failed):
            self._finish(track_id, task_id, state)
        elif isinstance(state, NotDownloaded):
            self.progress.update(task_id, completed=0)

        active = sum(
            1 for tid in self._tasks if isinstance(self.tracker.get(tid), Downloading)
        )
        self._peak_concurrent = max(self._peak_concurrent, active)

    def _finish(self, track_id: str, task_id: TaskID, state: DownloadState) -> None:
        if track_id in self._finished:
            return
        self._finished[track_id] = state
        self.progress.stop_task(task_id)
        self.progress.update(task_id, visible=False)
        title = escape(self._titles.get(track_id, track_id))
        if isinstance(state, Downloaded):
            self.console.print(f"  [green]✓[/green] {title}")
        elif isinstance(state, Failed):
            self.console.print(f"  [red]✗[/red] {title} [dim]({escape(state.reason)})[/dim]")

    def get_statistics(self) -> dict:
        completed = sum(isinstance(s, Downloaded) for s in self._finished.values())
        failed = sum(isinstance(s, Failed) for s in self._finished.values())
        return {
            "total_tracks": len(self._tasks),
            "completed": completed,
            "failed": failed,
            "active_downloads": len(self._tasks) - len(self._finished),
            "peak_concurrent": self._peak_concurrent,
        }

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        elapsed = 0
        if self._start_time:
            elapsed = int((datetime.now() - self._start_time).total_seconds())
        stats = self.get_statistics()
        header = Table.grid(padding=(0, 1))
        header.add_row(
            Text("🎵 Neko Library", style="bold cyan"),
            Text("│", style="dim"),
            Text(
                f"Session: {elapsed // 3600:02d}:{elapsed % 3600 // 60:02d}:{elapsed % 60:02d}",
                style="yellow",
            ),
            Text("│", style="dim"),
            Text(f"✓ {stats['completed']}", style="green"),
            Text(f"✗ {stats['failed']}", style="red"),
            Text(f"… {stats['active_downloads']}", style="cyan"),
        )
        return Panel(header, border_style="cyan")

    def _generate_progress_panel(self) -> Panel:
        if len(self._finished) == len(self._tasks):
            return Panel(
                Text("No active downloads.", style="dim italic", justify="center"),
                title="[bold]📥 Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title="[bold]📥 Active Downloads[/bold]",
            border_style="green",
        )

    def _update_display(self):
        if not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["progress"].update(self._generate_progress_panel())

    async def __aenter__(self):
        self._start_time = datetime.now()
        self._unsubscribe = self.tracker.subscribe(self._on_states)
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=12,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._live:
            await asyncio.sleep(0.2)
            self._update_display()
            self._live.stop()
