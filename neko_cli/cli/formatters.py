"""
Functions for formatting and displaying data in the console using Rich.
"""

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from neko_cli.models.state import (
    Downloaded,
    Downloading,
    DownloadState,
    Failed,
    NotDownloaded,
)
from neko_cli.models.track import LyricLine, Playlist, TrackRecord
from neko_cli.utils.formatting import format_duration, format_timestamp


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `neko-cli init` to create a configuration file.",
            "• Check the values with `neko-cli --show-config`.",
        ],
        "StoreError": [
            "• Check that the library directory is writable.",
            "• Make sure the disk is not full.",
        ],
        "TrackNotFoundError": [
            "• List the library with `neko-cli list` to find the track id.",
        ],
        "PlaylistNotFoundError": [
            "• List playlists with `neko-cli playlist list` to find the playlist id.",
        ],
        "MissingLocatorError": [
            "• The track needs an http(s) audio URL to be downloaded.",
            "• Use `neko-cli import` for files that are already on disk.",
        ],
        "LocalImportError": [
            "• Check the path and the file permissions.",
        ],
        "TooManyRedirectsError": [
            "• The server keeps redirecting; the link may be broken.",
            "• Raise `max_redirects` in the configuration if the chain is legitimate.",
        ],
        "UnexpectedContentError": [
            "• The server returned a web page instead of audio.",
            "• The link may have expired or require a login.",
        ],
        "TimeoutError": [
            "• The server stopped responding.",
            "• Check your connection or raise `read_timeout` in the configuration.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            escape(content),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def state_label(state: DownloadState | None) -> str:
    """Rich-markup label for a track's download state."""
    if state is None or isinstance(state, NotDownloaded):
        return "[dim]not downloaded[/dim]"
    if isinstance(state, Downloading):
        return f"[cyan]downloading {state.progress:.0%}[/cyan]"
    if isinstance(state, Downloaded):
        return "[green]✓ downloaded[/green]"
    if isinstance(state, Failed):
        return f"[red]✗ {escape(state.reason)}[/red]"
    raise TypeError(f"Unknown download state: {state!r}")


def print_tracks_table(
    tracks: Sequence[TrackRecord],
    states: Mapping[str, DownloadState] | None = None,
    title: str = "Library",
):
    """Displays library tracks with their state."""
    console = Console()
    if not tracks:
        console.print("[dim]The library is empty.[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Artist", style="cyan")
    table.add_column("Album")
    table.add_column("Lyrics", justify="center")
    table.add_column("State")
    table.add_column("Id", style="dim", no_wrap=True)

    for i, track in enumerate(tracks, 1):
        state = states.get(track.id) if states is not None else None
        table.add_row(
            str(i),
            escape(track.title),
            escape(track.artist),
            escape(track.album or ""),
            "✓" if track.lyric_locator else "",
            state_label(state),
            track.id,
        )
    console.print(table)


def print_playlists_table(playlists: Sequence[Playlist]):
    """Displays playlists in their display order."""
    console = Console()
    if not playlists:
        console.print("[dim]No playlists yet.[/dim]")
        return

    table = Table(title="Playlists", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Tracks", justify="right", style="green")
    table.add_column("Cover", justify="center")
    table.add_column("Id", style="dim", no_wrap=True)
    for i, playlist in enumerate(playlists, 1):
        table.add_row(
            str(i),
            escape(playlist.name),
            str(len(playlist.track_ids)),
            "✓" if playlist.cover_locator else "",
            playlist.id,
        )
    console.print(table)


def print_playlist_detail(playlist: Playlist, tracks: Sequence[TrackRecord | None]):
    """Displays one playlist; members without a record are shown as missing."""
    console = Console()
    table = Table(show_header=True, box=box.SIMPLE)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Artist", style="cyan")
    table.add_column("Id", style="dim", no_wrap=True)
    for i, (track_id, track) in enumerate(zip(playlist.track_ids, tracks), 1):
        if track is None:
            table.add_row(str(i), "[red]missing[/red]", "", track_id)
        else:
            table.add_row(str(i), escape(track.title), escape(track.artist), track_id)

    subtitle = f"[dim]{escape(playlist.cover_locator)}[/dim]" if playlist.cover_locator else None
    console.print(
        Panel(
            table,
            title=f"[bold]{escape(playlist.name)}[/bold] ({len(playlist.track_ids)} tracks)",
            subtitle=subtitle,
            border_style="cyan",
            expand=False,
        )
    )


def print_lyrics(lines: Sequence[LyricLine], highlight: int = -1):
    """Prints parsed lyric lines with their timestamps."""
    console = Console()
    if not lines:
        console.print("[dim]No timed lyrics available.[/dim]")
        return
    for i, line in enumerate(lines):
        style = "bold green" if i == highlight else ""
        text = Text(f"[{format_timestamp(line.time)}] ", style="dim")
        text.append(line.text, style=style)
        console.print(text)
        if line.translation:
            console.print(Text(f"{' ' * 11}{line.translation}", style="italic dim"))


def lyric_panel(
    lines: Sequence[LyricLine], index: int, position_ms: int, duration_ms: int
) -> Panel:
    """A small window around the current line, for live display."""
    body = Text()
    if not lines:
        body.append("No timed lyrics available.", style="dim")
    else:
        start = max(0, index - 2)
        for i in range(start, min(len(lines), start + 5)):
            line = lines[i]
            style = "bold green" if i == index else "dim"
            body.append(f"{line.text}\n", style=style)
            if i == index and line.translation:
                body.append(f"{line.translation}\n", style="italic green")

    position = format_duration(position_ms / 1000)
    total = format_duration(duration_ms / 1000) if duration_ms else "?"
    return Panel(body, title=f"♪ {position} / {total}", border_style="magenta")


def print_summary_panel(
    results: Mapping[str, DownloadState], titles: Mapping[str, str], duration_s: float
):
    """Displays the final summary of a download session."""
    console = Console()

    downloaded = [tid for tid, state in results.items() if isinstance(state, Downloaded)]
    failed = {
        tid: state for tid, state in results.items() if isinstance(state, Failed)
    }

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("✓ Downloaded:", f"[bold green]{len(downloaded)}[/bold green]")
    if failed:
        stats_table.add_row("✗ Failed:", f"[bold red]{len(failed)}[/bold red]")
        for tid, state in failed.items():
            stats_table.add_row(
                "", f"[dim]{escape(titles.get(tid, tid))}:[/dim] {escape(state.reason)}"
            )
    stats_table.add_row("", "")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="🎵 [bold]Download Complete![/bold]",
            border_style="green" if not failed else "yellow",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
