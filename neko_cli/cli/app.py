"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape

from neko_cli import __version__
from neko_cli.core import (
    ClockPlayer,
    DownloadEngine,
    DownloadStateTracker,
    LocalImporter,
    PlaybackSyncLoop,
)
from neko_cli.exceptions import NekoCliError, TrackNotFoundError
from neko_cli.lyrics import load_lyrics
from neko_cli.media import Downloader, Tagger
from neko_cli.models.config import LibraryConfig
from neko_cli.models.state import is_terminal
from neko_cli.models.track import TrackRecord
from neko_cli.storage import ArtworkCache, ConfigManager, LibraryStore, PlaylistStore
from neko_cli.storage.config_manager import default_library_dir
from neko_cli.utils.path import is_remote, locator_to_path

from .formatters import (
    lyric_panel,
    print_config,
    print_lyrics,
    print_playlist_detail,
    print_playlists_table,
    print_summary_panel,
    print_tracks_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
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
log = logging.getLogger("neko_cli")

app = typer.Typer(
    name="neko-cli",
    help=(
        "A local music library: download tracks with their artwork and lyrics,"
        " organize playlists, and follow timed lyrics. Use 'neko-cli <command>"
        " --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)
playlist_app = typer.Typer(help="Create and organize playlists.", no_args_is_help=True)
app.add_typer(playlist_app, name="playlist")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "neko-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@dataclass
class Library:
    """The services of one library, constructed once per command."""

    config: LibraryConfig
    store: LibraryStore
    playlists: PlaylistStore
    tracker: DownloadStateTracker
    tagger: Tagger


def _open_library(cli_options: dict | None = None) -> Library:
    config = ConfigManager(CONFIG_FILE).load_config(cli_options)
    tagger = Tagger()
    store = LibraryStore(config.tracks_dir, config.covers_dir)
    playlists = PlaylistStore(
        config.playlists_dir,
        config.covers_dir,
        store,
        tagger=tagger,
        cover_size=config.playlist_cover_size,
    )
    tracker = DownloadStateTracker()
    tracker.load_from(store.list_tracks())
    return Library(config, store, playlists, tracker, tagger)


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
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the transient artwork cache and exit."
    ),
):
    """Neko library CLI"""
    if version:
        console.print(f"[bold]neko-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 1:
        log_level = "INFO"
    logging.getLogger("neko_cli").setLevel(log_level)

    if clear_cache:
        config = ConfigManager(CONFIG_FILE).load_config()
        cache = ArtworkCache(config.cache_dir, config.cache_max_age_days)
        console.print("[cyan]Clearing artwork cache...[/cyan]")
        files_count = len(list(cache.cache_dir.iterdir()))
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} entries removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]neko-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        print_config(CONFIG_FILE, ConfigManager(CONFIG_FILE).read_raw())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    library_dir: Path | None = typer.Option(
        None,
        "--library-dir",
        "-d",
        help="Where tracks, playlists, music and covers are stored.",
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Number of simultaneous downloads."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file and the library directories."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {"library_dir": str((library_dir or default_library_dir()).expanduser())}
    if workers is not None:
        settings["max_workers"] = workers
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    library = _open_library()
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print(f"Library directory: [cyan]{library.config.library_dir}[/cyan]")
    console.print("Try: [cyan]neko-cli download <URL> --title ... --artist ...[/cyan]")


def _remote_track_id(url: str) -> str:
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()  # noqa: S324
    return f"remote-{digest[:16]}"


def _read_track_file(path: Path) -> list[TrackRecord]:
    """Reads one track object or a list of them from a JSON file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise NekoCliError(f"Could not read track file '{path}': {e}") from e
    items = data if isinstance(data, list) else [data]
    tracks = []
    for item in items:
        if isinstance(item, dict) and "id" not in item and item.get("audio_locator"):
            item = {**item, "id": _remote_track_id(item["audio_locator"])}
        try:
            tracks.append(TrackRecord.model_validate(item))
        except ValidationError as e:
            log.error(f"[red]Skipping invalid track entry:[/] {e}")
    return tracks


@app.command(name="download")
def download_command(
    url: str | None = typer.Argument(None, help="Remote audio URL."),
    title: str | None = typer.Option(None, "--title", "-t", help="Track title."),
    artist: str | None = typer.Option(None, "--artist", "-a", help="Track artist."),
    album: str | None = typer.Option(None, "--album", help="Album name."),
    cover: str | None = typer.Option(None, "--cover", help="Cover art URL or path."),
    lyrics: str | None = typer.Option(None, "--lyrics", help="Timed lyrics URL or path."),
    track_id: str | None = typer.Option(None, "--id", help="Track identifier."),
    from_json: Path | None = typer.Option(
        None,
        "--from-json",
        "-j",
        help="JSON file with one track object or a list of them.",
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads."
    ),
):
    """Download tracks into the library with their artwork and lyrics."""
    tracks: list[TrackRecord] = []
    if from_json:
        tracks.extend(_read_track_file(from_json))
    if url:
        tracks.append(
            TrackRecord(
                id=track_id or _remote_track_id(url),
                title=title or Path(url.split("?", 1)[0]).stem or "Unknown",
                artist=artist or "Unknown",
                album=album,
                platform="remote",
                audio_locator=url,
                cover_locator=cover,
                lyric_locator=lyrics,
            )
        )
    if not tracks:
        console.print(
            "[red]✗ Nothing to download.[/red] "
            "Use: [cyan]neko-cli download <URL>[/cyan] or [cyan]--from-json[/cyan]"
        )
        raise typer.Exit(code=1)

    cli_options = {"max_workers": workers} if workers is not None else None
    library = _open_library(cli_options)

    async def _download_async():
        cache = ArtworkCache(library.config.cache_dir, library.config.cache_max_age_days)
        await cache.start_background_cleanup()
        engine = DownloadEngine(
            library.config,
            library.store,
            library.tracker,
            tagger=library.tagger,
            cache=cache,
            playlists=library.playlists,
        )
        start_time = time.monotonic()
        try:
            async with ProgressManager(console, library.tracker) as progress, engine:
                tasks = []
                for track in tracks:
                    state = library.tracker.get(track.id)
                    if state is not None and not is_terminal(state):
                        log.info(f"Skipping duplicate request for '{track.id}'.")
                        continue
                    try:
                        tasks.append(engine.start_download(track))
                    except NekoCliError as e:
                        console.print(f"[red]✗ {escape(track.title)}:[/red] {escape(str(e))}")
                        continue
                    progress.watch(track.id, f"{track.artist} - {track.title}")
                if tasks:
                    await asyncio.gather(*tasks)
        finally:
            await cache.stop_background_cleanup()

        print_summary_panel(progress.results, progress.titles, time.monotonic() - start_time)
        if progress.get_statistics()["failed"]:
            raise typer.Exit(code=1)

    asyncio.run(_download_async())


@app.command(name="list")
def list_command():
    """List every track in the library."""
    library = _open_library()
    print_tracks_table(library.store.list_tracks(), library.tracker.snapshot())


@app.command(name="import")
def import_command(
    paths: list[Path] = typer.Argument(  # noqa: B008
        ..., help="Local audio files to add to the library."
    ),
    title: str | None = typer.Option(None, "--title", "-t", help="Override the title."),
    artist: str | None = typer.Option(None, "--artist", "-a", help="Override the artist."),
    album: str | None = typer.Option(None, "--album", help="Override the album."),
):
    """Add audio files that are already on disk."""
    if len(paths) > 1 and (title or artist):
        console.print("[red]✗ --title and --artist apply to a single file only.[/red]")
        raise typer.Exit(code=1)

    library = _open_library()
    importer = LocalImporter(library.config, library.store, library.tracker, library.tagger)

    async def _import_async():
        failures = 0
        for path in paths:
            try:
                record = await importer.import_file(path, title, artist, album)
                console.print(
                    f"[green]✓[/green] {escape(record.artist)} - {escape(record.title)}"
                    f" [dim]({record.id})[/dim]"
                )
            except NekoCliError as e:
                failures += 1
                console.print(f"[red]✗ {escape(str(path))}:[/red] {escape(str(e))}")
        return failures

    if asyncio.run(_import_async()):
        raise typer.Exit(code=1)


@app.command(name="delete")
def delete_command(
    track_ids: list[str] = typer.Argument(..., help="Identifiers of tracks to remove."),  # noqa: B008
    force: bool = typer.Option(False, "--force", "-f", help="Bypass the confirmation prompt."),
):
    """Remove tracks, their downloaded files and their playlist entries."""
    if not force and not typer.confirm(
        f"Remove {len(track_ids)} track(s) and their downloaded files?"
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    library = _open_library()

    async def _delete_async():
        failures = 0
        engine = DownloadEngine(
            library.config, library.store, library.tracker, playlists=library.playlists
        )
        async with engine:
            for track_id in track_ids:
                try:
                    record = await engine.remove_track(track_id)
                    console.print(f"[green]✓ Removed:[/green] {escape(record.title)}")
                except NekoCliError as e:
                    failures += 1
                    console.print(f"[red]✗ {escape(str(e))}[/red]")
        return failures

    if asyncio.run(_delete_async()):
        raise typer.Exit(code=1)


@app.command(name="lyrics")
def lyrics_command(
    track_id: str = typer.Argument(..., help="Identifier of a library track."),
    follow: bool = typer.Option(
        False, "--follow", "-f", help="Play along in real time from the start."
    ),
    start: float = typer.Option(0.0, "--start", "-s", help="Start position in seconds."),
    import_file: Path | None = typer.Option(
        None, "--import", help="Attach this .lrc file to the track first."
    ),
):
    """Show, follow, or attach timed lyrics for a track."""
    library = _open_library()

    async def _lyrics_async():
        record = library.store.get(track_id)
        if record is None:
            raise TrackNotFoundError(f"No track with id '{track_id}' in the library")
        if import_file:
            importer = LocalImporter(library.config, library.store, library.tracker)
            record = await importer.import_lyrics(track_id, import_file)

        async with Downloader.from_config(library.config) as downloader:
            if not follow:
                print_lyrics(await load_lyrics(record.lyric_locator, downloader))
                return
            await _follow_lyrics(record, downloader, start)

    async def _follow_lyrics(record: TrackRecord, downloader: Downloader, start_s: float):
        duration_ms = 0
        if record.audio_locator and not is_remote(record.audio_locator):
            length = library.tagger.read_duration(locator_to_path(record.audio_locator))
            duration_ms = int(length * 1000) if length else 0

        player = ClockPlayer()
        player.play(record, duration_ms=duration_ms, start_ms=int(start_s * 1000))
        sync = PlaybackSyncLoop(player, downloader, library.config.sync_interval_ms)

        console.print(f"[bold cyan]♪ {escape(record.artist)} - {escape(record.title)}[/bold cyan]")
        with Live(lyric_panel((), -1, 0, duration_ms), console=console) as live:
            sync.subscribe(
                lambda snap: live.update(
                    lyric_panel(snap.lines, snap.index, snap.position, snap.duration)
                )
            )
            async with sync:
                lines = await sync.wait_for_lyrics()
                end_ms = duration_ms or ((lines[-1].time + 5000) if lines else 0)
                while player.current_position < end_ms:
                    await asyncio.sleep(0.25)

    asyncio.run(_lyrics_async())


# --- Playlist commands ---


@playlist_app.command(name="list")
def playlist_list():
    """List playlists in their display order."""
    print_playlists_table(_open_library().playlists.list_playlists())


@playlist_app.command(name="show")
def playlist_show(playlist_id: str = typer.Argument(..., help="Playlist identifier.")):
    """Show the tracks of a playlist."""
    library = _open_library()
    playlist = library.playlists.get_playlist(playlist_id)
    print_playlist_detail(playlist, [library.store.get(tid) for tid in playlist.track_ids])


@playlist_app.command(name="create")
def playlist_create(
    name: str = typer.Argument(..., help="Playlist name."),
    track_ids: list[str] | None = typer.Argument(None, help="Initial track identifiers."),  # noqa: B008
):
    """Create a playlist, optionally with initial tracks."""
    library = _open_library()
    _check_tracks(library, track_ids or [])
    playlist = library.playlists.create_playlist(name, track_ids or [])
    console.print(f"[green]✓ Created playlist[/green] {escape(playlist.name)} [dim]({playlist.id})[/dim]")


@playlist_app.command(name="rename")
def playlist_rename(
    playlist_id: str = typer.Argument(..., help="Playlist identifier."),
    name: str = typer.Argument(..., help="New name."),
):
    """Rename a playlist."""
    playlist = _open_library().playlists.rename_playlist(playlist_id, name)
    console.print(f"[green]✓ Renamed to[/green] {escape(playlist.name)}")


@playlist_app.command(name="delete")
def playlist_delete(
    playlist_id: str = typer.Argument(..., help="Playlist identifier."),
    force: bool = typer.Option(False, "--force", "-f", help="Bypass the confirmation prompt."),
):
    """Delete a playlist. Its tracks stay in the library."""
    if not force and not typer.confirm("Delete this playlist?"):
        raise typer.Abort()
    _open_library().playlists.delete_playlist(playlist_id)
    console.print("[green]✓ Playlist deleted.[/green]")


@playlist_app.command(name="add")
def playlist_add(
    playlist_id: str = typer.Argument(..., help="Playlist identifier."),
    track_ids: list[str] = typer.Argument(..., help="Track identifiers to append."),  # noqa: B008
):
    """Append tracks to a playlist."""
    library = _open_library()
    _check_tracks(library, track_ids)
    playlist = library.playlists.add_tracks(playlist_id, track_ids)
    console.print(f"[green]✓ {escape(playlist.name)} now has {len(playlist.track_ids)} tracks.[/green]")


@playlist_app.command(name="remove")
def playlist_remove(
    playlist_id: str = typer.Argument(..., help="Playlist identifier."),
    track_id: str = typer.Argument(..., help="Track identifier to remove."),
):
    """Remove a track from a playlist."""
    playlist = _open_library().playlists.remove_track(playlist_id, track_id)
    console.print(f"[green]✓ {escape(playlist.name)} now has {len(playlist.track_ids)} tracks.[/green]")


@playlist_app.command(name="reorder")
def playlist_reorder(
    playlist_ids: list[str] = typer.Argument(..., help="Playlist identifiers in display order."),  # noqa: B008
):
    """Set the display order of playlists."""
    library = _open_library()
    for playlist_id in playlist_ids:
        library.playlists.get_playlist(playlist_id)
    library.playlists.reorder(playlist_ids)
    print_playlists_table(library.playlists.list_playlists())


@playlist_app.command(name="reorder-tracks")
def playlist_reorder_tracks(
    playlist_id: str = typer.Argument(..., help="Playlist identifier."),
    track_ids: list[str] = typer.Argument(..., help="Track identifiers in the new order."),  # noqa: B008
):
    """Set the order of the tracks inside a playlist."""
    library = _open_library()
    playlist = library.playlists.reorder_tracks(playlist_id, track_ids)
    print_playlist_detail(playlist, [library.store.get(tid) for tid in playlist.track_ids])


def _check_tracks(library: Library, track_ids: list[str]) -> None:
    missing = [tid for tid in track_ids if not library.store.exists(tid)]
    if missing:
        raise TrackNotFoundError(f"Unknown track id(s): {', '.join(missing)}")
