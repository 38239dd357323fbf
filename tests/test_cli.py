"""End-to-end tests of the command line against a temporary library"""

import json

import pytest
from typer.testing import CliRunner

from neko_cli.cli import app as cli_module
from neko_cli.exceptions import PlaylistNotFoundError, TrackNotFoundError

from .conftest import LRC_TEXT

runner = CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def library_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_module, "CONFIG_FILE", tmp_path / "conf" / "config.ini")
    library = tmp_path / "library"
    result = runner.invoke(cli_module.app, ["init", "--force", "--library-dir", str(library)])
    assert result.exit_code == 0, result.output
    return library


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "Night Drive.mp3"
    path.write_bytes(b"\x00" * 1024)
    return path


def only_track(library_dir):
    documents = list((library_dir / "tracks").glob("*.json"))
    assert len(documents) == 1
    return json.loads(documents[0].read_text(encoding="utf-8"))


def test_version():
    result = runner.invoke(cli_module.app, ["--version"])
    assert result.exit_code == 0
    assert "neko-cli" in result.output


def test_init_creates_library(library_dir):
    assert (library_dir / "tracks").is_dir()
    assert (library_dir / "playlists").is_dir()
    assert cli_module.CONFIG_FILE.is_file()


def test_commands_require_config(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_module, "CONFIG_FILE", tmp_path / "missing.ini")
    result = runner.invoke(cli_module.app, ["list"])
    assert result.exit_code != 0


def test_import_and_list(library_dir, audio_file):
    result = runner.invoke(cli_module.app, ["import", str(audio_file), "--artist", "Synth"])
    assert result.exit_code == 0, result.output

    record = only_track(library_dir)
    assert record["title"] == "Night Drive"
    assert record["artist"] == "Synth"

    result = runner.invoke(cli_module.app, ["list"])
    assert result.exit_code == 0
    assert "Night Drive" in result.output


def test_import_missing_file_fails(library_dir, tmp_path):
    result = runner.invoke(cli_module.app, ["import", str(tmp_path / "ghost.mp3")])
    assert result.exit_code == 1


def test_lyrics_import_and_show(library_dir, audio_file, tmp_path):
    runner.invoke(cli_module.app, ["import", str(audio_file)])
    track_id = only_track(library_dir)["id"]
    lrc = tmp_path / "words.lrc"
    lrc.write_text(LRC_TEXT, encoding="utf-8")

    result = runner.invoke(cli_module.app, ["lyrics", track_id, "--import", str(lrc)])

    assert result.exit_code == 0, result.output
    assert "Hello" in result.output
    assert "World" in result.output
    assert (library_dir / "music" / "Night Drive - Unknown.lrc").is_file()


def test_playlist_lifecycle(library_dir, audio_file):
    runner.invoke(cli_module.app, ["import", str(audio_file)])
    track_id = only_track(library_dir)["id"]

    result = runner.invoke(cli_module.app, ["playlist", "create", "Road Trip", track_id])
    assert result.exit_code == 0, result.output

    documents = [p for p in (library_dir / "playlists").glob("*.json") if p.name != "order.json"]
    assert len(documents) == 1
    playlist = json.loads(documents[0].read_text(encoding="utf-8"))
    assert playlist["name"] == "Road Trip"
    assert playlist["track_ids"] == [track_id]

    result = runner.invoke(cli_module.app, ["playlist", "list"])
    assert "Road Trip" in result.output

    result = runner.invoke(cli_module.app, ["delete", track_id, "--force"])
    assert result.exit_code == 0, result.output
    playlist = json.loads(documents[0].read_text(encoding="utf-8"))
    assert playlist["track_ids"] == []
    assert list((library_dir / "tracks").glob("*.json")) == []

    result = runner.invoke(cli_module.app, ["playlist", "delete", playlist["id"], "--force"])
    assert result.exit_code == 0
    assert not documents[0].exists()


def test_playlist_with_unknown_track(library_dir):
    result = runner.invoke(cli_module.app, ["playlist", "create", "Mix", "nope"])
    assert isinstance(result.exception, TrackNotFoundError)


def test_show_unknown_playlist(library_dir):
    result = runner.invoke(cli_module.app, ["playlist", "show", "nope"])
    assert isinstance(result.exception, PlaylistNotFoundError)


def test_download_without_source(library_dir):
    result = runner.invoke(cli_module.app, ["download"])
    assert result.exit_code == 1
    assert "Nothing to download" in result.output
