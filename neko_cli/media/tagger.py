"""
Handles writing track metadata, artwork and lyrics into audio files, and
reading them back out.
"""

import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mutagen
import mutagen.id3 as id3
from mutagen.easyid3 import EasyID3
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3NoHeaderError
from mutagen.mp4 import MP4, MP4Cover

log = logging.getLogger(__name__)

# --- Constants ---
FLAC_MAX_BLOCKSIZE = 16777215  # ~16.7MB, max size for a FLAC metadata block
PICTURE_TYPE_FRONT_COVER = 3
ID3_EXTENSIONS = {".mp3"}
VORBIS_EXTENSIONS = {".ogg", ".opus", ".oga"}
MP4_EXTENSIONS = {".m4a", ".mp4", ".m4b"}


@dataclass
class TagData:
    """The metadata committed into a downloaded file."""

    title: str
    artist: str
    album: str | None = None
    artwork: bytes | None = None
    lyrics: str | None = None


def guess_image_mime(data: bytes) -> str:
    """Sniffs PNG artwork; everything else is treated as JPEG."""
    return "image/png" if data.startswith(b"\x89PNG\r\n\x1a\n") else "image/jpeg"


def _front_cover_picture(data: bytes) -> Picture:
    pic = Picture()
    pic.type = PICTURE_TYPE_FRONT_COVER
    pic.mime = guess_image_mime(data)
    pic.desc = "Cover"
    pic.data = data
    return pic


class Tagger:
    """Writes metadata tags to MP3, FLAC, MP4 and Ogg files."""

    def tag_file(self, file_path: Path, tags: TagData) -> bool:
        """
        Commits `tags` into the file's native container. Failures are logged and
        reported as False; they never raise.
        """
        suffix = file_path.suffix.lower()
        try:
            if suffix in ID3_EXTENSIONS:
                self._tag_mp3(file_path, tags)
            elif suffix == ".flac":
                self._tag_flac(file_path, tags)
            elif suffix in MP4_EXTENSIONS:
                self._tag_mp4(file_path, tags)
            elif suffix in VORBIS_EXTENSIONS:
                self._tag_vorbis(file_path, tags)
            else:
                log.warning(
                    f"No tag container for '{file_path.name}'; metadata not embedded."
                )
                return False
            return True
        except Exception as e:
            log.warning(
                f"Failed to tag file '{os.path.basename(file_path)}': {e}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return False

    def _tag_mp3(self, path: Path, tags: TagData):
        try:
            audio = id3.ID3(path)
        except ID3NoHeaderError:
            audio = id3.ID3()

        audio.add(id3.TIT2(encoding=3, text=tags.title))
        audio.add(id3.TPE1(encoding=3, text=tags.artist))
        if tags.album:
            audio.add(id3.TALB(encoding=3, text=tags.album))
        if tags.lyrics:
            audio.delall("USLT")
            audio.add(id3.USLT(encoding=3, lang="eng", desc="", text=tags.lyrics))
        if tags.artwork:
            audio.delall("APIC")
            audio.add(
                id3.APIC(
                    encoding=3,
                    mime=guess_image_mime(tags.artwork),
                    type=PICTURE_TYPE_FRONT_COVER,
                    desc="Cover",
                    data=tags.artwork,
                )
            )

        audio.save(path, v2_version=3)

    def _tag_flac(self, path: Path, tags: TagData):
        audio = FLAC(path)
        audio["TITLE"] = [tags.title]
        audio["ARTIST"] = [tags.artist]
        if tags.album:
            audio["ALBUM"] = [tags.album]
        if tags.lyrics:
            audio["LYRICS"] = [tags.lyrics]
        if tags.artwork:
            if len(tags.artwork) > FLAC_MAX_BLOCKSIZE:
                log.warning("Cover art is too large to embed in FLAC; skipping it.")
            else:
                audio.clear_pictures()
                audio.add_picture(_front_cover_picture(tags.artwork))
        audio.save()

    def _tag_mp4(self, path: Path, tags: TagData):
        audio = MP4(path)
        if audio.tags is None:
            audio.add_tags()
        audio.tags["\xa9nam"] = [tags.title]
        audio.tags["\xa9ART"] = [tags.artist]
        if tags.album:
            audio.tags["\xa9alb"] = [tags.album]
        if tags.lyrics:
            audio.tags["\xa9lyr"] = [tags.lyrics]
        if tags.artwork:
            image_format = (
                MP4Cover.FORMAT_PNG
                if guess_image_mime(tags.artwork) == "image/png"
                else MP4Cover.FORMAT_JPEG
            )
            audio.tags["covr"] = [MP4Cover(tags.artwork, imageformat=image_format)]
        audio.save()

    def _tag_vorbis(self, path: Path, tags: TagData):
        audio = mutagen.File(path)
        if audio is None:
            raise ValueError("unrecognized Ogg stream")
        if audio.tags is None:
            audio.add_tags()
        audio["title"] = [tags.title]
        audio["artist"] = [tags.artist]
        if tags.album:
            audio["album"] = [tags.album]
        if tags.lyrics:
            audio["lyrics"] = [tags.lyrics]
        if tags.artwork:
            encoded = base64.b64encode(_front_cover_picture(tags.artwork).write())
            audio["metadata_block_picture"] = [encoded.decode("ascii")]
        audio.save()

    def extract_artwork(self, file_path: Path) -> bytes | None:
        """Returns the first embedded picture of an audio file, if any."""
        if file_path.suffix.lower() in ID3_EXTENSIONS:
            try:
                frames = id3.ID3(file_path).getall("APIC")
            except (mutagen.MutagenError, OSError) as e:
                log.debug(f"No ID3 artwork in '{file_path}': {e}")
                return None
            return frames[0].data if frames else None

        try:
            audio = mutagen.File(file_path)
        except (mutagen.MutagenError, OSError) as e:
            log.debug(f"Could not open '{file_path}' for artwork extraction: {e}")
            return None
        if audio is None:
            return None

        if isinstance(audio, FLAC) and audio.pictures:
            return audio.pictures[0].data

        tags = audio.tags
        if tags is None:
            return None
        if isinstance(tags, id3.ID3):
            frames = tags.getall("APIC")
            return frames[0].data if frames else None
        if isinstance(audio, MP4):
            covers = tags.get("covr")
            return bytes(covers[0]) if covers else None
        for encoded in tags.get("metadata_block_picture", []):
            try:
                return Picture(base64.b64decode(encoded)).data
            except (ValueError, mutagen.MutagenError):
                continue
        return None

    def read_tags(self, file_path: Path) -> dict[str, Any]:
        """
        Reads title, artist and album using mutagen's easy interface. Missing
        values are returned as None.
        """
        result: dict[str, Any] = {"title": None, "artist": None, "album": None}
        try:
            if file_path.suffix.lower() in ID3_EXTENSIONS:
                tags = EasyID3(file_path)
            else:
                audio = mutagen.File(file_path, easy=True)
                tags = audio.tags if audio is not None else None
        except (mutagen.MutagenError, OSError) as e:
            log.debug(f"Could not read tags from '{file_path}': {e}")
            return result
        if tags is None:
            return result
        for key in result:
            values = tags.get(key)
            if values:
                result[key] = str(values[0])
        return result

    def read_duration(self, file_path: Path) -> float | None:
        """Returns the stream length in seconds, if mutagen can determine it."""
        try:
            audio = mutagen.File(file_path)
        except (mutagen.MutagenError, OSError) as e:
            log.debug(f"Could not read stream info from '{file_path}': {e}")
            return None
        if audio is None or audio.info is None:
            return None
        return getattr(audio.info, "length", None)
