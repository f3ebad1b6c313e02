"""Mutagen-backed TagBlock adapters.

Hey future me - one adapter per tag FORMAT (not per container!). FLAC and Ogg both carry
Vorbis comments, WAV and AIFF both carry ID3. The mapping of our seven fields to each
format's keys lives here and nowhere else:

    field    ID3          Vorbis                   MP4      APEv2
    title    TIT2         title                    ©nam     Title
    artist   TPE1         artist                   ©ART     Artist
    album    TALB         album                    ©alb     Album
    track    TRCK         tracknumber              trkn     Track
    year     TDRC/TYER    date/year                ©day     Year
    lyrics   USLT         lyrics/unsyncedlyrics    ©lyr     Lyrics
    pictures APIC         FLAC pictures/METADATA_  covr     Cover Art (Front)
                          BLOCK_PICTURE
"""

import base64
import binascii
import logging
import re
from typing import Any

from mutagen.apev2 import APEv2
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from cadenza.domain.ports import EmbeddedPicture, TagBlock

logger = logging.getLogger(__name__)

_YEAR_PATTERN = re.compile(r"(\d{4})")
_NUMBER_PATTERN = re.compile(r"^\s*(\d+)")


def clean_text(value: Any) -> str | None:
    """Normalize a raw tag value to stripped text, None when empty."""
    if value is None:
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None


# Yo, track numbers show up as "3", "03", "3/12", (3, 12) tuples (MP4) or even "A3" on vinyl
# rips. We only accept a leading integer - "A3" gives None rather than a wrong number.
def parse_track_number(value: Any) -> int | None:
    """Parse a track number from any of the common tag shapes."""
    if value is None:
        return None
    if isinstance(value, tuple):
        value = value[0] if value else None
        if value is None:
            return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = _NUMBER_PATTERN.match(str(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


def parse_year(value: Any) -> int | None:
    """Extract a four-digit year from a date-ish tag value ("2020", "2020-05-01")."""
    if value is None:
        return None
    match = _YEAR_PATTERN.search(str(value))
    if not match:
        return None
    return int(match.group(1))


class ID3TagBlock(TagBlock):
    """ID3v2 frames (MP3, WAV, AIFF)."""

    kind = "id3"

    def __init__(self, tags: ID3) -> None:
        self._tags = tags

    def _first_text(self, *frame_ids: str) -> str | None:
        for frame_id in frame_ids:
            for frame in self._tags.getall(frame_id):
                for value in getattr(frame, "text", []):
                    text = clean_text(value)
                    if text:
                        return text
        return None

    def title(self) -> str | None:
        return self._first_text("TIT2")

    def artist(self) -> str | None:
        return self._first_text("TPE1", "TPE2")

    def album(self) -> str | None:
        return self._first_text("TALB")

    def track(self) -> int | None:
        return parse_track_number(self._first_text("TRCK"))

    def year(self) -> int | None:
        return parse_year(self._first_text("TDRC", "TYER", "TDOR"))

    def lyrics(self) -> str | None:
        for frame in self._tags.getall("USLT"):
            text = clean_text(frame.text)
            if text:
                return text
        return None

    def pictures(self) -> list[EmbeddedPicture]:
        return [
            EmbeddedPicture(
                data=bytes(frame.data),
                mime=frame.mime or "image/jpeg",
                picture_type=int(frame.type),
            )
            for frame in self._tags.getall("APIC")
            if frame.data
        ]


class VorbisCommentBlock(TagBlock):
    """Vorbis comments (FLAC, Ogg Vorbis, Opus).

    FLAC stores pictures outside the comment block, so the container's picture list
    is handed in separately.
    """

    kind = "vorbis"

    def __init__(self, tags: Any, flac_pictures: list[Picture] | None = None) -> None:
        self._tags = tags
        self._flac_pictures = flac_pictures or []

    def _first_text(self, *keys: str) -> str | None:
        for key in keys:
            values = self._tags.get(key) or []
            for value in values:
                text = clean_text(value)
                if text:
                    return text
        return None

    def title(self) -> str | None:
        return self._first_text("title")

    def artist(self) -> str | None:
        return self._first_text("artist", "albumartist", "album artist")

    def album(self) -> str | None:
        return self._first_text("album")

    def track(self) -> int | None:
        return parse_track_number(self._first_text("tracknumber"))

    def year(self) -> int | None:
        return parse_year(self._first_text("date", "year", "originaldate"))

    def lyrics(self) -> str | None:
        return self._first_text("lyrics", "unsyncedlyrics")

    def pictures(self) -> list[EmbeddedPicture]:
        pictures = [
            EmbeddedPicture(data=pic.data, mime=pic.mime or "image/jpeg", picture_type=pic.type)
            for pic in self._flac_pictures
            if pic.data
        ]
        # Ogg containers smuggle FLAC picture blocks base64-encoded inside a comment
        for raw in self._tags.get("metadata_block_picture") or []:
            try:
                pic = Picture(base64.b64decode(raw))
            except (binascii.Error, ValueError) as e:
                logger.debug("Skipping undecodable METADATA_BLOCK_PICTURE: %s", e)
                continue
            if pic.data:
                pictures.append(
                    EmbeddedPicture(
                        data=pic.data, mime=pic.mime or "image/jpeg", picture_type=pic.type
                    )
                )
        return pictures


class MP4TagBlock(TagBlock):
    """iTunes-style MP4 atoms (M4A)."""

    kind = "mp4"

    def __init__(self, tags: MP4Tags) -> None:
        self._tags = tags

    def _first_text(self, *keys: str) -> str | None:
        for key in keys:
            for value in self._tags.get(key) or []:
                text = clean_text(value)
                if text:
                    return text
        return None

    def title(self) -> str | None:
        return self._first_text("\xa9nam")

    def artist(self) -> str | None:
        return self._first_text("\xa9ART", "aART")

    def album(self) -> str | None:
        return self._first_text("\xa9alb")

    def track(self) -> int | None:
        for value in self._tags.get("trkn") or []:
            number = parse_track_number(value)
            if number:
                return number
        return None

    def year(self) -> int | None:
        return parse_year(self._first_text("\xa9day"))

    def lyrics(self) -> str | None:
        return self._first_text("\xa9lyr")

    def pictures(self) -> list[EmbeddedPicture]:
        pictures: list[EmbeddedPicture] = []
        for cover in self._tags.get("covr") or []:
            mime = (
                "image/png"
                if getattr(cover, "imageformat", None) == MP4Cover.FORMAT_PNG
                else "image/jpeg"
            )
            pictures.append(EmbeddedPicture(data=bytes(cover), mime=mime))
        return pictures


class ApeTagBlock(TagBlock):
    """APEv2 footer (commonly found trailing MP3 files next to ID3)."""

    kind = "ape"

    def __init__(self, tags: APEv2) -> None:
        self._tags = tags

    def _first_text(self, *keys: str) -> str | None:
        for key in keys:
            value = self._tags.get(key)
            if value is None or getattr(value, "kind", None) != 0:
                continue
            for part in str(value).split("\x00"):
                text = clean_text(part)
                if text:
                    return text
        return None

    def title(self) -> str | None:
        return self._first_text("Title")

    def artist(self) -> str | None:
        return self._first_text("Artist", "Album Artist")

    def album(self) -> str | None:
        return self._first_text("Album")

    def track(self) -> int | None:
        return parse_track_number(self._first_text("Track"))

    def year(self) -> int | None:
        return parse_year(self._first_text("Year"))

    def lyrics(self) -> str | None:
        return self._first_text("Lyrics")

    def pictures(self) -> list[EmbeddedPicture]:
        value = self._tags.get("Cover Art (Front)")
        if value is None:
            return []
        raw = bytes(value.value)
        # Binary cover items are "<filename>\0<image bytes>"
        name, sep, data = raw.partition(b"\x00")
        if not sep or not data:
            return []
        mime = "image/png" if name.lower().endswith(b".png") else "image/jpeg"
        return [EmbeddedPicture(data=data, mime=mime)]


def wrap_tags(tags: Any, flac_pictures: list[Picture] | None = None) -> TagBlock | None:
    """Pick the adapter that matches a mutagen tag object."""
    if tags is None:
        return None
    if isinstance(tags, ID3):
        return ID3TagBlock(tags)
    if isinstance(tags, MP4Tags):
        return MP4TagBlock(tags)
    if isinstance(tags, APEv2):
        return ApeTagBlock(tags)
    if hasattr(tags, "get"):
        return VorbisCommentBlock(tags, flac_pictures)
    logger.debug("Unsupported tag container %s", type(tags).__name__)
    return None
