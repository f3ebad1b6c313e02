"""Canonical on-disk library layout.

Hey future me - this is the ONE place that knows what the library tree should look like:

    {root}/{Artist}/{Album}/{Title}.{ext}      audio
    {root}/{Artist}/{Album}/cover.{ext}        album art
    {root}/{Artist}/folder.{ext}               artist art
    {root}/Unsorted/{original filename}        files with incomplete tags

The scanner, cover resolver and organizer all build paths through these helpers so a
rename of the convention happens here and nowhere else.
"""

import re
from pathlib import Path

# Case-insensitive, compare against suffix.lower().lstrip(".")
AUDIO_EXTENSIONS: frozenset[str] = frozenset({"flac", "mp3", "m4a", "ogg", "wav"})
IMAGE_EXTENSIONS: frozenset[str] = frozenset({"jpg", "jpeg", "png", "webp", "gif"})

UNSORTED_DIR = "Unsorted"

# Same character class the renaming code has always used: Windows-illegal chars + control chars
ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def is_audio_file(path: Path) -> bool:
    """Check whether a path has a recognized audio extension."""
    return path.suffix.lower().lstrip(".") in AUDIO_EXTENSIONS


def is_image_file(path: Path) -> bool:
    """Check whether a path has a recognized image extension."""
    return path.suffix.lower().lstrip(".") in IMAGE_EXTENSIONS


# Yo, sanitize keeps the name readable - only illegal chars become "_". The "." / ".." guard
# matters: an artist literally named ".." would otherwise walk us OUT of the library root.
def sanitize_component(name: str) -> str:
    """Make a single path component safe for any filesystem.

    Args:
        name: Artist, album or title text

    Returns:
        Sanitized component, never empty and never a relative path marker
    """
    sanitized = ILLEGAL_CHARS.sub("_", name).strip()
    if sanitized in {"", ".", ".."}:
        return "_"
    return sanitized


def artist_dir(root: Path, artist: str) -> Path:
    """Canonical directory of an artist."""
    return root / sanitize_component(artist)


def album_dir(root: Path, artist: str, album: str) -> Path:
    """Canonical directory of an album."""
    return artist_dir(root, artist) / sanitize_component(album)


def canonical_track_path(
    root: Path,
    source: Path,
    artist: str | None,
    album: str | None,
    title: str | None,
) -> Path:
    """Compute where an audio file belongs in the library tree.

    Any missing tag routes the file to the Unsorted bucket under its original name.
    """
    if not artist or not album or not title:
        return root / UNSORTED_DIR / source.name
    ext = source.suffix.lower()
    return album_dir(root, artist, album) / f"{sanitize_component(title)}{ext}"


def cover_extension_for_mime(mime: str | None) -> str:
    """Map an image MIME type to the extension used for cover files."""
    if not mime:
        return "jpg"
    mime = mime.lower()
    if "png" in mime:
        return "png"
    if "webp" in mime:
        return "webp"
    if "gif" in mime:
        return "gif"
    return "jpg"


def relative_to_root(path: Path, root: Path) -> str:
    """Express a path relative to the library root (posix separators)."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
