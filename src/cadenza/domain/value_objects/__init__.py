"""Domain value objects."""

from cadenza.domain.value_objects.image_ref import ImageRef
from cadenza.domain.value_objects.library_layout import (
    AUDIO_EXTENSIONS,
    IMAGE_EXTENSIONS,
    UNSORTED_DIR,
    album_dir,
    artist_dir,
    canonical_track_path,
    cover_extension_for_mime,
    is_audio_file,
    is_image_file,
    relative_to_root,
    sanitize_component,
)

__all__ = [
    "AUDIO_EXTENSIONS",
    "IMAGE_EXTENSIONS",
    "UNSORTED_DIR",
    "ImageRef",
    "album_dir",
    "artist_dir",
    "canonical_track_path",
    "cover_extension_for_mime",
    "is_audio_file",
    "is_image_file",
    "relative_to_root",
    "sanitize_component",
]
