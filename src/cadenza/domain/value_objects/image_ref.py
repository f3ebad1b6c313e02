"""ImageRef value object for artist images and album covers.

Hey future me - the catalog stores ONE text column per image (artists.image_url,
albums.cover_path) but it can hold two kinds of values:
- a relative path (under the library root or the data dir) when we own a local file
- an absolute http(s) URL when a download failed and we kept the remote reference

ImageRef splits that single column into url/path so callers don't have to sniff strings.
"""

from dataclasses import dataclass


@dataclass
class ImageRef:
    """Reference to an image (remote URL and/or local path).

    Attributes:
        url: Remote URL kept as fallback when the download failed
        path: Local path relative to the library root or data directory
    """

    url: str | None = None
    path: str | None = None

    @property
    def has_image(self) -> bool:
        """Check if any image reference exists (URL or local path)."""
        return bool(self.url or self.path)

    @classmethod
    def from_column(cls, value: str | None) -> "ImageRef":
        """Build an ImageRef from a raw catalog column value."""
        if not value:
            return cls()
        if value.startswith(("http://", "https://")):
            return cls(url=value)
        return cls(path=value)

    def to_column(self) -> str | None:
        """Collapse back to the single catalog column (local path wins)."""
        return self.path or self.url
