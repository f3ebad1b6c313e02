"""External metadata providers: MusicBrainz, Cover Art Archive, Wikidata, Last.fm."""

from cadenza.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)
from cadenza.infrastructure.integrations.http_pool import HttpClientPool
from cadenza.infrastructure.integrations.image_downloader import ImageDownloader
from cadenza.infrastructure.integrations.lastfm_client import LastFmImageScraper
from cadenza.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from cadenza.infrastructure.integrations.wikimedia import (
    WikidataClient,
    commons_media_url,
    qid_from_url,
    resolve_media_url,
)

__all__ = [
    "CoverArtArchiveClient",
    "HttpClientPool",
    "ImageDownloader",
    "LastFmImageScraper",
    "MusicBrainzClient",
    "WikidataClient",
    "commons_media_url",
    "qid_from_url",
    "resolve_media_url",
]
