"""Audio tag reading (mutagen adapters and field extraction)."""

from cadenza.infrastructure.tagging.extractor import ExtractedTags, TagExtractor
from cadenza.infrastructure.tagging.mutagen_probe import MutagenAudioProbe

__all__ = ["ExtractedTags", "MutagenAudioProbe", "TagExtractor"]
