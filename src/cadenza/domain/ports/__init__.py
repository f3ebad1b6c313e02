"""Domain ports (interfaces) for dependency inversion."""

from cadenza.domain.ports.tag_reading import (
    AudioProbe,
    EmbeddedPicture,
    ProbedAudio,
    TagBlock,
)

__all__ = [
    "AudioProbe",
    "EmbeddedPicture",
    "ProbedAudio",
    "TagBlock",
]
